"""Research group service.

A group lives on the site its partition key is routed to. Renaming is an
in-place update; changing the partition key hands off to the migration
engine, because the group and everything under it must move sites and be
re-identified.
"""

from __future__ import annotations

from sitemesh.core.errors import EntityNotFoundError, ValidationError
from sitemesh.core.identifiers import GROUP_TAG
from sitemesh.core.logging import get_logger
from sitemesh.core.partition import PARTITION_KEY_PATTERN, partition_key_of
from sitemesh.core.registry import RegistryEntry
from sitemesh.core.schema import RESEARCH_GROUP
from sitemesh.migration import MigrationEngine

from .base import ServiceContext, SiteService
from .models import Group

logger = get_logger(__name__)

_COLUMNS = "group_id, group_name, partition_key"


class GroupService(SiteService):
    """CRUD for research groups."""

    def __init__(self, ctx: ServiceContext, engine: MigrationEngine):
        super().__init__(ctx)
        self._engine = engine

    def list_partitions(self) -> list[RegistryEntry]:
        return self._registry.entries()

    def list_all(self) -> list[Group]:
        """Groups from every registry site; unreachable sites are skipped and logged."""
        result = self._fan_out(f"SELECT {_COLUMNS} FROM {RESEARCH_GROUP} ORDER BY group_id")
        return [Group.from_row(row) for row in result.rows()]

    def find(self, group_id: str) -> Group | None:
        row = self._find_one(group_id, f"SELECT {_COLUMNS} FROM {RESEARCH_GROUP} WHERE group_id = ?", [group_id])
        return Group.from_row(row) if row else None

    def get(self, group_id: str) -> Group:
        group = self.find(group_id)
        if group is None:
            raise EntityNotFoundError("group", group_id)
        return group

    def create(self, partition_key: str, name: str) -> Group:
        """Create a group in ``partition_key`` with the lowest free ``<key>N<k>`` identifier."""
        name = self._require_text(name, "group_name")
        partition_key = self._require_text(partition_key, "partition_key")
        if not PARTITION_KEY_PATTERN.fullmatch(partition_key):
            raise ValidationError(
                f"Partition key {partition_key!r} must be letters followed by digits",
                field="partition_key",
                value=partition_key,
            )
        site = self._failover.require(self._partitions.resolve_key(partition_key))

        def insert(group_id: str) -> None:
            self._executor.execute(
                site,
                f"INSERT INTO {RESEARCH_GROUP} ({_COLUMNS}) VALUES (?, ?, ?)",
                [group_id, name, partition_key],
            )

        group_id, _ = self._allocator.create(site, partition_key, GROUP_TAG, insert)
        logger.info("group_created", group_id=group_id, site=site.value)
        return Group(group_id=group_id, group_name=name, partition_key=partition_key)

    def update(self, group_id: str, name: str, partition_key: str | None = None) -> Group:
        """Rename a group, or move it to another partition when ``partition_key`` differs.

        Returns:
            The group as it now exists; after a move it carries a new identifier.

        Raises:
            MigrationRejectedError / MigrationAbortedError /
            MigrationPartialFailureError: from the migration engine.
        """
        name = self._require_text(name, "group_name")
        if partition_key and partition_key != partition_key_of(group_id):
            record = self._engine.migrate(group_id, partition_key, name)
            return Group(group_id=record.new_group_id or "", group_name=name, partition_key=partition_key)

        site = self._writable_owner(group_id)
        result = self._executor.execute(
            site, f"UPDATE {RESEARCH_GROUP} SET group_name = ? WHERE group_id = ?", [name, group_id]
        )
        if result.row_count == 0:
            raise EntityNotFoundError("group", group_id)
        return Group(group_id=group_id, group_name=name, partition_key=partition_key_of(group_id))

    def delete(self, group_id: str) -> None:
        """Delete a group row.

        Raises:
            ForeignReferenceError: the group still has members or projects.
            EntityNotFoundError: no such group on its site.
        """
        site = self._writable_owner(group_id)
        result = self._executor.execute(site, f"DELETE FROM {RESEARCH_GROUP} WHERE group_id = ?", [group_id])
        if result.row_count == 0:
            raise EntityNotFoundError("group", group_id)
        logger.info("group_deleted", group_id=group_id, site=site.value)


__all__ = ["GroupService"]
