"""Member service."""

from __future__ import annotations

from sitemesh.core.errors import EntityNotFoundError, ForeignReferenceError, ValidationError
from sitemesh.core.identifiers import MEMBER_TAG
from sitemesh.core.logging import get_logger
from sitemesh.core.schema import MEMBER, RESEARCH_GROUP
from sitemesh.core.sites import SiteId

from .base import SiteService
from .models import Member

logger = get_logger(__name__)

_COLUMNS = "member_id, full_name, group_id"


class MemberService(SiteService):
    """CRUD for members. A member lives with its group."""

    def list_all(self) -> list[Member]:
        result = self._fan_out(f"SELECT {_COLUMNS} FROM {MEMBER} ORDER BY member_id")
        return [Member.from_row(row) for row in result.rows()]

    def list_by_group(self, group_id: str) -> list[Member]:
        result = self._read(
            self._owner(group_id), f"SELECT {_COLUMNS} FROM {MEMBER} WHERE group_id = ? ORDER BY member_id", [group_id]
        )
        return [Member.from_row(row) for row in result.rows]

    def find(self, member_id: str) -> Member | None:
        row = self._find_one(member_id, f"SELECT {_COLUMNS} FROM {MEMBER} WHERE member_id = ?", [member_id])
        return Member.from_row(row) if row else None

    def get(self, member_id: str) -> Member:
        member = self.find(member_id)
        if member is None:
            raise EntityNotFoundError("member", member_id)
        return member

    def _require_group(self, site: SiteId, group_id: str) -> None:
        found = self._executor.execute(
            site, f"SELECT group_id FROM {RESEARCH_GROUP} WHERE group_id = ?", [group_id]
        ).first()
        if found is None:
            raise ForeignReferenceError(f"Group {group_id} does not exist").with_context(
                site=site.value, identifier=group_id
            )

    def create(self, group_id: str, full_name: str) -> Member:
        """Add a member to ``group_id`` as ``<group_id>NV<k>``."""
        full_name = self._require_text(full_name, "full_name")
        site = self._writable_owner(group_id)
        self._require_group(site, group_id)

        def insert(member_id: str) -> None:
            self._executor.execute(
                site, f"INSERT INTO {MEMBER} ({_COLUMNS}) VALUES (?, ?, ?)", [member_id, full_name, group_id]
            )

        member_id, _ = self._allocator.create(site, group_id, MEMBER_TAG, insert)
        logger.info("member_created", member_id=member_id, site=site.value)
        return Member(member_id=member_id, full_name=full_name, group_id=group_id)

    def update(self, member_id: str, full_name: str, group_id: str | None = None) -> Member:
        """Rename a member and optionally move it to another group on the same site.

        The identifier is kept; moving across sites requires migrating the group.
        """
        full_name = self._require_text(full_name, "full_name")
        site = self._writable_owner(member_id)
        current = self._executor.execute(
            site, f"SELECT {_COLUMNS} FROM {MEMBER} WHERE member_id = ?", [member_id]
        ).first()
        if current is None:
            raise EntityNotFoundError("member", member_id)
        new_group = group_id or str(current["group_id"]).strip()
        if new_group != str(current["group_id"]).strip():
            if self._owner(new_group) is not site:
                raise ValidationError(
                    f"Group {new_group} is not on {site}; members can only move between groups on the same site",
                    field="group_id",
                    value=new_group,
                )
            self._require_group(site, new_group)
        self._executor.execute(
            site,
            f"UPDATE {MEMBER} SET full_name = ?, group_id = ? WHERE member_id = ?",
            [full_name, new_group, member_id],
        )
        return Member(member_id=member_id, full_name=full_name, group_id=new_group)

    def delete(self, member_id: str) -> None:
        site = self._writable_owner(member_id)
        result = self._executor.execute(site, f"DELETE FROM {MEMBER} WHERE member_id = ?", [member_id])
        if result.row_count == 0:
            raise EntityNotFoundError("member", member_id)
        logger.info("member_deleted", member_id=member_id, site=site.value)


__all__ = ["MemberService"]
