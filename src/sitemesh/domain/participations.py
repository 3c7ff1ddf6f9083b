"""Participation service.

A participation row resides on the site of its project. The member may
belong to any partition. Rows written before a group migration can still
sit on the member's site, so single-row reads and deletes check the
project's site first and the member's site second.
"""

from __future__ import annotations

from sitemesh.core.errors import EntityNotFoundError, ForeignReferenceError, SiteMeshError
from sitemesh.core.logging import get_logger
from sitemesh.core.schema import MEMBER, PARTICIPATION, PROJECT
from sitemesh.core.sites import SiteId

from .base import SiteService
from .models import Participation

logger = get_logger(__name__)

_PAIR = "member_id = ? AND project_id = ?"


class ParticipationService(SiteService):
    """Member ↔ project links."""

    def list_all(self) -> list[Participation]:
        result = self._fan_out(f"SELECT member_id, project_id FROM {PARTICIPATION} ORDER BY member_id, project_id")
        return [Participation.from_row(row) for row in result.rows()]

    def list_by_member(self, member_id: str) -> list[Participation]:
        """Every project ``member_id`` works on; these may live on any site."""
        result = self._fan_out(
            f"SELECT member_id, project_id FROM {PARTICIPATION} WHERE member_id = ? ORDER BY project_id", [member_id]
        )
        return [Participation.from_row(row) for row in result.rows()]

    def list_by_project(self, project_id: str) -> list[Participation]:
        result = self._read(
            self._owner(project_id),
            f"SELECT member_id, project_id FROM {PARTICIPATION} WHERE project_id = ? ORDER BY member_id",
            [project_id],
        )
        return [Participation.from_row(row) for row in result.rows]

    def _candidate_sites(self, member_id: str, project_id: str) -> list[SiteId]:
        return list(dict.fromkeys([self._owner(project_id), self._owner(member_id)]))

    def find(self, member_id: str, project_id: str) -> Participation | None:
        for site in self._candidate_sites(member_id, project_id):
            row = self._read(
                site, f"SELECT member_id, project_id FROM {PARTICIPATION} WHERE {_PAIR}", [member_id, project_id]
            ).first()
            if row is not None:
                return Participation.from_row(row)
        return None

    def get(self, member_id: str, project_id: str) -> Participation:
        found = self.find(member_id, project_id)
        if found is None:
            raise EntityNotFoundError("participation", f"{member_id}/{project_id}")
        return found

    def _require_exists(self, table: str, column: str, identifier: str) -> None:
        site = self._failover.require(self._owner(identifier))
        row = self._executor.execute(site, f"SELECT {column} FROM {table} WHERE {column} = ?", [identifier]).first()
        if row is None:
            raise ForeignReferenceError(f"{table} {identifier} does not exist").with_context(
                site=site.value, identifier=identifier
            )

    def add(self, member_id: str, project_id: str) -> Participation:
        """Link a member to a project, on the project's site.

        Raises:
            ForeignReferenceError: the member or the project does not exist.
            DuplicateKeyError: the link already exists.
        """
        self._require_exists(PROJECT, "project_id", project_id)
        self._require_exists(MEMBER, "member_id", member_id)
        site = self._writable_owner(project_id)
        self._executor.execute(
            site, f"INSERT INTO {PARTICIPATION} (member_id, project_id) VALUES (?, ?)", [member_id, project_id]
        )
        logger.info("participation_added", member_id=member_id, project_id=project_id, site=site.value)
        return Participation(member_id=member_id, project_id=project_id)

    def remove(self, member_id: str, project_id: str) -> None:
        for site in self._candidate_sites(member_id, project_id):
            result = self._write(site, f"DELETE FROM {PARTICIPATION} WHERE {_PAIR}", [member_id, project_id])
            if result.row_count:
                logger.info("participation_removed", member_id=member_id, project_id=project_id, site=site.value)
                return
        raise EntityNotFoundError("participation", f"{member_id}/{project_id}")

    def update(self, old: Participation, new: Participation) -> Participation:
        """Replace one link with another: add the new pair, then remove the old one.

        If removing the old pair fails the new pair is removed again.
        """
        if old == new:
            return self.get(old.member_id, old.project_id)
        self.get(old.member_id, old.project_id)
        created = self.add(new.member_id, new.project_id)
        try:
            self.remove(old.member_id, old.project_id)
        except SiteMeshError:
            logger.warning("participation_update_reverted", member_id=new.member_id, project_id=new.project_id)
            self.remove(new.member_id, new.project_id)
            raise
        return created

    def reassign_member(self, old_member_id: str, project_id: str, new_member_id: str) -> Participation:
        """Hand a member's place on a project to another member, in place."""
        self._require_exists(MEMBER, "member_id", new_member_id)
        site = self._writable_owner(project_id)
        result = self._executor.execute(
            site,
            f"UPDATE {PARTICIPATION} SET member_id = ? WHERE {_PAIR}",
            [new_member_id, old_member_id, project_id],
        )
        if result.row_count == 0:
            raise EntityNotFoundError("participation", f"{old_member_id}/{project_id}")
        return Participation(member_id=new_member_id, project_id=project_id)


__all__ = ["ParticipationService"]
