"""Project service, including the two cross-site reports.

``list_without_participants`` answers "which projects nobody works on": a
project's participations normally live on its own site, but rows written
before a migration may sit elsewhere, so participation ids are collected
from every site before subtracting.

``list_with_foreign_members`` answers "which of this group's projects have
someone from another group on them".
"""

from __future__ import annotations

from collections import defaultdict

from sitemesh.core.errors import EntityNotFoundError, ForeignReferenceError
from sitemesh.core.identifiers import PROJECT_TAG
from sitemesh.core.logging import get_logger
from sitemesh.core.schema import MEMBER, PARTICIPATION, PROJECT, RESEARCH_GROUP
from sitemesh.core.sites import SiteId

from .base import FALLBACK_ERRORS, SiteService
from .models import Project

logger = get_logger(__name__)

_COLUMNS = "project_id, project_name, group_id"
IN_CHUNK = 500


class ProjectService(SiteService):
    """CRUD for projects. A project lives with its group."""

    def list_all(self) -> list[Project]:
        result = self._fan_out(f"SELECT {_COLUMNS} FROM {PROJECT} ORDER BY project_id")
        return [Project.from_row(row) for row in result.rows()]

    def list_by_group(self, group_id: str) -> list[Project]:
        result = self._read(
            self._owner(group_id),
            f"SELECT {_COLUMNS} FROM {PROJECT} WHERE group_id = ? ORDER BY project_id",
            [group_id],
        )
        return [Project.from_row(row) for row in result.rows]

    def find(self, project_id: str) -> Project | None:
        row = self._find_one(project_id, f"SELECT {_COLUMNS} FROM {PROJECT} WHERE project_id = ?", [project_id])
        return Project.from_row(row) if row else None

    def get(self, project_id: str) -> Project:
        project = self.find(project_id)
        if project is None:
            raise EntityNotFoundError("project", project_id)
        return project

    def create(self, group_id: str, project_name: str) -> Project:
        """Add a project to ``group_id`` as ``<group_id>DA<k>``."""
        project_name = self._require_text(project_name, "project_name")
        site = self._writable_owner(group_id)
        if (
            self._executor.execute(
                site, f"SELECT group_id FROM {RESEARCH_GROUP} WHERE group_id = ?", [group_id]
            ).first()
            is None
        ):
            raise ForeignReferenceError(f"Group {group_id} does not exist").with_context(
                site=site.value, identifier=group_id
            )

        def insert(project_id: str) -> None:
            self._executor.execute(
                site, f"INSERT INTO {PROJECT} ({_COLUMNS}) VALUES (?, ?, ?)", [project_id, project_name, group_id]
            )

        project_id, _ = self._allocator.create(site, group_id, PROJECT_TAG, insert)
        logger.info("project_created", project_id=project_id, site=site.value)
        return Project(project_id=project_id, project_name=project_name, group_id=group_id)

    def update(self, project_id: str, project_name: str) -> Project:
        project_name = self._require_text(project_name, "project_name")
        site = self._writable_owner(project_id)
        result = self._executor.execute(
            site, f"UPDATE {PROJECT} SET project_name = ? WHERE project_id = ?", [project_name, project_id]
        )
        if result.row_count == 0:
            raise EntityNotFoundError("project", project_id)
        row = self._executor.execute(site, f"SELECT {_COLUMNS} FROM {PROJECT} WHERE project_id = ?", [project_id])
        return Project.from_row(row.rows[0])

    def delete(self, project_id: str) -> None:
        site = self._writable_owner(project_id)
        result = self._executor.execute(site, f"DELETE FROM {PROJECT} WHERE project_id = ?", [project_id])
        if result.row_count == 0:
            raise EntityNotFoundError("project", project_id)
        logger.info("project_deleted", project_id=project_id, site=site.value)

    # ── Reports ──────────────────────────────────────────────────

    def list_without_participants(self) -> list[Project]:
        """Projects with no participation row on any reachable site."""
        projects = self.list_all()
        staffed = {
            str(row["project_id"]).strip()
            for row in self._fan_out(f"SELECT DISTINCT project_id FROM {PARTICIPATION}").rows()
        }
        return [project for project in projects if project.project_id not in staffed]

    def list_with_foreign_members(self, group_id: str) -> list[Project]:
        """Projects of ``group_id`` with at least one participant whose group differs.

        Member groups are read from each member's own site, so members of
        other partitions are resolved correctly.
        """
        projects = {project.project_id: project for project in self.list_by_group(group_id)}
        if not projects:
            return []

        pairs: list[tuple[str, str]] = []
        ids = list(projects)
        for start in range(0, len(ids), IN_CHUNK):
            chunk = ids[start : start + IN_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            found = self._fan_out(
                f"SELECT member_id, project_id FROM {PARTICIPATION} WHERE project_id IN ({placeholders})", chunk
            )
            pairs.extend((str(r["member_id"]).strip(), str(r["project_id"]).strip()) for r in found.rows())

        by_site: dict[SiteId, list[str]] = defaultdict(list)
        for member_id in dict.fromkeys(member for member, _ in pairs):
            try:
                by_site[self._owner(member_id)].append(member_id)
            except FALLBACK_ERRORS as e:
                logger.warning("member_owner_unresolved", member_id=member_id, error=e.message)

        member_groups: dict[str, str] = {}
        for site, member_ids in by_site.items():
            for start in range(0, len(member_ids), IN_CHUNK):
                chunk = member_ids[start : start + IN_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                result = self._read(
                    site, f"SELECT member_id, group_id FROM {MEMBER} WHERE member_id IN ({placeholders})", chunk
                )
                member_groups.update(
                    (str(r["member_id"]).strip(), str(r["group_id"]).strip()) for r in result.rows
                )

        foreign = {
            project_id
            for member_id, project_id in pairs
            if member_id in member_groups and member_groups[member_id] != group_id
        }
        return [project for project_id, project in projects.items() if project_id in foreign]


__all__ = ["ProjectService"]
