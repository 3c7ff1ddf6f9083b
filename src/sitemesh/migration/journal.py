"""Persisted migration journal.

A migration touches several independent databases, so it cannot be one
transaction. Instead every run keeps a journal: one JSON document per group
under ``<data_dir>/migrations/<group_id>.json``, rewritten atomically
(temp file + ``os.replace``) each time the run makes progress.

The journal records:
    - the run's identity and current ``MigrationState``
    - the old → new identifier maps
    - every insert, written *before* the statement runs, so compensation
      knows exactly what may exist on the target side
    - the deletion plan, fixed when the copy is complete, and which of its
      steps have finished

A journal whose state is neither ``DONE`` nor ``COMPENSATED`` is unfinished
and blocks any new migration of that group until an operator resumes or
compensates it.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from sitemesh.core.logging import get_logger
from sitemesh.core.sites import SiteId

logger = get_logger(__name__)


class MigrationState(str, Enum):
    """Lifecycle of one migration run."""

    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    COPYING_GROUP = "COPYING_GROUP"
    COPYING_MEMBERS = "COPYING_MEMBERS"
    COPYING_PROJECTS = "COPYING_PROJECTS"
    COPYING_PARTICIPATIONS = "COPYING_PARTICIPATIONS"
    REWRITING = "REWRITING"
    DELETING_SOURCE = "DELETING_SOURCE"
    DONE = "DONE"
    FAILED = "FAILED"
    COMPENSATED = "COMPENSATED"

    @property
    def terminal(self) -> bool:
        return self in (MigrationState.DONE, MigrationState.COMPENSATED)


class RowRef(BaseModel):
    """A single row on a single site, addressed by its key columns."""

    site: SiteId
    table: str
    key: dict[str, str]
    done: bool = False

    def describe(self) -> str:
        keys = ", ".join(f"{k}={v}" for k, v in self.key.items())
        return f"{self.site.value}:{self.table}({keys})"


def _now() -> datetime:
    return datetime.now(UTC)


class MigrationRecord(BaseModel):
    """Journal document for one migration run."""

    migration_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    group_id: str
    target_key: str
    old_site: SiteId
    new_site: SiteId
    new_name: str | None = None
    new_group_id: str | None = None

    state: MigrationState = MigrationState.IDLE
    failed_in: MigrationState | None = None
    error: str | None = None

    member_map: dict[str, str] = Field(default_factory=dict)
    project_map: dict[str, str] = Field(default_factory=dict)
    participations_copied: int = 0

    inserts: list[RowRef] = Field(default_factory=list)
    deletions: list[RowRef] = Field(default_factory=list)
    copy_complete: bool = False

    started_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def finished(self) -> bool:
        return self.state.terminal

    @property
    def deletions_started(self) -> bool:
        return any(ref.done for ref in self.deletions)

    def pending_deletions(self) -> list[RowRef]:
        return [ref for ref in self.deletions if not ref.done]

    def summary(self) -> dict[str, object]:
        return {
            "migration_id": self.migration_id,
            "group_id": self.group_id,
            "new_group_id": self.new_group_id,
            "old_site": self.old_site.value,
            "new_site": self.new_site.value,
            "target_key": self.target_key,
            "state": self.state.value,
            "failed_in": self.failed_in.value if self.failed_in else None,
            "error": self.error,
            "members": len(self.member_map),
            "projects": len(self.project_map),
            "participations": self.participations_copied,
            "inserts": len(self.inserts),
            "deletions_done": sum(1 for ref in self.deletions if ref.done),
            "deletions_total": len(self.deletions),
            "updated_at": self.updated_at.isoformat(),
        }


class MigrationJournal:
    """File-backed store of ``MigrationRecord`` documents, one per group."""

    def __init__(self, directory: Path | str):
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, group_id: str) -> Path:
        return self._dir / f"{group_id}.json"

    def load(self, group_id: str) -> MigrationRecord | None:
        path = self.path_for(group_id)
        if not path.exists():
            return None
        return MigrationRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, record: MigrationRecord) -> None:
        """Write ``record`` atomically."""
        record.updated_at = _now()
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{record.group_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(record.model_dump_json(indent=2))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path_for(record.group_id))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("journal_saved", group_id=record.group_id, state=record.state.value)

    def unfinished(self) -> list[MigrationRecord]:
        """Every journal that still blocks its group."""
        if not self._dir.exists():
            return []
        records = []
        for path in sorted(self._dir.glob("*.json")):
            record = MigrationRecord.model_validate_json(path.read_text(encoding="utf-8"))
            if not record.finished:
                records.append(record)
        return records


__all__ = [
    "MigrationState",
    "RowRef",
    "MigrationRecord",
    "MigrationJournal",
]
