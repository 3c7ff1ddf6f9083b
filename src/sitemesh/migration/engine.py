"""
Migration engine: move a research group's record graph to another partition.

Changing a group's partition key changes the site that owns it, so the
group, its members, its projects and every participation touching them are
copied to the new site under freshly allocated identifiers, the new group
row is rewritten, and the source rows are deleted.

Manifesto:
    - **Journaled saga:** every step is written to a ``MigrationJournal``
      before the run moves on, so a failure always leaves an exact record
    - **Compensate before the point of no return:** failures while copying
      undo the copy; failures while deleting never guess and stop for an
      operator
    - **Cross-partition references survive:** participations with members
      or projects from other groups are carried over with the foreign side
      unchanged

Architecture:
    ::

        VALIDATING ─► COPYING_GROUP ─► COPYING_MEMBERS ─► COPYING_PROJECTS
                                                              │
           ┌──────────────────────────────────────────────────┘
           ▼
        COPYING_PARTICIPATIONS ─► REWRITING ─► DELETING_SOURCE ─► DONE
           │            │             │               │
           └── failure ─┴─────────────┘               └── failure ─► FAILED
                    │                                               (resume)
                    ▼
              compensation ──ok──► COMPENSATED (MigrationAbortedError)
                    └──fail──────► FAILED (MigrationPartialFailureError)

Rules:
    - Members and projects are selected by ``group_id`` at the old site.
    - Participations are gathered from every registered data site.
    - A copied participation resides at the site of its (possibly new)
      project.
    - Source participations are deleted by their exact old pair at the site
      where each one was found.
    - One run per group at a time; an unfinished journal blocks new runs.

Tags:
    sitemesh, migration, saga, re-sharding, compensation
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from sitemesh.core.errors import (
    ConnectivityError,
    DuplicateKeyError,
    EntityNotFoundError,
    MigrationAbortedError,
    MigrationInProgressError,
    MigrationPartialFailureError,
    MigrationRejectedError,
    NoAvailableSiteError,
    RoutingError,
    SiteMeshError,
)
from sitemesh.core.executor import QueryExecutor
from sitemesh.core.identifiers import GROUP_TAG, MEMBER_TAG, PROJECT_TAG, IdentifierAllocator, parse_ordinals
from sitemesh.core.logging import LogContext, get_logger
from sitemesh.core.partition import PartitionResolver, partition_key_of
from sitemesh.core.registry import SiteRegistry
from sitemesh.core.schema import MEMBER, PARTICIPATION, PROJECT, RESEARCH_GROUP
from sitemesh.core.sites import SiteId

from .journal import MigrationJournal, MigrationRecord, MigrationState, RowRef

logger = get_logger(__name__)

# Keeps IN (...) lists well under SQL Server's 2100-parameter limit.
IN_CHUNK = 500


def _chunks(items: Sequence[str], size: int = IN_CHUNK) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class MigrationEngine:
    """Runs, resumes and compensates group migrations."""

    def __init__(
        self,
        executor: QueryExecutor,
        registry: SiteRegistry,
        partitions: PartitionResolver,
        allocator: IdentifierAllocator,
        journal: MigrationJournal,
    ):
        self._executor = executor
        self._registry = registry
        self._partitions = partitions
        self._allocator = allocator
        self._journal = journal
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @property
    def journal(self) -> MigrationJournal:
        return self._journal

    # ── Locking ──────────────────────────────────────────────────

    @contextmanager
    def _exclusive(self, group_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(group_id, threading.Lock())
        if not lock.acquire(blocking=False):
            raise MigrationInProgressError(f"A migration of group {group_id} is already running").with_context(
                group_id=group_id
            )
        try:
            yield
        finally:
            lock.release()

    # ── Public API ───────────────────────────────────────────────

    def migrate(self, group_id: str, target_key: str, new_name: str | None = None) -> MigrationRecord:
        """Move ``group_id`` to partition ``target_key``.

        Returns:
            The finished journal record (state ``DONE``); ``new_group_id``,
            ``member_map`` and ``project_map`` describe the new identifiers.

        Raises:
            MigrationRejectedError: validation failed, nothing was written.
            MigrationInProgressError: the group is being migrated, or an
                unfinished journal exists for it.
            EntityNotFoundError: the group does not exist at its site.
            MigrationAbortedError: copy failed and was fully undone.
            MigrationPartialFailureError: manual ``resume``/``compensate`` needed.
        """
        with self._exclusive(group_id):
            existing = self._journal.load(group_id)
            if existing is not None and not existing.finished:
                raise MigrationInProgressError(
                    f"Group {group_id} has an unfinished migration ({existing.state.value}); "
                    "resume or compensate it first"
                ).with_context(group_id=group_id, migration_id=existing.migration_id)

            record = self._validate(group_id, target_key, new_name)
            with LogContext(migration_id=record.migration_id, group_id=group_id):
                logger.info(
                    "migration_started",
                    old_site=record.old_site.value,
                    new_site=record.new_site.value,
                    target_key=target_key,
                )
                self._copy_and_rewrite(record)
                self._delete_source(record)
                logger.info("migration_done", new_group_id=record.new_group_id)
                return record

    def resume(self, group_id: str) -> MigrationRecord:
        """Finish the source deletion of an interrupted migration."""
        with self._exclusive(group_id):
            record = self._unfinished(group_id)
            if not record.copy_complete:
                raise MigrationRejectedError(
                    f"Migration of {group_id} stopped before the copy completed; compensate it instead"
                ).with_context(group_id=group_id, migration_id=record.migration_id)
            with LogContext(migration_id=record.migration_id, group_id=group_id):
                logger.info("migration_resumed", pending=len(record.pending_deletions()))
                self._delete_source(record)
                return record

    def compensate(self, group_id: str) -> MigrationRecord:
        """Undo the copy of an interrupted migration whose source is still intact."""
        with self._exclusive(group_id):
            record = self._unfinished(group_id)
            if record.deletions_started:
                raise MigrationRejectedError(
                    f"Source rows of {group_id} are already partly deleted; resume instead"
                ).with_context(group_id=group_id, migration_id=record.migration_id)
            with LogContext(migration_id=record.migration_id, group_id=group_id):
                self._run_compensation(record)
                if record.state is not MigrationState.COMPENSATED:
                    raise MigrationPartialFailureError(
                        f"Compensation of {group_id} failed: {record.error}",
                        state=record.state.value,
                    ).with_context(group_id=group_id, migration_id=record.migration_id)
                return record

    def status(self, group_id: str) -> MigrationRecord | None:
        return self._journal.load(group_id)

    # ── Validation ───────────────────────────────────────────────

    def _unfinished(self, group_id: str) -> MigrationRecord:
        record = self._journal.load(group_id)
        if record is None or record.finished:
            raise MigrationRejectedError(f"No unfinished migration for group {group_id}").with_context(
                group_id=group_id
            )
        return record

    def _validate(self, group_id: str, target_key: str, new_name: str | None) -> MigrationRecord:
        failover = self._executor.failover
        try:
            old_key = partition_key_of(group_id)
            if old_key == target_key:
                raise MigrationRejectedError(f"Group {group_id} is already in partition {target_key}")
            old_site = self._partitions.resolve_key(old_key)
            new_site = self._partitions.resolve_key(target_key)
            if old_site is new_site:
                raise MigrationRejectedError(
                    f"Partitions {old_key} and {target_key} are both on {old_site}; "
                    "moving between co-located partitions is not supported"
                )
            for site in dict.fromkeys([old_site, new_site, *self._registry.sites()]):
                failover.require(site)
        except MigrationRejectedError as e:
            raise e.with_context(group_id=group_id) from None
        except (RoutingError, NoAvailableSiteError, ConnectivityError) as e:
            raise MigrationRejectedError(f"Cannot migrate {group_id}: {e.message}", cause=e).with_context(
                group_id=group_id
            ) from e

        group = self._executor.execute(
            old_site, f"SELECT group_id, group_name FROM {RESEARCH_GROUP} WHERE group_id = ?", [group_id]
        ).first()
        if group is None:
            raise EntityNotFoundError("group", group_id)

        record = MigrationRecord(
            group_id=group_id,
            target_key=target_key,
            old_site=old_site,
            new_site=new_site,
            new_name=new_name if new_name is not None else group["group_name"],
            state=MigrationState.VALIDATING,
        )
        self._journal.save(record)
        return record

    # ── Copy / rewrite ───────────────────────────────────────────

    def _advance(self, record: MigrationRecord, state: MigrationState) -> None:
        record.state = state
        self._journal.save(record)
        logger.info("migration_step", step=state.value)

    def _insert(self, record: MigrationRecord, site: SiteId, table: str, row: dict[str, str]) -> None:
        """Insert one row, journaling it first so compensation can find it."""
        key_columns = ("member_id", "project_id") if table == PARTICIPATION else (next(iter(row)),)
        ref = RowRef(site=site, table=table, key={col: row[col] for col in key_columns})
        record.inserts.append(ref)
        self._journal.save(record)
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        try:
            self._executor.execute(
                site, f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})", list(row.values())
            )
        except SiteMeshError:
            record.inserts.remove(ref)
            self._journal.save(record)
            raise

    def _copy_and_rewrite(self, record: MigrationRecord) -> None:
        try:
            self._copy_group(record)
            self._copy_children(record, MigrationState.COPYING_MEMBERS, MEMBER, "member_id", "full_name", MEMBER_TAG)
            self._copy_children(
                record, MigrationState.COPYING_PROJECTS, PROJECT, "project_id", "project_name", PROJECT_TAG
            )
            self._copy_participations(record)
            self._rewrite(record)
        except Exception as e:
            failed_in = record.state
            logger.error("migration_copy_failed", step=failed_in.value, error=str(e))
            record.failed_in = failed_in
            record.error = str(e)
            self._run_compensation(record)
            if record.state is MigrationState.COMPENSATED:
                raise MigrationAbortedError(
                    f"Migration of {record.group_id} failed in {failed_in.value} and was rolled back: {e}",
                    cause=e,
                ).with_context(group_id=record.group_id, migration_id=record.migration_id, step=failed_in.value) from e
            raise MigrationPartialFailureError(
                f"Migration of {record.group_id} failed in {failed_in.value} and could not be rolled back: "
                f"{record.error}",
                state=record.state.value,
                cause=e,
            ).with_context(group_id=record.group_id, migration_id=record.migration_id, step=failed_in.value) from e

    def _copy_group(self, record: MigrationRecord) -> None:
        self._advance(record, MigrationState.COPYING_GROUP)

        def insert(new_id: str) -> None:
            self._insert(
                record,
                record.new_site,
                RESEARCH_GROUP,
                {"group_id": new_id, "group_name": record.new_name or "", "partition_key": record.target_key},
            )

        record.new_group_id, _ = self._allocator.create(record.new_site, record.target_key, GROUP_TAG, insert)
        self._journal.save(record)
        logger.info("group_copied", old=record.group_id, new=record.new_group_id)

    def _copy_children(
        self,
        record: MigrationRecord,
        state: MigrationState,
        table: str,
        id_column: str,
        name_column: str,
        tag: str,
    ) -> None:
        self._advance(record, state)
        mapping = record.member_map if table == MEMBER else record.project_map
        rows = self._executor.execute(
            record.old_site,
            f"SELECT {id_column}, {name_column} FROM {table} WHERE group_id = ? ORDER BY {id_column}",
            [record.group_id],
        ).rows
        _, unparseable = parse_ordinals((row[id_column] for row in rows), f"{record.group_id}{tag}")
        for old_id in unparseable:
            logger.warning("identifier_suffix_unparseable", table=table, identifier=old_id, site=record.old_site.value)
        new_group_id = record.new_group_id or ""
        for row in rows:
            old_id = row[id_column]

            def insert(new_id: str, _row: dict = row) -> None:
                self._insert(
                    record,
                    record.new_site,
                    table,
                    {id_column: new_id, name_column: _row[name_column], "group_id": new_group_id},
                )

            new_id, _ = self._allocator.create(record.new_site, new_group_id, tag, insert)
            mapping[old_id] = new_id
            self._journal.save(record)
            logger.debug("row_copied", table=table, old=old_id, new=new_id)
        logger.info("table_copied", table=table, rows=len(rows))

    def _gather_participations(self, record: MigrationRecord) -> list[tuple[SiteId, str, str]]:
        """Every participation touching the group's members or projects, with its residence site."""
        found: dict[tuple[SiteId, str, str], None] = {}
        for site in self._registry.sites():
            for column, ids in (("member_id", list(record.member_map)), ("project_id", list(record.project_map))):
                for chunk in _chunks(ids):
                    placeholders = ", ".join("?" for _ in chunk)
                    result = self._executor.execute(
                        site,
                        f"SELECT member_id, project_id FROM {PARTICIPATION} WHERE {column} IN ({placeholders})",
                        chunk,
                    )
                    for row in result.rows:
                        found[(site, row["member_id"], row["project_id"])] = None
        return list(found)

    def _copy_participations(self, record: MigrationRecord) -> None:
        self._advance(record, MigrationState.COPYING_PARTICIPATIONS)
        sources = self._gather_participations(record)
        copied = 0
        for residence, member_id, project_id in sources:
            new_member = record.member_map.get(member_id, member_id)
            new_project = record.project_map.get(project_id, project_id)
            if member_id not in record.member_map and project_id not in record.project_map:
                logger.debug("participation_unrelated", member_id=member_id, project_id=project_id)
                continue
            target = record.new_site if project_id in record.project_map else self._partitions.resolve_site(new_project)
            try:
                self._insert(
                    record, target, PARTICIPATION, {"member_id": new_member, "project_id": new_project}
                )
                copied += 1
            except DuplicateKeyError:
                logger.info("participation_already_present", site=target.value, member_id=new_member, project_id=new_project)
            record.deletions.append(
                RowRef(site=residence, table=PARTICIPATION, key={"member_id": member_id, "project_id": project_id})
            )
        record.participations_copied = copied
        self._journal.save(record)
        logger.info("table_copied", table=PARTICIPATION, rows=copied, found=len(sources))

    def _rewrite(self, record: MigrationRecord) -> None:
        self._advance(record, MigrationState.REWRITING)
        self._executor.execute(
            record.new_site,
            f"UPDATE {RESEARCH_GROUP} SET group_name = ?, partition_key = ? WHERE group_id = ?",
            [record.new_name or "", record.target_key, record.new_group_id],
        )
        # Deletion plan: participations first, then projects, members, group.
        old = record.old_site
        record.deletions.extend(RowRef(site=old, table=PROJECT, key={"project_id": p}) for p in record.project_map)
        record.deletions.extend(RowRef(site=old, table=MEMBER, key={"member_id": m}) for m in record.member_map)
        record.deletions.append(RowRef(site=old, table=RESEARCH_GROUP, key={"group_id": record.group_id}))
        record.copy_complete = True
        self._journal.save(record)

    # ── Delete / compensate ──────────────────────────────────────

    def _delete_row(self, ref: RowRef) -> None:
        where = " AND ".join(f"{column} = ?" for column in ref.key)
        self._executor.execute(ref.site, f"DELETE FROM {ref.table} WHERE {where}", list(ref.key.values()))

    def _delete_source(self, record: MigrationRecord) -> None:
        self._advance(record, MigrationState.DELETING_SOURCE)
        for ref in record.pending_deletions():
            try:
                self._delete_row(ref)
            except SiteMeshError as e:
                record.state = MigrationState.FAILED
                record.failed_in = MigrationState.DELETING_SOURCE
                record.error = f"{ref.describe()}: {e.message}"
                self._journal.save(record)
                logger.error("migration_delete_failed", row=ref.describe(), error=e.message)
                raise MigrationPartialFailureError(
                    f"Migration of {record.group_id} copied to {record.new_group_id} but deleting "
                    f"{ref.describe()} failed: {e.message}",
                    state=record.state.value,
                    cause=e,
                ).with_context(
                    group_id=record.group_id, migration_id=record.migration_id, step=MigrationState.DELETING_SOURCE.value
                ) from e
            ref.done = True
            self._journal.save(record)
        record.error = None
        self._advance(record, MigrationState.DONE)

    def _run_compensation(self, record: MigrationRecord) -> None:
        """Delete every journaled insert, newest first. Sets COMPENSATED or FAILED."""
        for ref in reversed(record.inserts):
            if ref.done:
                continue
            try:
                self._delete_row(ref)
            except SiteMeshError as e:
                record.state = MigrationState.FAILED
                record.error = f"compensation of {ref.describe()} failed: {e.message}"
                self._journal.save(record)
                logger.error("migration_compensation_failed", row=ref.describe(), error=e.message)
                return
            ref.done = True
            self._journal.save(record)
        record.state = MigrationState.COMPENSATED
        self._journal.save(record)
        logger.warning("migration_compensated", inserts=len(record.inserts))


__all__ = [
    "MigrationEngine",
]
