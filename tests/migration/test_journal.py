"""Tests for ``sitemesh.migration.journal``."""

from __future__ import annotations

from sitemesh.core.sites import SiteId
from sitemesh.migration import MigrationJournal, MigrationRecord, MigrationState, RowRef


def make_record(group_id: str = "P1N1", **kwargs) -> MigrationRecord:
    return MigrationRecord(
        group_id=group_id, target_key="P3", old_site=SiteId.SITE_A, new_site=SiteId.SITE_C, **kwargs
    )


class TestMigrationState:
    def test_terminal(self):
        assert MigrationState.DONE.terminal
        assert MigrationState.COMPENSATED.terminal
        assert not MigrationState.FAILED.terminal
        assert not MigrationState.COPYING_MEMBERS.terminal


class TestMigrationRecord:
    def test_pending_deletions(self):
        record = make_record(
            deletions=[
                RowRef(site=SiteId.SITE_A, table="member", key={"member_id": "P1N1NV1"}, done=True),
                RowRef(site=SiteId.SITE_A, table="research_group", key={"group_id": "P1N1"}),
            ]
        )
        assert record.deletions_started
        assert [ref.describe() for ref in record.pending_deletions()] == ["siteA:research_group(group_id=P1N1)"]

    def test_summary(self):
        record = make_record(state=MigrationState.DONE, member_map={"P1N1NV1": "P3N1NV1"})
        summary = record.summary()
        assert summary["state"] == "DONE"
        assert summary["members"] == 1
        assert summary["old_site"] == "siteA"
        assert summary["failed_in"] is None


class TestMigrationJournal:
    def test_save_and_load(self, tmp_path):
        journal = MigrationJournal(tmp_path / "migrations")
        record = make_record(state=MigrationState.COPYING_GROUP)
        record.inserts.append(RowRef(site=SiteId.SITE_C, table="research_group", key={"group_id": "P3N1"}))
        journal.save(record)

        loaded = journal.load("P1N1")
        assert loaded == record
        assert loaded.inserts[0].site is SiteId.SITE_C

    def test_save_leaves_no_temp_files(self, tmp_path):
        journal = MigrationJournal(tmp_path)
        journal.save(make_record())
        journal.save(make_record())
        assert [p.name for p in tmp_path.iterdir()] == ["P1N1.json"]

    def test_load_missing(self, tmp_path):
        assert MigrationJournal(tmp_path / "none").load("P1N1") is None

    def test_unfinished(self, tmp_path):
        journal = MigrationJournal(tmp_path)
        journal.save(make_record("P1N1", state=MigrationState.FAILED))
        journal.save(make_record("P1N2", state=MigrationState.DONE))
        journal.save(make_record("P1N3", state=MigrationState.COMPENSATED))
        journal.save(make_record("P1N4", state=MigrationState.REWRITING))
        assert [r.group_id for r in journal.unfinished()] == ["P1N1", "P1N4"]

    def test_unfinished_without_directory(self, tmp_path):
        assert MigrationJournal(tmp_path / "absent").unfinished() == []
