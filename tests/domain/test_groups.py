"""Tests for ``sitemesh.domain.groups``."""

from __future__ import annotations

import pytest

from sitemesh.core.errors import (
    EntityNotFoundError,
    ForeignReferenceError,
    NoAvailableSiteError,
    UnknownPartitionError,
    ValidationError,
)
from sitemesh.core.sites import SiteId
from sitemesh.domain import Group

A, B, C = SiteId.SITE_A, SiteId.SITE_B, SiteId.SITE_C


class TestRead:
    def test_list_partitions(self, mesh):
        assert [(e.partition_key, e.site) for e in mesh.groups.list_partitions()] == [
            ("P1", A),
            ("P2", B),
            ("P3", C),
        ]

    def test_list_all_across_sites(self, populated):
        assert [g.group_id for g in populated.groups.list_all()] == ["P1N1", "P2N1"]

    def test_list_all_skips_down_site(self, populated, take_down):
        take_down(B)
        assert [g.group_id for g in populated.groups.list_all()] == ["P1N1"]

    def test_list_all_when_global_down(self, populated, take_down):
        take_down(SiteId.GLOBAL)
        assert [g.group_id for g in populated.groups.list_all()] == ["P1N1", "P2N1"]

    def test_get(self, populated):
        assert populated.groups.get("P2N1") == Group(group_id="P2N1", group_name="Networks", partition_key="P2")

    def test_get_missing(self, populated):
        with pytest.raises(EntityNotFoundError):
            populated.groups.get("P1N9")


class TestCreate:
    def test_allocates_first_ordinal(self, mesh):
        group = mesh.groups.create("P3", "Compilers")
        assert group.group_id == "P3N1"
        assert mesh.groups.get("P3N1").group_name == "Compilers"

    def test_fills_gap(self, populated, db):
        db.insert(A, "research_group", group_id="P1N3", group_name="Later", partition_key="P1")
        assert populated.groups.create("P1", "Gap").group_id == "P1N2"
        assert populated.groups.create("P1", "Next").group_id == "P1N4"

    def test_unknown_partition(self, mesh):
        with pytest.raises(UnknownPartitionError):
            mesh.groups.create("P9", "Nowhere")

    def test_bad_partition_key(self, mesh):
        with pytest.raises(ValidationError):
            mesh.groups.create("P1N1", "Nested")

    def test_empty_name(self, mesh):
        with pytest.raises(ValidationError):
            mesh.groups.create("P1", "  ")

    def test_owner_down_rejects_write(self, mesh, take_down, db):
        take_down(C)
        with pytest.raises(NoAvailableSiteError):
            mesh.groups.create("P3", "Compilers")
        # no substitute site received the row
        assert db.count(A, "research_group") == 0
        assert db.count(B, "research_group") == 0


class TestUpdate:
    def test_rename_in_place(self, populated):
        group = populated.groups.update("P1N1", "Data Systems")
        assert group.group_id == "P1N1"
        assert populated.groups.get("P1N1").group_name == "Data Systems"

    def test_same_key_is_rename(self, populated):
        assert populated.groups.update("P1N1", "Renamed", partition_key="P1").group_id == "P1N1"

    def test_key_change_migrates(self, populated, db):
        group = populated.groups.update("P1N1", "Moved", partition_key="P3")
        assert group == Group(group_id="P3N1", group_name="Moved", partition_key="P3")
        assert db.count(A, "member") == 0
        assert db.count(C, "member") == 2

    def test_missing(self, populated):
        with pytest.raises(EntityNotFoundError):
            populated.groups.update("P1N5", "Ghost")


class TestDelete:
    def test_delete_empty_group(self, mesh):
        mesh.groups.create("P2", "Temp")
        mesh.groups.delete("P2N1")
        with pytest.raises(EntityNotFoundError):
            mesh.groups.get("P2N1")

    def test_group_with_members_is_referenced(self, populated):
        with pytest.raises(ForeignReferenceError):
            populated.groups.delete("P1N1")

    def test_missing(self, mesh):
        with pytest.raises(EntityNotFoundError):
            mesh.groups.delete("P1N1")
