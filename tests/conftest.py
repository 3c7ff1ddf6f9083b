"""
Shared pytest fixtures for sitemesh tests.

Every test that needs sites gets four SQLite databases in ``tmp_path``
(siteA, siteB, siteC and global) with the schema created and the routing
table seeded::

    P1 → siteA    P2 → siteB    P3 → siteC

Outages and statement failures are simulated with ``SiteSwitch``: the
adapters built for the mesh consult it before every statement and raise the
driver error a real failure would produce.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from sitemesh.app import SiteMesh
from sitemesh.core.adapters import QueryResult, SQLiteAdapter, Timeouts
from sitemesh.core.registry import RegistryEntry
from sitemesh.core.schema import create_schema, seed_registry
from sitemesh.core.settings import SiteConfig, SiteMeshSettings, get_settings
from sitemesh.core.sites import ALL_SITES, DialectName, SiteId

ROUTES = {"P1": SiteId.SITE_A, "P2": SiteId.SITE_B, "P3": SiteId.SITE_C}


# =============================================================================
# Fault injection
# =============================================================================


@dataclass
class SiteSwitch:
    """Shared switchboard the test adapters consult before each statement."""

    down: set[SiteId] = field(default_factory=set)
    # (site, predicate on SQL) → raise a non-connectivity driver error
    failures: list[tuple[SiteId, Callable[[str], bool]]] = field(default_factory=list)
    statements: list[tuple[SiteId, str]] = field(default_factory=list)

    def fail_when(self, site: SiteId, predicate: Callable[[str], bool]) -> None:
        self.failures.append((site, predicate))

    def clear(self) -> None:
        self.down.clear()
        self.failures.clear()


class SwitchableSQLiteAdapter(SQLiteAdapter):
    def __init__(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None, switch: SiteSwitch):
        super().__init__(site, config, timeouts)
        self._switch = switch

    def execute(self, sql: str, params: Any = ()) -> QueryResult:
        self._switch.statements.append((self._site, sql))
        if self._site in self._switch.down:
            raise sqlite3.OperationalError("unable to open database file")
        for site, predicate in self._switch.failures:
            if site is self._site and predicate(sql):
                raise sqlite3.OperationalError("disk I/O error")
        return super().execute(sql, params)


# =============================================================================
# Settings & mesh
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def site_paths(tmp_path: Path) -> dict[SiteId, Path]:
    return {site: tmp_path / f"{site.value}.db" for site in ALL_SITES}


@pytest.fixture
def settings(tmp_path: Path, site_paths: dict[SiteId, Path]) -> SiteMeshSettings:
    return SiteMeshSettings(
        sites={site.value: {"dialect": "sqlite", "path": str(path)} for site, path in site_paths.items()},
        data_dir=tmp_path / "data",
        health_interval_s=60,
        probe_timeout_s=5,
        log_level="DEBUG",
        log_json=False,
    )


@pytest.fixture
def switch() -> SiteSwitch:
    return SiteSwitch()


@pytest.fixture
def bare_mesh(settings: SiteMeshSettings, switch: SiteSwitch) -> Generator[SiteMesh, None, None]:
    """Mesh over empty site files: no tables, no routes."""

    def factory(site: SiteId, config: SiteConfig, timeouts: Timeouts) -> SwitchableSQLiteAdapter:
        return SwitchableSQLiteAdapter(site, config, timeouts, switch)

    mesh = SiteMesh.build(settings, adapter_factory=factory)
    yield mesh
    mesh.stop()


@pytest.fixture
def mesh(bare_mesh: SiteMesh) -> SiteMesh:
    """Mesh with schema on every site and P1/P2/P3 routed to siteA/siteB/siteC."""
    for site in ALL_SITES:
        create_schema(bare_mesh.executor, site)
    seed_registry(
        bare_mesh.executor,
        [RegistryEntry(key, site, DialectName.SQLITE) for key, site in ROUTES.items()],
    )
    return bare_mesh


@pytest.fixture
def take_down(mesh: SiteMesh, switch: SiteSwitch) -> Callable[..., None]:
    """Mark sites unreachable and refresh the health snapshot."""

    def _take_down(*sites: SiteId) -> None:
        switch.down.update(sites)
        mesh.health.probe_all()

    return _take_down


@pytest.fixture
def bring_up(mesh: SiteMesh, switch: SiteSwitch) -> Callable[..., None]:
    def _bring_up(*sites: SiteId) -> None:
        switch.down.difference_update(sites)
        mesh.health.probe_all()

    return _bring_up


# =============================================================================
# Raw access helpers
# =============================================================================


class SiteDB:
    """Statements straight through the executor, bypassing failover."""

    def __init__(self, mesh: SiteMesh):
        self._mesh = mesh

    def rows(self, site: SiteId, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        return self._mesh.executor.execute(site, sql, params or []).rows

    def ids(self, site: SiteId, table: str, column: str) -> list[str]:
        return [r[column] for r in self.rows(site, f"SELECT {column} FROM {table} ORDER BY {column}")]

    def count(self, site: SiteId, table: str) -> int:
        return self.rows(site, f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]

    def insert(self, site: SiteId, table: str, **values: str) -> None:
        columns = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        self._mesh.executor.execute(
            site, f"INSERT INTO {table} ({columns}) VALUES ({marks})", list(values.values())
        )


@pytest.fixture
def db(mesh: SiteMesh) -> SiteDB:
    return SiteDB(mesh)


@pytest.fixture
def populated(mesh: SiteMesh, db: SiteDB) -> SiteMesh:
    """A small graph spanning two partitions.

    siteA (P1): group P1N1 with members P1N1NV1, P1N1NV2 and projects
                P1N1DA1, P1N1DA2
    siteB (P2): group P2N1 with member P2N1NV1 and project P2N1DA1

    Participations:
        P1N1NV1 ↔ P1N1DA1   (siteA)
        P2N1NV1 ↔ P1N1DA1   (siteA, foreign member)
        P1N1NV2 ↔ P2N1DA1   (siteB, foreign member)
    """
    a, b = SiteId.SITE_A, SiteId.SITE_B
    db.insert(a, "research_group", group_id="P1N1", group_name="Databases", partition_key="P1")
    db.insert(a, "member", member_id="P1N1NV1", full_name="Ada", group_id="P1N1")
    db.insert(a, "member", member_id="P1N1NV2", full_name="Grace", group_id="P1N1")
    db.insert(a, "project", project_id="P1N1DA1", project_name="Query planner", group_id="P1N1")
    db.insert(a, "project", project_id="P1N1DA2", project_name="Storage engine", group_id="P1N1")
    db.insert(b, "research_group", group_id="P2N1", group_name="Networks", partition_key="P2")
    db.insert(b, "member", member_id="P2N1NV1", full_name="Linus", group_id="P2N1")
    db.insert(b, "project", project_id="P2N1DA1", project_name="Routing", group_id="P2N1")
    db.insert(a, "participation", member_id="P1N1NV1", project_id="P1N1DA1")
    db.insert(a, "participation", member_id="P2N1NV1", project_id="P1N1DA1")
    db.insert(b, "participation", member_id="P1N1NV2", project_id="P2N1DA1")
    return mesh
