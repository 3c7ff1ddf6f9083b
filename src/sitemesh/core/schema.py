"""Table definitions and schema bootstrap.

Each data site carries the same four business tables; Global carries only
``site_routing``. DDL is rendered through the site's dialect so the same
definitions work on SQL Server, PostgreSQL and SQLite.

Tables::

    site_routing   (partition_key PK, site_id, dialect)            Global only
    research_group (group_id PK, group_name, partition_key)        data sites
    member         (member_id PK, full_name, group_id → research_group)
    project        (project_id PK, project_name, group_id → research_group)
    participation  (member_id, project_id) PK on the pair, no foreign keys:
                   either side may live on another site
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from sitemesh.core.dialect import Dialect
from sitemesh.core.executor import QueryExecutor
from sitemesh.core.logging import get_logger
from sitemesh.core.sites import SiteId

if TYPE_CHECKING:
    from sitemesh.core.registry import RegistryEntry

logger = get_logger(__name__)

SITE_ROUTING = "site_routing"
RESEARCH_GROUP = "research_group"
MEMBER = "member"
PROJECT = "project"
PARTICIPATION = "participation"

# Creation order; drop/delete in reverse.
DATA_TABLES: tuple[str, ...] = (RESEARCH_GROUP, MEMBER, PROJECT, PARTICIPATION)

ID_LENGTH = 30
NAME_LENGTH = 100


def _bodies(dialect: Dialect) -> dict[str, str]:
    key = f"VARCHAR({ID_LENGTH})"
    name = dialect.text_type(NAME_LENGTH)
    return {
        SITE_ROUTING: (
            f"partition_key {key} NOT NULL PRIMARY KEY, site_id VARCHAR(10) NOT NULL, dialect VARCHAR(10) NOT NULL"
        ),
        RESEARCH_GROUP: (
            f"group_id {key} NOT NULL PRIMARY KEY, group_name {name} NOT NULL, partition_key {key} NOT NULL"
        ),
        MEMBER: (
            f"member_id {key} NOT NULL PRIMARY KEY, full_name {name} NOT NULL, "
            f"group_id {key} NOT NULL REFERENCES {RESEARCH_GROUP} (group_id)"
        ),
        PROJECT: (
            f"project_id {key} NOT NULL PRIMARY KEY, project_name {name} NOT NULL, "
            f"group_id {key} NOT NULL REFERENCES {RESEARCH_GROUP} (group_id)"
        ),
        PARTICIPATION: (
            f"member_id {key} NOT NULL, project_id {key} NOT NULL, PRIMARY KEY (member_id, project_id)"
        ),
    }


def table_ddl(dialect: Dialect, table: str) -> str:
    """``CREATE TABLE`` statement (idempotent) for one table."""
    return dialect.create_table(table, _bodies(dialect)[table])


def create_schema(executor: QueryExecutor, site: SiteId) -> list[str]:
    """Create the tables ``site`` should hold; existing tables are left alone.

    Returns:
        The table names that were ensured.
    """
    dialect = executor.dialect_for(site)
    tables = (SITE_ROUTING,) if site is SiteId.GLOBAL else DATA_TABLES
    for table in tables:
        executor.execute(site, table_ddl(dialect, table))
    logger.info("schema_ensured", site=site.value, tables=list(tables))
    return list(tables)


def seed_registry(executor: QueryExecutor, entries: Iterable[RegistryEntry]) -> int:
    """Write routing entries to Global, replacing any existing entry per key."""
    count = 0
    for entry in entries:
        executor.execute(SiteId.GLOBAL, f"DELETE FROM {SITE_ROUTING} WHERE partition_key = ?", [entry.partition_key])
        executor.execute(
            SiteId.GLOBAL,
            f"INSERT INTO {SITE_ROUTING} (partition_key, site_id, dialect) VALUES (?, ?, ?)",
            [entry.partition_key, entry.site.value, entry.dialect.value],
        )
        count += 1
    logger.info("registry_seeded", entries=count)
    return count


__all__ = [
    "SITE_ROUTING",
    "RESEARCH_GROUP",
    "MEMBER",
    "PROJECT",
    "PARTICIPATION",
    "DATA_TABLES",
    "table_ddl",
    "create_schema",
    "seed_registry",
]
