"""Re-sharding: move a group and its record graph to another partition."""

from sitemesh.migration.engine import MigrationEngine
from sitemesh.migration.journal import MigrationJournal, MigrationRecord, MigrationState, RowRef

__all__ = [
    "MigrationEngine",
    "MigrationJournal",
    "MigrationRecord",
    "MigrationState",
    "RowRef",
]
