"""Site database adapters.

One adapter per dialect, each owning the connection (or pool) for one site:

- :class:`MSSQLAdapter`: SQL Server via pymssql (``pip install sitemesh[mssql]``)
- :class:`PostgreSQLAdapter`: PostgreSQL via psycopg2 (``pip install sitemesh[postgresql]``)
- :class:`SQLiteAdapter`: SQLite via the standard library (development, tests)

Drivers are imported lazily in ``connect()``; a missing driver raises
``ConfigError`` only when a site that needs it is first used.
"""

from .base import DatabaseAdapter
from .mssql import MSSQLAdapter
from .postgresql import PostgreSQLAdapter
from .registry import AdapterRegistry, adapter_registry, create_adapter
from .sqlite import SQLiteAdapter
from .types import QueryResult, Timeouts

__all__ = [
    "DatabaseAdapter",
    "MSSQLAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
    "AdapterRegistry",
    "adapter_registry",
    "create_adapter",
    "QueryResult",
    "Timeouts",
]
