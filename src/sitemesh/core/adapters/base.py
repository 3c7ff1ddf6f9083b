"""Database adapter base class.

Manifesto:
    All site adapters share the same lifecycle (connect/disconnect) and the
    same statement path: translate ``?`` placeholders through the site's
    dialect, run the statement, normalize rows to dicts and commit. The
    abstract base class defines that contract so the executor never depends
    on a specific driver.

Features:
    - Abstract ``connect()``, ``disconnect()``, ``acquire()``, ``release()``
    - ``execute()`` with placeholder translation and row normalization
    - Context-manager protocol for connection lifecycle
    - Config-driven construction from ``SiteConfig``

Tags:
    sitemesh, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sitemesh.core.dialect import Dialect, get_dialect
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import SiteId

from .types import QueryResult, Timeouts


class DatabaseAdapter(ABC):
    """
    Abstract base class for site adapters.

    Driver exceptions propagate unchanged from ``execute()``; the query
    executor classifies them through ``self.dialect``. Connection failures
    in ``connect()`` are raised as ``ConnectivityError`` directly.
    """

    def __init__(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None):
        self._site = site
        self._config = config
        self._timeouts = timeouts or Timeouts()
        self._connected = False
        self._dialect: Dialect = get_dialect(config.dialect)

    @property
    def site(self) -> SiteId:
        return self._site

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's site."""
        return self._dialect

    @property
    def is_connected(self) -> bool:
        """Whether adapter is connected."""
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """Establish connection (or pool) to the site."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close every connection held by the adapter."""
        ...

    @abstractmethod
    def acquire(self) -> Any:
        """Borrow a DB-API connection for one unit of work."""
        ...

    @abstractmethod
    def release(self, conn: Any) -> None:
        """Give a connection back after ``acquire()``."""
        ...

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Borrow a connection; commit on success, roll back on error."""
        conn = self.acquire()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release(conn)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Run one ``?``-placeholder statement and commit it."""
        driver_sql, driver_params = self._dialect.translate(sql, params)
        with self.transaction() as conn:
            cursor = conn.cursor()
            try:
                if driver_params is None:
                    cursor.execute(driver_sql)
                else:
                    cursor.execute(driver_sql, driver_params)
                return self._result(cursor)
            finally:
                cursor.close()

    def ping(self) -> None:
        """Run the dialect's liveness probe; raises on failure."""
        self.execute(self._dialect.probe_sql)

    @staticmethod
    def _result(cursor: Any) -> QueryResult:
        if cursor.description is None:
            return QueryResult(rows=[], row_count=max(cursor.rowcount, 0))
        columns = [desc[0] for desc in cursor.description]
        rows = [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]
        return QueryResult(rows=rows, row_count=len(rows))

    def __enter__(self) -> DatabaseAdapter:
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(site={self._site.value}, connected={self._connected})"


__all__ = [
    "DatabaseAdapter",
]
