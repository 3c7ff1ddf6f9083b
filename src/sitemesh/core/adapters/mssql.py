"""SQL Server site adapter."""

from __future__ import annotations

import threading
from typing import Any

from sitemesh.core.errors import ConfigError, ConnectivityError
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import SiteId

from .base import DatabaseAdapter
from .types import Timeouts


class MSSQLAdapter(DatabaseAdapter):
    """
    Microsoft SQL Server site adapter.

    Uses pymssql. pymssql connections are not thread-safe, so the adapter
    holds one connection per site and serializes statements on a lock.
    """

    def __init__(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None):
        super().__init__(site, config, timeouts)
        self._conn: Any = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Connect to SQL Server."""
        try:
            import pymssql
        except ImportError:
            raise ConfigError(
                "pymssql is required for SQL Server sites. Install with: pip install sitemesh[mssql]"
            ) from None

        try:
            self._conn = pymssql.connect(
                server=self._config.host,
                port=str(self._config.port or 1433),
                user=self._config.user,
                password=self._config.password,
                database=self._config.database,
                login_timeout=self._timeouts.connect,
                timeout=self._timeouts.query,
                autocommit=False,
                **self._config.options,
            )
            self._connected = True
        except pymssql.Error as e:
            raise ConnectivityError(
                f"Failed to connect to SQL Server at {self._config.host}: {e}",
                cause=e,
            ).with_context(site=self._site.value) from e

    def disconnect(self) -> None:
        """Close SQL Server connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._connected = False

    def acquire(self) -> Any:
        self._lock.acquire()
        try:
            if self._conn is None:
                self.connect()
        except Exception:
            self._lock.release()
            raise
        return self._conn

    def release(self, conn: Any) -> None:
        self._lock.release()


__all__ = [
    "MSSQLAdapter",
]
