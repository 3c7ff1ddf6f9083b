"""PostgreSQL site adapter."""

from __future__ import annotations

from typing import Any

from sitemesh.core.errors import ConfigError, ConnectivityError
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import SiteId

from .base import DatabaseAdapter
from .types import Timeouts


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL site adapter.

    Uses a psycopg2 ``ThreadedConnectionPool``; every statement borrows a
    connection and returns it after commit. The statement deadline is set
    server-side through ``statement_timeout``.
    """

    def __init__(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None):
        super().__init__(site, config, timeouts)
        self._pool: Any = None

    def connect(self) -> None:
        """Create the PostgreSQL connection pool."""
        try:
            import psycopg2
            import psycopg2.pool
        except ImportError:
            raise ConfigError(
                "psycopg2 is required for PostgreSQL sites. Install with: pip install sitemesh[postgresql]"
            ) from None

        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=self._config.pool_size,
                host=self._config.host,
                port=self._config.port or 5432,
                dbname=self._config.database,
                user=self._config.user,
                password=self._config.password,
                connect_timeout=self._timeouts.connect,
                options=f"-c statement_timeout={self._timeouts.query * 1000}",
                **self._config.options,
            )
            self._connected = True
        except psycopg2.Error as e:
            raise ConnectivityError(
                f"Failed to connect to PostgreSQL at {self._config.host}: {e}",
                cause=e,
            ).with_context(site=self._site.value) from e

    def disconnect(self) -> None:
        """Close PostgreSQL connection pool."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            self._connected = False

    def acquire(self) -> Any:
        """Get connection from pool."""
        if not self._pool:
            self.connect()
        return self._pool.getconn()

    def release(self, conn: Any) -> None:
        """Return connection to pool, discarding it if the server closed it."""
        if self._pool:
            self._pool.putconn(conn, close=bool(conn.closed))


__all__ = [
    "PostgreSQLAdapter",
]
