"""SQLite site adapter."""

from __future__ import annotations

import sqlite3
import threading
from typing import Any

from sitemesh.core.errors import ConnectivityError
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import SiteId

from .base import DatabaseAdapter
from .types import Timeouts


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite site adapter.

    Uses the built-in sqlite3 module. Suitable for:
    - Development and testing
    - Single-process deployments

    One connection per site, shared across threads and serialized by a lock.
    """

    def __init__(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None):
        super().__init__(site, config, timeouts)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Connect to the SQLite database file."""
        path = self._config.path or ":memory:"
        uri = path.startswith("file:")

        try:
            self._conn = sqlite3.connect(
                path,
                timeout=self._timeouts.query,
                check_same_thread=False,
                uri=uri,
                **self._config.options,
            )
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._connected = True
        except sqlite3.Error as e:
            raise ConnectivityError(
                f"Failed to connect to SQLite at {path}: {e}",
                cause=e,
            ).with_context(site=self._site.value) from e

    def disconnect(self) -> None:
        """Close SQLite connection."""
        with self._lock:
            if self._conn:
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
    "SQLiteAdapter",
]
