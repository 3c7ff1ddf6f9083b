"""Connection pool manager.

Holds at most one connected adapter per site for the life of the process.
The first ``get_connection(site)`` builds and connects the adapter; every
later call returns the same object. Concurrent first calls for one site are
serialized so exactly one adapter is ever created (single-flight); calls for
different sites never wait on each other.

There is no expiry and no reconnect here. A broken connection surfaces as a
``ConnectivityError`` from the executor, the health monitor marks the site
down, and reads fail over.

Tags:
    sitemesh, connection-pool, single-flight
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from sitemesh.core.adapters import DatabaseAdapter, Timeouts, create_adapter
from sitemesh.core.dialect import Dialect, get_dialect
from sitemesh.core.errors import ConfigError
from sitemesh.core.logging import get_logger
from sitemesh.core.settings import SiteConfig, SiteMeshSettings
from sitemesh.core.sites import SiteId

logger = get_logger(__name__)

AdapterFactory = Callable[[SiteId, SiteConfig, Timeouts], DatabaseAdapter]


class ConnectionPoolManager:
    """Lazily connected, cached adapters keyed by site."""

    def __init__(self, settings: SiteMeshSettings, factory: AdapterFactory | None = None):
        self._settings = settings
        self._factory = factory or create_adapter
        self._timeouts = Timeouts(connect=settings.connect_timeout_s, query=settings.query_timeout_s)
        self._adapters: dict[SiteId, DatabaseAdapter] = {}
        self._site_locks: dict[SiteId, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, site: SiteId) -> threading.Lock:
        with self._guard:
            lock = self._site_locks.get(site)
            if lock is None:
                lock = self._site_locks[site] = threading.Lock()
            return lock

    def get_connection(self, site: SiteId) -> DatabaseAdapter:
        """Return the connected adapter for ``site``, creating it on first use.

        Raises:
            ConfigError: site has no configuration or its driver is missing.
            ConnectivityError: the first connect failed (nothing is cached).
        """
        adapter = self._adapters.get(site)
        if adapter is not None:
            return adapter

        with self._lock_for(site):
            adapter = self._adapters.get(site)
            if adapter is not None:
                return adapter

            config = self._settings.sites.get(site)
            if config is None:
                raise ConfigError(f"No configuration for site {site}").with_context(site=site.value)

            adapter = self._factory(site, config, self._timeouts)
            adapter.connect()
            self._adapters[site] = adapter
            logger.info("site_connected", site=site.value, dialect=config.dialect.value)
            return adapter

    def dialect_for(self, site: SiteId) -> Dialect:
        """Dialect of a configured site, without connecting to it."""
        config = self._settings.sites.get(site)
        if config is None:
            raise ConfigError(f"No configuration for site {site}").with_context(site=site.value)
        return get_dialect(config.dialect)

    def cached_sites(self) -> list[SiteId]:
        return list(self._adapters)

    def close_all(self) -> None:
        """Disconnect and forget every cached adapter."""
        with self._guard:
            adapters = list(self._adapters.items())
            self._adapters.clear()
        for site, adapter in adapters:
            try:
                adapter.disconnect()
            except Exception as e:
                logger.warning("site_disconnect_failed", site=site.value, error=str(e))


__all__ = [
    "AdapterFactory",
    "ConnectionPoolManager",
]
