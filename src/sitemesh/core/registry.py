"""Site registry.

The authoritative partition-key → site mapping, stored in ``site_routing``
on the Global site. Every lookup reads the full table (it is small) unless
``registry_ttl_s`` enables a short in-process cache.

Rules:
    - A key maps to exactly one site.
    - The mapped site must be one of the data sites; an entry pointing at
      Global or at an unknown name is reported as ``InvalidSiteError`` for
      that key and left out of ``entries()``.
    - The stored dialect is informational. When it disagrees with the site's
      configured dialect, the configuration wins and the mismatch is logged.

Tags:
    sitemesh, registry, routing, global-site
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any

from sitemesh.core.errors import InvalidSiteError, UnknownPartitionError
from sitemesh.core.executor import QueryExecutor
from sitemesh.core.logging import get_logger
from sitemesh.core.schema import SITE_ROUTING
from sitemesh.core.sites import DATA_SITES, DialectName, SiteId

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    """One routing row."""

    partition_key: str
    site: SiteId
    dialect: DialectName

    def to_dict(self) -> dict[str, str]:
        return {"partition_key": self.partition_key, "site": self.site.value, "dialect": self.dialect.value}


class SiteRegistry:
    """Reads partition routing from Global."""

    def __init__(self, executor: QueryExecutor, *, ttl_s: float = 0.0):
        self._executor = executor
        self._ttl = ttl_s
        self._cache: dict[str, dict[str, Any]] | None = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    def _rows(self) -> dict[str, dict[str, Any]]:
        if self._ttl > 0:
            with self._lock:
                if self._cache is not None and time.monotonic() - self._loaded_at < self._ttl:
                    return self._cache
        result = self._executor.execute_preferred(
            SiteId.GLOBAL,
            f"SELECT partition_key, site_id, dialect FROM {SITE_ROUTING} ORDER BY partition_key",
        )
        rows = {str(row["partition_key"]).strip(): row for row in result.rows}
        if self._ttl > 0:
            with self._lock:
                self._cache = rows
                self._loaded_at = time.monotonic()
        return rows

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None

    def _entry(self, partition_key: str, row: dict[str, Any]) -> RegistryEntry:
        raw_site = str(row["site_id"]).strip()
        try:
            site = SiteId.parse(raw_site)
        except ValueError:
            raise InvalidSiteError(raw_site).with_context(partition_key=partition_key) from None
        if not site.is_data_site:
            raise InvalidSiteError(raw_site, f"Partition {partition_key} is routed to non-data site {raw_site}")

        configured = self._executor.dialect_for(site).name
        stored = row.get("dialect")
        try:
            stored_dialect = DialectName.parse(stored) if stored else configured
        except ValueError:
            stored_dialect = configured
        if stored_dialect is not configured:
            logger.warning(
                "registry_dialect_mismatch",
                partition_key=partition_key,
                site=site.value,
                stored=str(stored),
                configured=configured.value,
            )
        return RegistryEntry(partition_key=partition_key, site=site, dialect=configured)

    def lookup(self, partition_key: str) -> RegistryEntry:
        """Routing entry for one partition key.

        Raises:
            UnknownPartitionError: the key is not registered.
            InvalidSiteError: the registered site is not a data site.
            NoAvailableSiteError / ConnectivityError: Global is unreachable.
        """
        row = self._rows().get(partition_key)
        if row is None:
            raise UnknownPartitionError(partition_key)
        return self._entry(partition_key, row)

    def entries(self) -> list[RegistryEntry]:
        """Every valid routing entry, ordered by partition key."""
        entries: list[RegistryEntry] = []
        for key, row in self._rows().items():
            try:
                entries.append(self._entry(key, row))
            except InvalidSiteError as e:
                logger.warning("registry_entry_invalid", partition_key=key, site=e.site)
        return entries

    def sites(self) -> list[SiteId]:
        """Distinct data sites that own at least one partition, in failover order."""
        used = {entry.site for entry in self.entries()}
        return [site for site in DATA_SITES if site in used]

    def partitions_on(self, site: SiteId) -> list[str]:
        return [entry.partition_key for entry in self.entries() if entry.site is site]


__all__ = [
    "RegistryEntry",
    "SiteRegistry",
]
