"""Failover resolver.

Chooses the site a read should go to, given the current health snapshot:
the preferred site when it is up, otherwise the first available data site
in the fixed order ``siteA, siteB, siteC``. The result depends only on the
snapshot, so two calls against the same snapshot always agree.

Writes do not fail over. ``require(site)`` returns the owner only when it is
up, because writing to a substitute would break the identifier → site rule.

Tags:
    sitemesh, failover, routing
"""

from __future__ import annotations

from sitemesh.core.errors import NoAvailableSiteError
from sitemesh.core.health import HealthMonitor
from sitemesh.core.logging import get_logger
from sitemesh.core.sites import FAILOVER_ORDER, SiteId

logger = get_logger(__name__)


class FailoverResolver:
    """Availability-based site selection over a ``HealthMonitor`` snapshot."""

    def __init__(self, health: HealthMonitor):
        self._health = health

    def available_sites(self) -> list[SiteId]:
        """Available data sites, in failover order."""
        snapshot = self._health.snapshot()
        return [site for site in FAILOVER_ORDER if site in snapshot and snapshot[site].available]

    def resolve(self, preferred: SiteId) -> SiteId:
        """Return ``preferred`` if it is up, else the first available data site.

        Global is never a substitute; asking for Global while it is down
        raises immediately.

        Raises:
            NoAvailableSiteError: no acceptable site is up.
        """
        snapshot = self._health.snapshot()
        status = snapshot.get(preferred)
        if status is not None and status.available:
            return preferred

        if preferred is SiteId.GLOBAL:
            raise NoAvailableSiteError("Global site is unavailable").with_context(site=preferred.value)

        for candidate in FAILOVER_ORDER:
            status = snapshot.get(candidate)
            if status is not None and status.available:
                logger.warning("site_failover", preferred=preferred.value, chosen=candidate.value)
                return candidate

        raise NoAvailableSiteError("No database site is available").with_context(site=preferred.value)

    def require(self, site: SiteId) -> SiteId:
        """Return ``site`` only if it is up.

        Raises:
            NoAvailableSiteError: the owning site is down.
        """
        if not self._health.is_available(site):
            raise NoAvailableSiteError(f"Site {site} is unavailable").with_context(site=site.value)
        return site


__all__ = [
    "FailoverResolver",
]
