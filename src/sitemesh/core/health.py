"""Site health monitor.

Probes every site on a fixed interval and publishes the result as an
immutable snapshot. The failover resolver and the health report only ever
read ``snapshot()``; nothing else writes site status.

Architecture::

    start()
      │  probe_all()  (eager, synchronous)
      ▼
    ┌──────────────────────────────────────────────────────────┐
    │  Daemon thread "sitemesh-health"                          │
    │                                                           │
    │  while not stop_event.wait(interval):                     │
    │      probe_all()                                          │
    │          ├─ one probe per site, in parallel               │
    │          ├─ each probe bounded by probe_timeout_s         │
    │          └─ snapshot swapped with a single assignment     │
    └──────────────────────────────────────────────────────────┘
    stop()
      │  stop_event.set(); thread.join(timeout=5)

Rules:
    - Before the first probe every site is reported available.
    - A probe that raises or misses its deadline marks the site unavailable
      with the error message; the next successful probe restores it.
    - No hysteresis: one cycle is enough to flip a site either way.
    - Probes run on one long-lived pool. A site whose previous probe is
      still running is not probed again; it stays unavailable until that
      probe returns.

Tags:
    sitemesh, health, monitoring, failover, background-thread
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from sitemesh.core.logging import get_logger
from sitemesh.core.pool import ConnectionPoolManager
from sitemesh.core.sites import ALL_SITES, SiteId

logger = get_logger(__name__)


@dataclass(frozen=True)
class SiteStatus:
    """Last observed state of one site."""

    site: SiteId
    available: bool
    last_checked: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "site": self.site.value,
            "status": "UP" if self.available else "DOWN",
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "error": self.error,
        }


class SystemState(str, Enum):
    """Aggregate state across all sites."""

    HEALTHY = "HEALTHY"  # every site up
    DEGRADED = "DEGRADED"  # some down, at least one up
    CRITICAL = "CRITICAL"  # nothing up


@dataclass(frozen=True)
class HealthReport:
    """Summary of one snapshot, as shown by ``sitemesh health``."""

    status: SystemState
    total: int
    available: int
    unavailable: int
    sites: list[SiteStatus] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def fault_tolerant(self) -> bool:
        return self.available > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "total": self.total,
            "available": self.available,
            "unavailable": self.unavailable,
            "fault_tolerant": self.fault_tolerant,
            "sites": [s.to_dict() for s in self.sites],
        }


class HealthMonitor:
    """
    Periodic liveness prober with an atomically swapped snapshot.

    Example:
        >>> monitor = HealthMonitor(pool, interval_s=30, probe_timeout_s=5)
        >>> monitor.start()
        >>> monitor.snapshot()[SiteId.SITE_B].available
        True
        >>> monitor.stop()
    """

    def __init__(
        self,
        pool: ConnectionPoolManager,
        *,
        interval_s: float = 30.0,
        probe_timeout_s: float = 5.0,
        sites: Sequence[SiteId] = ALL_SITES,
    ):
        self._pool = pool
        self._interval = interval_s
        self._probe_timeout = probe_timeout_s
        self._sites = tuple(sites)
        self._snapshot: Mapping[SiteId, SiteStatus] = MappingProxyType(
            {site: SiteStatus(site=site, available=True) for site in self._sites}
        )
        self._probe_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._inflight: dict[SiteId, Future[None]] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ── Reads ────────────────────────────────────────────────────

    def snapshot(self) -> Mapping[SiteId, SiteStatus]:
        """Current immutable status map."""
        return self._snapshot

    def is_available(self, site: SiteId) -> bool:
        status = self._snapshot.get(site)
        return status is not None and status.available

    def report(self) -> HealthReport:
        statuses = list(self._snapshot.values())
        available = sum(1 for s in statuses if s.available)
        if available == 0:
            state = SystemState.CRITICAL
        elif available < len(statuses):
            state = SystemState.DEGRADED
        else:
            state = SystemState.HEALTHY
        return HealthReport(
            status=state,
            total=len(statuses),
            available=available,
            unavailable=len(statuses) - available,
            sites=statuses,
        )

    # ── Probing ──────────────────────────────────────────────────

    def _probe(self, site: SiteId) -> None:
        self._pool.get_connection(site).ping()

    def probe_all(self) -> Mapping[SiteId, SiteStatus]:
        """Probe every site once and publish the new snapshot."""
        with self._probe_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=len(self._sites), thread_name_prefix="sitemesh-probe")
            futures: dict[SiteId, Future[None]] = {}
            for site in self._sites:
                pending = self._inflight.get(site)
                if pending is not None and not pending.done():
                    # Still wedged from an earlier cycle; one worker per site at most.
                    logger.debug("probe_still_running", site=site.value)
                    futures[site] = pending
                else:
                    futures[site] = self._executor.submit(self._probe, site)
            self._inflight = dict(futures)
            wait(futures.values(), timeout=self._probe_timeout)

            checked_at = datetime.now(UTC)
            previous = self._snapshot
            statuses: dict[SiteId, SiteStatus] = {}
            for site, future in futures.items():
                if not future.done():
                    status = SiteStatus(site, False, checked_at, f"probe timed out after {self._probe_timeout}s")
                elif future.exception() is not None:
                    status = SiteStatus(site, False, checked_at, str(future.exception()))
                else:
                    status = SiteStatus(site, True, checked_at)
                statuses[site] = status
                self._log_transition(previous.get(site), status)

            self._snapshot = MappingProxyType(statuses)
            return self._snapshot

    @staticmethod
    def _log_transition(before: SiteStatus | None, after: SiteStatus) -> None:
        if before is not None and before.available == after.available:
            return
        if after.available:
            logger.info("site_up", site=after.site.value)
        else:
            logger.warning("site_down", site=after.site.value, error=after.error)

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Run one probe cycle now, then keep probing in a daemon thread."""
        if self.running:
            logger.warning("health_monitor_already_started")
            return
        self._stop_event.clear()
        self.probe_all()

        def _loop() -> None:
            logger.info("health_monitor_started", interval_s=self._interval)
            while not self._stop_event.wait(self._interval):
                try:
                    self.probe_all()
                except Exception as e:
                    logger.exception("health_cycle_failed", error=str(e))
            logger.info("health_monitor_stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="sitemesh-health")
        self._thread.start()

    def stop(self) -> None:
        """Stop the probe loop, waiting up to 5 seconds for the current cycle."""
        if self._thread is not None:
            self._stop_event.set()
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("health_thread_did_not_stop")
            self._thread = None
        with self._probe_lock:
            if self._executor is not None:
                # Wedged probes keep their worker; do not wait for them.
                self._executor.shutdown(wait=False)
                self._executor = None
                self._inflight = {}


__all__ = [
    "SiteStatus",
    "SystemState",
    "HealthReport",
    "HealthMonitor",
]
