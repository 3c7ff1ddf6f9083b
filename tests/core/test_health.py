"""Tests for ``sitemesh.core.health`` and ``sitemesh.core.failover``."""

from __future__ import annotations

import threading
import time
from types import MappingProxyType

import pytest

from sitemesh.core.adapters import SQLiteAdapter, Timeouts
from sitemesh.core.errors import NoAvailableSiteError
from sitemesh.core.failover import FailoverResolver
from sitemesh.core.health import HealthMonitor, SystemState
from sitemesh.core.pool import ConnectionPoolManager
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import SiteId


class HangingAdapter(SQLiteAdapter):
    """Probe never returns until released."""

    release_event = threading.Event()

    def ping(self) -> None:
        self.release_event.wait(10)


class CountingHangingAdapter(SQLiteAdapter):
    """Counts probes; each one blocks until ``release`` is set."""

    release = threading.Event()
    calls = 0

    def ping(self) -> None:
        type(self).calls += 1
        self.release.wait(10)


class TestSnapshot:
    def test_optimistic_before_first_probe(self, mesh):
        snapshot = mesh.health.snapshot()
        assert isinstance(snapshot, MappingProxyType)
        assert all(status.available for status in snapshot.values())
        assert all(status.last_checked is None for status in snapshot.values())

    def test_probe_marks_down_and_up(self, mesh, take_down, bring_up):
        take_down(SiteId.SITE_B)
        status = mesh.health.snapshot()[SiteId.SITE_B]
        assert status.available is False
        assert "unable to open" in status.error
        assert mesh.health.is_available(SiteId.SITE_A)

        bring_up(SiteId.SITE_B)
        assert mesh.health.is_available(SiteId.SITE_B)

    def test_snapshot_swapped_not_mutated(self, mesh, take_down):
        before = mesh.health.snapshot()
        take_down(SiteId.SITE_C)
        assert before[SiteId.SITE_C].available is True
        assert mesh.health.snapshot() is not before

    def test_probe_timeout_marks_site_down(self, settings):
        def factory(site: SiteId, config: SiteConfig, timeouts: Timeouts) -> SQLiteAdapter:
            if site is SiteId.SITE_A:
                return HangingAdapter(site, config, timeouts)
            return SQLiteAdapter(site, config, timeouts)

        pool = ConnectionPoolManager(settings, factory=factory)
        monitor = HealthMonitor(pool, interval_s=60, probe_timeout_s=0.2)
        started = time.monotonic()
        try:
            snapshot = monitor.probe_all()
        finally:
            HangingAdapter.release_event.set()
        assert time.monotonic() - started < 5
        assert snapshot[SiteId.SITE_A].available is False
        assert "timed out" in snapshot[SiteId.SITE_A].error
        assert snapshot[SiteId.SITE_B].available is True
        monitor.stop()
        pool.close_all()

    def test_wedged_probe_not_resubmitted(self, settings):
        def factory(site: SiteId, config: SiteConfig, timeouts: Timeouts) -> SQLiteAdapter:
            if site is SiteId.SITE_C:
                return CountingHangingAdapter(site, config, timeouts)
            return SQLiteAdapter(site, config, timeouts)

        pool = ConnectionPoolManager(settings, factory=factory)
        monitor = HealthMonitor(pool, interval_s=60, probe_timeout_s=0.1)
        try:
            first = monitor.probe_all()
            second = monitor.probe_all()
            third = monitor.probe_all()
        finally:
            CountingHangingAdapter.release.set()
        assert CountingHangingAdapter.calls == 1
        assert not any(snap[SiteId.SITE_C].available for snap in (first, second, third))
        assert third[SiteId.SITE_A].available is True

        # once the stuck probe returns the site is probed again
        deadline = time.monotonic() + 5
        while not monitor.probe_all()[SiteId.SITE_C].available and time.monotonic() < deadline:
            time.sleep(0.05)
        assert monitor.is_available(SiteId.SITE_C)
        monitor.stop()
        pool.close_all()


class TestReport:
    def test_healthy(self, mesh):
        mesh.health.probe_all()
        report = mesh.health.report()
        assert report.status is SystemState.HEALTHY
        assert (report.total, report.available, report.unavailable) == (4, 4, 0)

    def test_degraded(self, mesh, take_down):
        take_down(SiteId.SITE_A, SiteId.GLOBAL)
        report = mesh.health.report()
        assert report.status is SystemState.DEGRADED
        assert report.unavailable == 2
        assert report.fault_tolerant is True
        data = report.to_dict()
        assert data["status"] == "DEGRADED"
        assert {s["site"]: s["status"] for s in data["sites"]}["siteA"] == "DOWN"

    def test_critical(self, mesh, take_down):
        take_down(*SiteId)
        report = mesh.health.report()
        assert report.status is SystemState.CRITICAL
        assert report.fault_tolerant is False


class TestLifecycle:
    def test_start_probes_eagerly_and_stop_joins(self, mesh, switch):
        switch.down.add(SiteId.SITE_C)
        mesh.health.start()
        try:
            assert mesh.health.running
            assert not mesh.health.is_available(SiteId.SITE_C)
        finally:
            mesh.health.stop()
        assert not mesh.health.running

    def test_stop_without_start_is_noop(self, mesh):
        mesh.health.stop()
        assert not mesh.health.running


class TestFailoverResolver:
    def test_preferred_when_up(self, mesh):
        assert mesh.failover.resolve(SiteId.SITE_B) is SiteId.SITE_B

    def test_first_available_in_order(self, mesh, take_down):
        take_down(SiteId.SITE_A, SiteId.SITE_B)
        assert mesh.failover.resolve(SiteId.SITE_A) is SiteId.SITE_C
        assert mesh.failover.available_sites() == [SiteId.SITE_C]

    def test_substitute_prefers_site_a(self, mesh, take_down):
        take_down(SiteId.SITE_C)
        assert mesh.failover.resolve(SiteId.SITE_C) is SiteId.SITE_A

    def test_global_never_substituted(self, mesh, take_down):
        take_down(SiteId.GLOBAL)
        with pytest.raises(NoAvailableSiteError, match="Global"):
            mesh.failover.resolve(SiteId.GLOBAL)

    def test_global_not_a_candidate_for_data(self, mesh, take_down):
        take_down(SiteId.SITE_A, SiteId.SITE_B, SiteId.SITE_C)
        assert mesh.health.is_available(SiteId.GLOBAL)
        with pytest.raises(NoAvailableSiteError):
            mesh.failover.resolve(SiteId.SITE_A)

    def test_require(self, mesh, take_down):
        take_down(SiteId.SITE_B)
        assert mesh.failover.require(SiteId.SITE_A) is SiteId.SITE_A
        with pytest.raises(NoAvailableSiteError) as exc_info:
            mesh.failover.require(SiteId.SITE_B)
        assert exc_info.value.context.site == "siteB"

    def test_standalone_resolver_reads_snapshot(self, mesh):
        resolver = FailoverResolver(mesh.health)
        assert resolver.available_sites() == [SiteId.SITE_A, SiteId.SITE_B, SiteId.SITE_C]
