"""
Component container.

:class:`SiteMesh` wires every collaborator once, from settings, and owns
their lifecycle. Nothing in sitemesh reaches for a module-level singleton;
everything below the container receives what it needs by injection.

Usage::

    from sitemesh import SiteMesh

    with SiteMesh.build() as mesh:         # start(): first probe + health loop
        mesh.members.create("P1N1", "Ada")

    # Tests swap the adapter factory:
    mesh = SiteMesh.build(settings, adapter_factory=my_factory)
"""

from __future__ import annotations

from dataclasses import dataclass

from sitemesh.core.executor import QueryExecutor
from sitemesh.core.failover import FailoverResolver
from sitemesh.core.health import HealthMonitor
from sitemesh.core.identifiers import IdentifierAllocator
from sitemesh.core.logging import get_logger
from sitemesh.core.partition import PartitionResolver
from sitemesh.core.pool import AdapterFactory, ConnectionPoolManager
from sitemesh.core.registry import SiteRegistry
from sitemesh.core.settings import SiteMeshSettings, get_settings
from sitemesh.domain import (
    GroupService,
    MemberService,
    ParticipationService,
    ProjectService,
    ServiceContext,
)
from sitemesh.migration import MigrationEngine, MigrationJournal

logger = get_logger(__name__)


@dataclass
class SiteMesh:
    """Every sitemesh component, built once and shared."""

    settings: SiteMeshSettings
    pool: ConnectionPoolManager
    health: HealthMonitor
    failover: FailoverResolver
    executor: QueryExecutor
    registry: SiteRegistry
    partitions: PartitionResolver
    allocator: IdentifierAllocator
    migrations: MigrationEngine
    groups: GroupService
    members: MemberService
    projects: ProjectService
    participations: ParticipationService

    @classmethod
    def build(
        cls,
        settings: SiteMeshSettings | None = None,
        *,
        adapter_factory: AdapterFactory | None = None,
    ) -> SiteMesh:
        """Construct the component graph. No site is contacted until ``start()`` or first use."""
        settings = settings or get_settings()
        pool = ConnectionPoolManager(settings, factory=adapter_factory)
        health = HealthMonitor(pool, interval_s=settings.health_interval_s, probe_timeout_s=settings.probe_timeout_s)
        failover = FailoverResolver(health)
        executor = QueryExecutor(pool, failover)
        registry = SiteRegistry(executor, ttl_s=settings.registry_ttl_s)
        partitions = PartitionResolver(registry)
        allocator = IdentifierAllocator(executor, retries=settings.allocation_retries)
        migrations = MigrationEngine(
            executor, registry, partitions, allocator, MigrationJournal(settings.journal_dir)
        )
        ctx = ServiceContext(executor=executor, registry=registry, partitions=partitions, allocator=allocator)
        return cls(
            settings=settings,
            pool=pool,
            health=health,
            failover=failover,
            executor=executor,
            registry=registry,
            partitions=partitions,
            allocator=allocator,
            migrations=migrations,
            groups=GroupService(ctx, migrations),
            members=MemberService(ctx),
            projects=ProjectService(ctx),
            participations=ParticipationService(ctx),
        )

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> SiteMesh:
        self.health.start()
        logger.info("sitemesh_started", state=self.health.report().status.value)
        return self

    def stop(self) -> None:
        self.health.stop()
        self.pool.close_all()
        logger.info("sitemesh_stopped")

    def __enter__(self) -> SiteMesh:
        return self.start()

    def __exit__(self, *args: object) -> None:
        self.stop()


__all__ = ["SiteMesh"]
