"""Shared plumbing for the entity services.

Reads go through the failover resolver; writes require the owning site to
be up, because a write on a substitute site would break the rule that an
identifier's partition decides where it lives.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sitemesh.core.adapters import QueryResult
from sitemesh.core.errors import (
    ConnectivityError,
    NoAvailableSiteError,
    UnknownPartitionError,
    ValidationError,
)
from sitemesh.core.executor import FanOutResult, QueryExecutor
from sitemesh.core.failover import FailoverResolver
from sitemesh.core.identifiers import IdentifierAllocator
from sitemesh.core.logging import get_logger
from sitemesh.core.partition import PartitionResolver
from sitemesh.core.registry import SiteRegistry
from sitemesh.core.sites import SiteId

logger = get_logger(__name__)

# Owner lookups that should fall back to searching every available site.
FALLBACK_ERRORS = (ConnectivityError, NoAvailableSiteError, UnknownPartitionError)


@dataclass(frozen=True)
class ServiceContext:
    """Collaborators every service needs, injected once by the container."""

    executor: QueryExecutor
    registry: SiteRegistry
    partitions: PartitionResolver
    allocator: IdentifierAllocator

    @property
    def failover(self) -> FailoverResolver:
        return self.executor.failover


class SiteService:
    """Base class with routing helpers."""

    def __init__(self, ctx: ServiceContext):
        self._ctx = ctx
        self._executor = ctx.executor
        self._registry = ctx.registry
        self._partitions = ctx.partitions
        self._allocator = ctx.allocator
        self._failover = ctx.failover

    # ── Routing ──────────────────────────────────────────────────

    def _owner(self, identifier: str) -> SiteId:
        return self._partitions.resolve_site(identifier)

    def _writable_owner(self, identifier: str) -> SiteId:
        return self._failover.require(self._owner(identifier))

    def _data_sites(self) -> list[SiteId]:
        """Sites to fan out over: the registry's, or every available one if Global is unreachable."""
        try:
            return self._registry.sites()
        except (ConnectivityError, NoAvailableSiteError) as e:
            logger.warning("registry_unavailable_using_live_sites", error=e.message)
            return self._failover.available_sites()

    # ── Statements ───────────────────────────────────────────────

    def _read(self, site: SiteId, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        return self._executor.execute_preferred(site, sql, params)

    def _write(self, site: SiteId, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        return self._executor.execute(self._failover.require(site), sql, params)

    def _fan_out(self, sql: str, params: Sequence[Any] = ()) -> FanOutResult:
        return self._executor.fan_out(self._data_sites(), sql, params)

    def _find_one(self, identifier: str, sql: str, params: Sequence[Any]) -> dict[str, Any] | None:
        """Read one row from the identifier's owner, searching every site if the owner is unknown or down."""
        try:
            owner = self._owner(identifier)
            return self._read(owner, sql, params).first()
        except FALLBACK_ERRORS as e:
            logger.warning("owner_lookup_failed_searching_all_sites", identifier=identifier, error=e.message)
        found = self._executor.fan_out(self._failover.available_sites(), sql, params)
        for site, row in found.rows_with_site():
            logger.info("found_by_fallback_search", identifier=identifier, site=site.value)
            return row
        return None

    @staticmethod
    def _require_text(value: str | None, field: str) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(f"{field} must not be empty", field=field, value=value)
        return str(value).strip()


__all__ = [
    "FALLBACK_ERRORS",
    "ServiceContext",
    "SiteService",
]
