"""Query execution abstraction.

The one place statements reach a site. Callers pass a site, ``?``-style SQL
and a positional parameter list; they get back a ``QueryResult`` whose rows
are always dicts. Driver exceptions are classified here, once, by the
site's dialect and re-raised as sitemesh errors with the driver error
chained.

Features:
    - ``execute(site, sql, params)``: run against one site
    - ``execute_preferred(preferred, sql, params)``: run against the site the
      failover resolver picks for a read
    - ``fan_out(sites, sql, params)``: run against several sites, keeping
      per-site results and per-site errors; never raises for a single site

Tags:
    sitemesh, query, executor, error-classification
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sitemesh.core.adapters import QueryResult
from sitemesh.core.dialect import Dialect
from sitemesh.core.errors import SiteMeshError
from sitemesh.core.failover import FailoverResolver
from sitemesh.core.logging import get_logger
from sitemesh.core.pool import ConnectionPoolManager
from sitemesh.core.sites import SiteId

logger = get_logger(__name__)


@dataclass
class FanOutResult:
    """Per-site outcome of a statement run on several sites."""

    results: dict[SiteId, QueryResult] = field(default_factory=dict)
    errors: dict[SiteId, SiteMeshError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def rows(self) -> list[dict[str, Any]]:
        """All rows from the sites that answered, in site order."""
        merged: list[dict[str, Any]] = []
        for result in self.results.values():
            merged.extend(result.rows)
        return merged

    def rows_with_site(self) -> list[tuple[SiteId, dict[str, Any]]]:
        return [(site, row) for site, result in self.results.items() for row in result.rows]


class QueryExecutor:
    """Runs ``?``-placeholder statements on sites and classifies failures."""

    def __init__(self, pool: ConnectionPoolManager, failover: FailoverResolver):
        self._pool = pool
        self._failover = failover

    @property
    def failover(self) -> FailoverResolver:
        return self._failover

    def dialect_for(self, site: SiteId) -> Dialect:
        return self._pool.dialect_for(site)

    def execute(self, site: SiteId, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Run one statement on ``site``.

        Raises:
            ConnectivityError: the site could not be reached.
            DuplicateKeyError / ForeignReferenceError: constraint violations.
            QueryError: any other driver failure.
        """
        try:
            adapter = self._pool.get_connection(site)
            return adapter.execute(sql, list(params))
        except SiteMeshError as e:
            if e.context.site is None:
                e.context.site = site.value
            raise
        except Exception as e:
            error = self._pool.dialect_for(site).classify(e).with_context(site=site.value)
            logger.debug("query_failed", site=site.value, error_type=type(error).__name__, error=str(e))
            raise error from e

    def execute_preferred(self, preferred: SiteId, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Run a read on ``preferred`` or on the site failover substitutes for it."""
        return self.execute(self._failover.resolve(preferred), sql, params)

    def fan_out(self, sites: Iterable[SiteId], sql: str, params: Sequence[Any] = ()) -> FanOutResult:
        """Run a statement on every site in ``sites`` (deduplicated, in order).

        Sites the health snapshot reports down are skipped and recorded as
        errors without being contacted.
        """
        outcome = FanOutResult()
        for site in dict.fromkeys(sites):
            try:
                self._failover.require(site)
                outcome.results[site] = self.execute(site, sql, params)
            except SiteMeshError as e:
                logger.warning("fan_out_site_skipped", site=site.value, error=e.message)
                outcome.errors[site] = e
        return outcome


__all__ = [
    "FanOutResult",
    "QueryExecutor",
]
