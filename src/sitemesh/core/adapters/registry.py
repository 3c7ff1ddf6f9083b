"""Site adapter registry and factory.

Manifesto:
    The pool manager should never hard-code adapter class names. The
    registry maps dialect names to adapter classes and ``create_adapter()``
    builds an unconnected adapter from a site's ``SiteConfig``.

Features:
    - ``AdapterRegistry`` with pre-registered defaults
    - ``register()`` for custom adapters and test doubles
    - ``create_adapter()`` factory: site + config → adapter

Tags:
    sitemesh, database, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from sitemesh.core.errors import ConfigError
from sitemesh.core.settings import SiteConfig
from sitemesh.core.sites import DialectName, SiteId

from .base import DatabaseAdapter
from .mssql import MSSQLAdapter
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter
from .types import Timeouts


class AdapterRegistry:
    """
    Registry for site adapter classes.

    Pre-registered adapters:
    - ``mssql``: :class:`MSSQLAdapter`
    - ``postgres``: :class:`PostgreSQLAdapter`
    - ``sqlite``: :class:`SQLiteAdapter`
    """

    def __init__(self):
        self._factories: dict[DialectName, type[DatabaseAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories[DialectName.MSSQL] = MSSQLAdapter
        self._factories[DialectName.POSTGRES] = PostgreSQLAdapter
        self._factories[DialectName.SQLITE] = SQLiteAdapter

    def register(self, dialect: DialectName | str, adapter_class: type[DatabaseAdapter]) -> None:
        """Register an adapter class for a dialect."""
        self._factories[DialectName.parse(dialect)] = adapter_class

    def create(self, site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None) -> DatabaseAdapter:
        """Create an (unconnected) adapter for a site."""
        if config.dialect not in self._factories:
            raise ConfigError(f"No adapter registered for dialect: {config.dialect}").with_context(site=site.value)
        return self._factories[config.dialect](site, config, timeouts)

    def list_adapters(self) -> list[str]:
        """List registered dialect names."""
        return sorted(d.value for d in self._factories)


# Global registry
adapter_registry = AdapterRegistry()


def create_adapter(site: SiteId, config: SiteConfig, timeouts: Timeouts | None = None) -> DatabaseAdapter:
    """
    Build the adapter for one site.

    Usage:
        adapter = create_adapter(SiteId.SITE_C, settings.sites[SiteId.SITE_C])
    """
    return adapter_registry.create(site, config, timeouts)


__all__ = [
    "AdapterRegistry",
    "adapter_registry",
    "create_adapter",
]
