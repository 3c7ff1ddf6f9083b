"""Settings for sitemesh.

Connection details for every site plus the timing knobs of the health loop,
the registry cache and the identifier allocator. Values come from
``SITEMESH_*`` environment variables or a ``.env`` file; nested site fields
use ``__`` as the delimiter::

    SITEMESH_SITES__SITEA__HOST=10.0.0.5
    SITEMESH_SITES__SITEC__PASSWORD=secret
    SITEMESH_HEALTH_INTERVAL_S=10

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** type-checked at startup
    - **Environment-driven:** env vars and .env files
    - **Sensible defaults:** the stock four-site deployment works unchanged

Features:
    - **SiteConfig:** one server's dialect and connection parameters
    - **SiteMeshSettings:** all sites plus timeouts, data_dir and logging
    - **get_settings():** cached accessor

Tags:
    settings, configuration, pydantic, environment, sitemesh

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sitemesh.core.sites import DialectName, SiteId


class SiteConfig(BaseModel):
    """Connection parameters for one site.

    ``path`` is only used by the sqlite dialect; ``host``/``port``/
    ``database``/``user``/``password`` by the server dialects. ``options``
    is passed to the driver's connect call unchanged.
    """

    dialect: DialectName
    host: str = "localhost"
    port: int | None = None
    database: str = "ResearchManagement"
    user: str | None = None
    password: str | None = None
    path: str | None = None
    pool_size: int = 5
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value: Any) -> DialectName:
        return DialectName.parse(value)


def _default_sites() -> dict[SiteId, SiteConfig]:
    mssql_password = os.environ.get("MSSQL_SA_PASSWORD")
    pg_password = os.environ.get("POSTGRES_PASSWORD")

    def mssql(host: str) -> SiteConfig:
        return SiteConfig(dialect=DialectName.MSSQL, host=host, port=1433, user="sa", password=mssql_password)

    return {
        SiteId.SITE_A: mssql("mssql_site_a"),
        SiteId.SITE_B: mssql("mssql_site_b"),
        SiteId.SITE_C: SiteConfig(
            dialect=DialectName.POSTGRES,
            host="postgres_site_c",
            port=5432,
            user="postgres",
            password=pg_password,
        ),
        SiteId.GLOBAL: mssql("mssql_global"),
    }


class SiteMeshSettings(BaseSettings):
    """Process-wide settings.

    Fields
    ──────
    sites               : Connection parameters per site (all four required)
    health_interval_s   : Seconds between health probe cycles
    probe_timeout_s     : Deadline for one liveness probe
    connect_timeout_s   : Driver connect timeout
    query_timeout_s     : Driver statement timeout
    registry_ttl_s      : Cache the routing table this long (0 = read every time)
    allocation_retries  : Insert attempts when a generated identifier collides
    data_dir            : Where migration journals are written
    log_level / log_json: Logging configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="SITEMESH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Sites ────────────────────────────────────────────────────
    sites: dict[SiteId, SiteConfig] = Field(default_factory=_default_sites)

    # ── Timing ───────────────────────────────────────────────────
    health_interval_s: float = Field(default=30.0, gt=0)
    probe_timeout_s: float = Field(default=5.0, gt=0)
    connect_timeout_s: int = Field(default=10, gt=0)
    query_timeout_s: int = Field(default=30, gt=0)
    registry_ttl_s: float = Field(default=0.0, ge=0)

    # ── Allocation ───────────────────────────────────────────────
    allocation_retries: int = Field(default=5, ge=1)

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".sitemesh",
        description="Directory holding migration journals",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("sites", mode="before")
    @classmethod
    def _merge_site_overrides(cls, value: Any) -> Any:
        # Partial overrides (one field of one site) are layered on the defaults.
        if not isinstance(value, dict):
            return value
        merged: dict[SiteId, Any] = dict(_default_sites())
        for key, cfg in value.items():
            site = SiteId.parse(key)
            if isinstance(cfg, dict):
                base = merged[site].model_dump() if isinstance(merged.get(site), SiteConfig) else {}
                merged[site] = {**base, **cfg}
            else:
                merged[site] = cfg
        return merged

    @field_validator("sites")
    @classmethod
    def _require_all_sites(cls, value: dict[SiteId, SiteConfig]) -> dict[SiteId, SiteConfig]:
        missing = [site.value for site in SiteId if site not in value]
        if missing:
            raise ValueError(f"Missing site configuration for: {', '.join(missing)}")
        return value

    @property
    def journal_dir(self) -> Path:
        return self.data_dir / "migrations"


@lru_cache(maxsize=1)
def get_settings() -> SiteMeshSettings:
    """Return the process-wide settings, loaded once."""
    return SiteMeshSettings()


__all__ = [
    "SiteConfig",
    "SiteMeshSettings",
    "get_settings",
]
