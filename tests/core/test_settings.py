"""Tests for ``sitemesh.core.settings`` and ``sitemesh.core.sites``."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from sitemesh.core.settings import SiteConfig, SiteMeshSettings, get_settings
from sitemesh.core.sites import ALL_SITES, DATA_SITES, FAILOVER_ORDER, DialectName, SiteId


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("MSSQL_SA_PASSWORD", "POSTGRES_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestSites:
    def test_parse_case_insensitive(self):
        assert SiteId.parse("SITEB") is SiteId.SITE_B
        assert SiteId.parse(" global ") is SiteId.GLOBAL

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown site"):
            SiteId.parse("siteD")

    def test_failover_order_excludes_global(self):
        assert FAILOVER_ORDER == (SiteId.SITE_A, SiteId.SITE_B, SiteId.SITE_C)
        assert SiteId.GLOBAL not in DATA_SITES
        assert ALL_SITES[-1] is SiteId.GLOBAL

    def test_dialect_aliases(self):
        assert DialectName.parse("PostgreSQL") is DialectName.POSTGRES
        assert DialectName.parse("sqlserver") is DialectName.MSSQL


class TestDefaults:
    def test_stock_deployment(self, clean_env):
        settings = SiteMeshSettings()
        assert settings.sites[SiteId.SITE_A].dialect is DialectName.MSSQL
        assert settings.sites[SiteId.SITE_A].host == "mssql_site_a"
        assert settings.sites[SiteId.SITE_C].dialect is DialectName.POSTGRES
        assert settings.sites[SiteId.SITE_C].port == 5432
        assert settings.sites[SiteId.GLOBAL].host == "mssql_global"
        assert settings.health_interval_s == 30
        assert settings.probe_timeout_s == 5
        assert settings.registry_ttl_s == 0
        assert settings.allocation_retries == 5

    def test_passwords_from_environment(self, clean_env):
        clean_env.setenv("MSSQL_SA_PASSWORD", "Str0ng!")
        clean_env.setenv("POSTGRES_PASSWORD", "pgpass")
        settings = SiteMeshSettings()
        assert settings.sites[SiteId.SITE_B].password == "Str0ng!"
        assert settings.sites[SiteId.SITE_C].password == "pgpass"

    def test_journal_dir(self, clean_env, tmp_path):
        settings = SiteMeshSettings(data_dir=tmp_path)
        assert settings.journal_dir == tmp_path / "migrations"


class TestOverrides:
    def test_env_prefix_and_nested_override(self, clean_env):
        clean_env.setenv("SITEMESH_HEALTH_INTERVAL_S", "10")
        clean_env.setenv("SITEMESH_SITES__SITEC__HOST", "10.0.0.7")
        settings = SiteMeshSettings()
        assert settings.health_interval_s == 10
        assert settings.sites[SiteId.SITE_C].host == "10.0.0.7"
        # untouched fields keep their defaults
        assert settings.sites[SiteId.SITE_C].dialect is DialectName.POSTGRES
        assert settings.sites[SiteId.SITE_A].host == "mssql_site_a"

    def test_partial_site_override(self, clean_env, tmp_path):
        settings = SiteMeshSettings(sites={"siteA": {"dialect": "sqlite", "path": str(tmp_path / "a.db")}})
        assert settings.sites[SiteId.SITE_A].dialect is DialectName.SQLITE
        assert settings.sites[SiteId.SITE_B].dialect is DialectName.MSSQL

    def test_invalid_interval_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            SiteMeshSettings(health_interval_s=0)

    def test_site_config_parses_dialect_alias(self):
        assert SiteConfig(dialect="postgresql").dialect is DialectName.POSTGRES


class TestGetSettings:
    def test_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_data_dir_is_path(self, clean_env):
        assert isinstance(get_settings().data_dir, Path)
