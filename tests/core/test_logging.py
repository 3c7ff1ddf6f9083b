"""Tests for ``sitemesh.core.logging``."""

from __future__ import annotations

import json

import structlog
from structlog.testing import capture_logs

from sitemesh.core.logging import LogContext, configure_logging, get_logger


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(migration_id="m-1", group_id="P1N1"):
            assert structlog.contextvars.get_contextvars() == {"migration_id": "m-1", "group_id": "P1N1"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_get_logger_emits_events(self):
        with capture_logs() as logs:
            get_logger(__name__).info("migration_step", step="COPYING_GROUP")
        assert logs == [{"event": "migration_step", "step": "COPYING_GROUP", "log_level": "info"}]


class TestConfigureLogging:
    def test_json_output_is_ecs_shaped(self, capsys):
        try:
            configure_logging(level="INFO", json_format=True, service="sitemesh-test")
            structlog.get_logger().warning("site_down", site="siteB")
            line = capsys.readouterr().err.strip().splitlines()[-1]
        finally:
            structlog.reset_defaults()

        event = json.loads(line)
        assert event["event"] == "site_down"
        assert event["site"] == "siteB"
        assert event["log.level"] == "warning"
        assert event["service.name"] == "sitemesh-test"
        assert "@timestamp" in event

    def test_module_logger_renders_json(self, capsys):
        try:
            configure_logging(level="INFO", json_format=True)
            get_logger(__name__).info("group_created", group_id="P1N1", site="siteA")
            line = capsys.readouterr().err.strip().splitlines()[-1]
        finally:
            structlog.reset_defaults()

        event = json.loads(line)
        assert event["event"] == "group_created"
        assert event["group_id"] == "P1N1"
        assert event["log.level"] == "info"

    def test_level_filters(self, capsys):
        try:
            configure_logging(level="ERROR", json_format=True)
            structlog.get_logger().info("quiet")
            assert capsys.readouterr().err == ""
        finally:
            structlog.reset_defaults()
