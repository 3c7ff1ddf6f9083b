"""Tests for ``sitemesh.core.errors``."""

from __future__ import annotations

from sitemesh.core.errors import (
    ConnectivityError,
    DuplicateKeyError,
    EntityNotFoundError,
    ErrorCategory,
    InvalidIdentifierError,
    MigrationPartialFailureError,
    NoAvailableSiteError,
    QueryError,
    RoutingError,
    SiteMeshError,
    UnknownPartitionError,
    ValidationError,
    is_retryable,
)


class TestSiteMeshError:
    def test_defaults(self):
        error = SiteMeshError("boom")
        assert error.message == "boom"
        assert error.category is ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        root = OSError("socket closed")
        error = ConnectivityError("siteB unreachable", cause=root)
        assert error.__cause__ is root
        assert error.to_dict()["cause"] == "socket closed"

    def test_with_context_typed_and_metadata(self):
        error = QueryError("bad").with_context(site="siteA", sql="SELECT 1")
        assert error.context.site == "siteA"
        assert error.context.metadata == {"sql": "SELECT 1"}
        assert error.to_dict()["context"] == {"site": "siteA", "sql": "SELECT 1"}

    def test_repr(self):
        assert repr(DuplicateKeyError("dup")) == "DuplicateKeyError('dup', category=DATABASE)"


class TestCategories:
    def test_connectivity_retryable(self):
        assert ConnectivityError("x").category is ErrorCategory.NETWORK
        assert is_retryable(ConnectivityError("x"))
        assert is_retryable(NoAvailableSiteError("x"))

    def test_database_not_retryable(self):
        assert not is_retryable(DuplicateKeyError("x"))
        assert not is_retryable(ValueError("x"))

    def test_routing_errors_carry_identifiers(self):
        invalid = InvalidIdentifierError("???")
        unknown = UnknownPartitionError("P9")
        assert isinstance(invalid, RoutingError)
        assert invalid.context.identifier == "???"
        assert unknown.partition_key == "P9"
        assert "P9" in unknown.message

    def test_entity_not_found_is_validation(self):
        error = EntityNotFoundError("member", "P1N1NV9")
        assert isinstance(error, ValidationError)
        assert error.message == "member not found: P1N1NV9"
        assert error.category is ErrorCategory.VALIDATION

    def test_partial_failure_keeps_state(self):
        error = MigrationPartialFailureError("stuck", state="FAILED")
        assert error.state == "FAILED"
        assert error.category is ErrorCategory.MIGRATION
