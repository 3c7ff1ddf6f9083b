"""
Structured error types for sitemesh.

Every failure that crosses a component boundary is one of the types below.
Low-level driver errors are classified exactly once, at the boundary where
they are caught (the query executor or the migration engine), and re-raised
as a ``SiteMeshError`` subclass with the driver error chained as ``cause``.

Manifesto:
    - **Typed Error Hierarchy:** callers branch on type, never on message text
    - **Explicit Retry Semantics:** connectivity problems are retryable,
      business conflicts and bad input never are
    - **Rich Context:** errors carry the site, identifier and migration
      they relate to, for logging and operator tooling
    - **Error Chaining:** the original driver exception is always preserved

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        SiteMeshError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConnectivityError    RoutingError           DatabaseError      │
        │  (NETWORK, retry)     (ROUTING)              (DATABASE)         │
        │       │                    │                      │             │
        │  NoAvailableSite     InvalidIdentifier      DuplicateKey        │
        │                      UnknownPartition       ForeignReference    │
        │                      InvalidSite            QueryError          │
        │                                                                  │
        │  ValidationError      ConfigError            MigrationError     │
        │  (VALIDATION)         (CONFIG)               (MIGRATION)        │
        │       │                                           │             │
        │  EntityNotFound                          MigrationRejected      │
        │                                          MigrationInProgress    │
        │                                          MigrationAborted       │
        │                                          MigrationPartialFailure│
        └─────────────────────────────────────────────────────────────────┘

Controller mapping (outside this package):
    ValidationError / RoutingError → 400, EntityNotFoundError → 404,
    DuplicateKeyError / ForeignReferenceError → 400,
    NoAvailableSiteError → 503, everything else → 500.

Tags:
    error-handling, exception-hierarchy, retry-logic, sitemesh

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"  # Site unreachable, auth, timeouts
    DATABASE = "DATABASE"  # Constraint violations, bad SQL
    ROUTING = "ROUTING"  # Identifier / registry problems
    VALIDATION = "VALIDATION"  # Caller input
    CONFIG = "CONFIG"  # Missing driver, bad settings
    MIGRATION = "MIGRATION"  # Re-sharding failures
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()``; anything that does not
    fit a typed field goes into ``metadata``.
    """

    site: str | None = None
    partition_key: str | None = None
    identifier: str | None = None
    group_id: str | None = None
    migration_id: str | None = None
    step: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["site", "partition_key", "identifier", "group_id", "migration_id", "step"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SiteMeshError(Exception):
    """
    Base exception for all sitemesh errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.

    Examples:
        >>> error = SiteMeshError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(site="siteA").context.site
        'siteA'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SiteMeshError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DuplicateKeyError("already exists").with_context(
                site="siteA", identifier="P1N1NV2"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTIVITY (retryable, triggers failover on the next call)
# =============================================================================


class ConnectivityError(SiteMeshError):
    """
    A site could not be reached: network, authentication, timeout.

    Not retried in place. The Health Monitor will mark the site down on its
    next cycle and the Failover Resolver routes around it from then on.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NoAvailableSiteError(SiteMeshError):
    """Every candidate site is unhealthy. Surfaced as service-unavailable."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


# =============================================================================
# ROUTING (caller input or registry inconsistency, never retried)
# =============================================================================


class RoutingError(SiteMeshError):
    """Base for identifier → site resolution failures."""

    default_category = ErrorCategory.ROUTING
    default_retryable = False


class InvalidIdentifierError(RoutingError):
    """Identifier has no ``letters+digits`` partition-key prefix."""

    def __init__(self, identifier: str, message: str | None = None):
        self.identifier = identifier
        super().__init__(message or f"Invalid identifier: {identifier!r}")
        self.context.identifier = identifier


class UnknownPartitionError(RoutingError):
    """Partition key is not present in the site registry."""

    def __init__(self, partition_key: str, message: str | None = None):
        self.partition_key = partition_key
        super().__init__(message or f"Unknown partition: {partition_key!r}")
        self.context.partition_key = partition_key


class InvalidSiteError(RoutingError):
    """Registry points at a site that is not a known data site."""

    def __init__(self, site: str, message: str | None = None):
        self.site = site
        super().__init__(message or f"Invalid site: {site!r}")
        self.context.site = str(site)


# =============================================================================
# DATABASE (business conflicts and query failures)
# =============================================================================


class DatabaseError(SiteMeshError):
    """Database query or constraint error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class DuplicateKeyError(DatabaseError):
    """Unique / primary-key violation. Surfaced as "already exists"."""


class ForeignReferenceError(DatabaseError):
    """A referenced entity does not exist. Surfaced as "referenced entity missing"."""


class QueryError(DatabaseError):
    """Any other driver error raised while executing a statement."""


# =============================================================================
# VALIDATION / CONFIGURATION
# =============================================================================


class ValidationError(SiteMeshError):
    """Caller supplied an invalid value."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(self, message: str, *, field: str | None = None, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class EntityNotFoundError(ValidationError):
    """The requested entity does not exist at its owning site."""

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}", field=entity, value=identifier)
        self.context.identifier = identifier


class ConfigError(SiteMeshError):
    """Configuration error (missing driver, bad site settings). Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# MIGRATION
# =============================================================================


class MigrationError(SiteMeshError):
    """Base for re-sharding failures."""

    default_category = ErrorCategory.MIGRATION
    default_retryable = False


class MigrationRejectedError(MigrationError):
    """Migration refused during validation; nothing was written."""


class MigrationInProgressError(MigrationError):
    """Another run for the same group is active, or an unfinished journal blocks re-entry."""


class MigrationAbortedError(MigrationError):
    """A copy step failed and every insert was compensated; data is consistent."""


class MigrationPartialFailureError(MigrationError):
    """
    A step failed after earlier steps committed and could not be compensated.

    The system is left in an inconsistent state. The migration journal keeps
    the exact progress; an operator must run ``resume`` or ``compensate``.
    """

    def __init__(self, message: str, *, state: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.state = state


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SiteMeshError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SiteMeshError",
    "ConnectivityError",
    "NoAvailableSiteError",
    "RoutingError",
    "InvalidIdentifierError",
    "UnknownPartitionError",
    "InvalidSiteError",
    "DatabaseError",
    "DuplicateKeyError",
    "ForeignReferenceError",
    "QueryError",
    "ValidationError",
    "EntityNotFoundError",
    "ConfigError",
    "MigrationError",
    "MigrationRejectedError",
    "MigrationInProgressError",
    "MigrationAbortedError",
    "MigrationPartialFailureError",
    "is_retryable",
]
