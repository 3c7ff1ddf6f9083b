"""
sitemesh.core - routing, fault tolerance and query execution across sites.

Modules:
    sites       - SiteId / DialectName enums, failover order
    settings    - pydantic-settings configuration
    errors      - typed error hierarchy
    logging     - structlog configuration
    dialect     - per-engine placeholder translation and error classification
    adapters    - per-dialect connection handling
    pool        - one cached adapter per site
    health      - periodic probes, immutable status snapshot
    failover    - availability-based site choice
    executor    - the single statement path to a site
    schema      - table definitions and bootstrap
    registry    - partition key → site mapping on Global
    partition   - identifier → site
    identifiers - gap-filling identifier allocation
"""

from sitemesh.core.errors import (
    ConfigError,
    ConnectivityError,
    DuplicateKeyError,
    EntityNotFoundError,
    ForeignReferenceError,
    InvalidIdentifierError,
    InvalidSiteError,
    MigrationAbortedError,
    MigrationInProgressError,
    MigrationPartialFailureError,
    MigrationRejectedError,
    NoAvailableSiteError,
    QueryError,
    SiteMeshError,
    UnknownPartitionError,
    ValidationError,
)
from sitemesh.core.sites import DATA_SITES, FAILOVER_ORDER, DialectName, SiteId

__all__ = [
    # sites
    "SiteId",
    "DialectName",
    "DATA_SITES",
    "FAILOVER_ORDER",
    # errors
    "SiteMeshError",
    "ConnectivityError",
    "NoAvailableSiteError",
    "InvalidIdentifierError",
    "UnknownPartitionError",
    "InvalidSiteError",
    "DuplicateKeyError",
    "ForeignReferenceError",
    "QueryError",
    "ValidationError",
    "EntityNotFoundError",
    "ConfigError",
    "MigrationRejectedError",
    "MigrationInProgressError",
    "MigrationAbortedError",
    "MigrationPartialFailureError",
]
