"""Site and dialect identifiers.

A *site* is one independent database server. Three of them (``siteA``,
``siteB``, ``siteC``) hold partitioned business data; ``global`` holds only
the routing table. The set is closed: routing never targets a site outside
``DATA_SITES``.

Tags:
    sitemesh, sites, enums
"""

from __future__ import annotations

from enum import Enum


class SiteId(str, Enum):
    """Known sites."""

    SITE_A = "siteA"
    SITE_B = "siteB"
    SITE_C = "siteC"
    GLOBAL = "global"

    def __str__(self) -> str:
        return self.value

    @property
    def is_data_site(self) -> bool:
        return self is not SiteId.GLOBAL

    @classmethod
    def parse(cls, value: str | SiteId) -> SiteId:
        """Parse a site name, case-insensitively.

        Raises:
            ValueError: if ``value`` does not name a known site.
        """
        if isinstance(value, SiteId):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Unknown site: {value!r}")


class DialectName(str, Enum):
    """SQL dialect families spoken by the sites."""

    MSSQL = "mssql"
    POSTGRES = "postgres"
    SQLITE = "sqlite"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | DialectName) -> DialectName:
        if isinstance(value, DialectName):
            return value
        key = str(value).strip().lower()
        aliases = {"sqlserver": "mssql", "postgresql": "postgres", "pg": "postgres"}
        key = aliases.get(key, key)
        return cls(key)


# Sites that hold business data, in failover priority order.
DATA_SITES: tuple[SiteId, ...] = (SiteId.SITE_A, SiteId.SITE_B, SiteId.SITE_C)

FAILOVER_ORDER: tuple[SiteId, ...] = DATA_SITES

ALL_SITES: tuple[SiteId, ...] = DATA_SITES + (SiteId.GLOBAL,)


__all__ = [
    "SiteId",
    "DialectName",
    "DATA_SITES",
    "FAILOVER_ORDER",
    "ALL_SITES",
]
