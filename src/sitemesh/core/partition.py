"""Partition resolver: identifier → owning site.

The partition key of an identifier is its leading run of letters followed
by digits (``P1N1NV2`` → ``P1``). The key is looked up in the site
registry.
"""

from __future__ import annotations

import re

from sitemesh.core.errors import InvalidIdentifierError
from sitemesh.core.registry import SiteRegistry
from sitemesh.core.sites import SiteId

PARTITION_KEY_PATTERN = re.compile(r"^[A-Za-z]+\d+")


def partition_key_of(identifier: str) -> str:
    """Extract the partition key.

    >>> partition_key_of("P1N1NV2")
    'P1'

    Raises:
        InvalidIdentifierError: no ``letters+digits`` prefix.
    """
    match = PARTITION_KEY_PATTERN.match(identifier or "")
    if match is None:
        raise InvalidIdentifierError(identifier)
    return match.group(0)


class PartitionResolver:
    def __init__(self, registry: SiteRegistry):
        self._registry = registry

    def resolve_key(self, partition_key: str) -> SiteId:
        return self._registry.lookup(partition_key).site

    def resolve_site(self, identifier: str) -> SiteId:
        """Owning site of any group, member or project identifier.

        Raises:
            InvalidIdentifierError, UnknownPartitionError, InvalidSiteError
        """
        return self.resolve_key(partition_key_of(identifier))


__all__ = [
    "PARTITION_KEY_PATTERN",
    "partition_key_of",
    "PartitionResolver",
]
