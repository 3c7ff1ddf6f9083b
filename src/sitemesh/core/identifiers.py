"""Identifier allocator.

Entity identifiers are ``<prefix><tag><ordinal>``:

======== ======= ============== ==========
entity   tag     prefix         example
======== ======= ============== ==========
group    ``N``   partition key  ``P1N3``
member   ``NV``  group id       ``P1N3NV2``
project  ``DA``  group id       ``P1N3DA1``
======== ======= ============== ==========

``allocate()`` scans the identifiers already present at the site, collects
their ordinals and returns the smallest positive ordinal not in use, so
ordinals freed by deletes are reused: ``{1, 2, 4}`` → 3, ``{1, 2, 3}`` → 4,
``{}`` → 1.

Allocation is serialized per ``(site, prefix + tag)`` inside the process.
Across processes the primary key decides: ``create()`` inserts with the
allocated identifier and, on ``DuplicateKeyError``, allocates again, up to
``allocation_retries`` attempts.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterable
from typing import TypeVar

from sitemesh.core.errors import DuplicateKeyError, ValidationError
from sitemesh.core.executor import QueryExecutor
from sitemesh.core.logging import get_logger
from sitemesh.core.schema import MEMBER, PROJECT, RESEARCH_GROUP
from sitemesh.core.sites import SiteId

logger = get_logger(__name__)

T = TypeVar("T")

GROUP_TAG = "N"
MEMBER_TAG = "NV"
PROJECT_TAG = "DA"

# tag → (table, identifier column)
TAG_COLUMNS: dict[str, tuple[str, str]] = {
    GROUP_TAG: (RESEARCH_GROUP, "group_id"),
    MEMBER_TAG: (MEMBER, "member_id"),
    PROJECT_TAG: (PROJECT, "project_id"),
}


def first_free_ordinal(ordinals: Iterable[int]) -> int:
    """Smallest positive integer not in ``ordinals``."""
    used = set(ordinals)
    candidate = 1
    while candidate in used:
        candidate += 1
    return candidate


def parse_ordinals(identifiers: Iterable[str], base: str) -> tuple[list[int], list[str]]:
    """Split identifiers into parsed ordinals and those that do not match ``<base><digits>``."""
    pattern = re.compile(rf"^{re.escape(base)}(\d+)$")
    ordinals: list[int] = []
    skipped: list[str] = []
    for identifier in identifiers:
        match = pattern.match(str(identifier).strip())
        if match is None:
            skipped.append(identifier)
        else:
            ordinals.append(int(match.group(1)))
    return ordinals, skipped


class IdentifierAllocator:
    """Gap-filling ordinal allocation with per-key serialization."""

    def __init__(self, executor: QueryExecutor, *, retries: int = 5):
        self._executor = executor
        self._retries = retries
        self._locks: dict[tuple[SiteId, str], threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, site: SiteId, base: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get((site, base))
            if lock is None:
                lock = self._locks[(site, base)] = threading.RLock()
            return lock

    def allocate(self, site: SiteId, prefix: str, tag: str) -> str:
        """Next free identifier ``<prefix><tag><k>`` at ``site``.

        Identifiers with an unparseable suffix are skipped and logged.
        """
        if tag not in TAG_COLUMNS:
            raise ValidationError(f"Unknown identifier tag: {tag!r}", field="tag", value=tag)
        table, column = TAG_COLUMNS[tag]
        base = f"{prefix}{tag}"
        with self._lock_for(site, base):
            result = self._executor.execute(site, f"SELECT {column} FROM {table} WHERE {column} LIKE ?", [f"{base}%"])
            ordinals, skipped = parse_ordinals(result.column(column), base)
            for identifier in skipped:
                logger.warning("identifier_suffix_unparseable", site=site.value, base=base, identifier=identifier)
            return f"{base}{first_free_ordinal(ordinals)}"

    def create(self, site: SiteId, prefix: str, tag: str, insert: Callable[[str], T]) -> tuple[str, T]:
        """Allocate an identifier and run ``insert(identifier)``, retrying on collisions.

        Returns:
            The identifier that was inserted and whatever ``insert`` returned.

        Raises:
            DuplicateKeyError: every attempt collided.
        """
        base = f"{prefix}{tag}"
        last_error: DuplicateKeyError | None = None
        with self._lock_for(site, base):
            for attempt in range(1, self._retries + 1):
                identifier = self.allocate(site, prefix, tag)
                try:
                    return identifier, insert(identifier)
                except DuplicateKeyError as e:
                    last_error = e
                    logger.info("identifier_collision", site=site.value, identifier=identifier, attempt=attempt)
        raise DuplicateKeyError(
            f"Could not allocate a free identifier for {base} after {self._retries} attempts",
            cause=last_error,
        ).with_context(site=site.value)


__all__ = [
    "GROUP_TAG",
    "MEMBER_TAG",
    "PROJECT_TAG",
    "TAG_COLUMNS",
    "first_free_ordinal",
    "parse_ordinals",
    "IdentifierAllocator",
]
