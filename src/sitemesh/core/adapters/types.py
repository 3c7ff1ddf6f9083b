"""Result and option types shared by the adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class QueryResult:
    """
    Uniform statement result.

    ``rows`` is always a list of column→value dicts (empty for DML);
    ``row_count`` is the number of rows returned or affected.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def column(self, name: str) -> list[Any]:
        return [row[name] for row in self.rows]


@dataclass(frozen=True)
class Timeouts:
    """Driver deadlines in seconds."""

    connect: int = 10
    query: int = 30


__all__ = [
    "QueryResult",
    "Timeouts",
]
