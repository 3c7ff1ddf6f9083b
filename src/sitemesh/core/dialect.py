"""SQL dialect abstraction for the site databases.

Callers write every statement once with ``?`` positional placeholders and a
list of parameters. The ``Dialect`` of the target site turns that into what
its driver expects, quotes identifiers, supplies the liveness probe and maps
driver exceptions onto the sitemesh error taxonomy. Nothing outside this
module branches on the dialect name.

Manifesto:
    Sites run different engines (SQL Server, PostgreSQL, SQLite for
    development). Without a dialect layer every service would carry two
    copies of each query and its own error sniffing.

    - **One query contract:** ``?`` placeholders everywhere
    - **Zero coupling:** services never import a database driver
    - **Classified once:** driver errors become typed errors here

Architecture::

    service:   execute(site, "SELECT * FROM member WHERE group_id = ?", ["P1N1"])
                              │
                              ▼
    ┌──────────────────┐ ┌────────────────────┐ ┌──────────────────┐
    │ MSSQLDialect     │ │ PostgresDialect    │ │ SQLiteDialect    │
    │ %(p0)s + mapping │ │ %s + list          │ │ ? + list         │
    │ [ident]          │ │ "ident"            │ │ "ident"          │
    │ 2627/2601, 547   │ │ 23505, 23503       │ │ UNIQUE, FOREIGN  │
    └──────────────────┘ └────────────────────┘ └──────────────────┘

Examples:
    >>> from sitemesh.core.dialect import get_dialect
    >>> get_dialect("mssql").translate("SELECT * FROM t WHERE a = ? AND b = ?", [1, 2])
    ('SELECT * FROM t WHERE a = %(p0)s AND b = %(p1)s', {'p0': 1, 'p1': 2})
    >>> get_dialect("postgres").translate("SELECT '?' , ?", ["x"])
    ("SELECT '?' , %s", ['x'])

Guardrails:
    ❌ DON'T: Write driver-specific placeholders in services
    ✅ DO: Use ``?`` and let the site's dialect translate

    ❌ DON'T: Match on driver exception messages outside this module
    ✅ DO: Catch the typed errors from ``sitemesh.core.errors``

Tags:
    dialect, sql, placeholders, error-classification, sitemesh

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from sitemesh.core.errors import (
    ConnectivityError,
    DuplicateKeyError,
    ForeignReferenceError,
    QueryError,
    SiteMeshError,
)
from sitemesh.core.sites import DialectName


@runtime_checkable
class Dialect(Protocol):
    """Per-engine SQL contract."""

    @property
    def name(self) -> DialectName:
        """Dialect family."""
        ...

    @property
    def probe_sql(self) -> str:
        """Cheapest statement proving the server answers."""
        ...

    def translate(self, sql: str, params: Sequence[Any]) -> tuple[str, Any]:
        """Rewrite ``?`` placeholders for the driver.

        Returns the driver-ready SQL and the parameter object to pass with
        it (a list, a mapping, or ``None`` when there are no parameters).
        """
        ...

    def quote(self, identifier: str) -> str:
        """Quote a table or column name."""
        ...

    def text_type(self, length: int) -> str:
        """DDL type for a variable-length unicode string column."""
        ...

    def create_table(self, table: str, body: str) -> str:
        """``CREATE TABLE`` statement that is a no-op when the table exists."""
        ...

    def classify(self, exc: Exception) -> SiteMeshError:
        """Map a driver exception to the error taxonomy."""
        ...


# =========================================================================
# Placeholder scanning
# =========================================================================


def split_placeholders(sql: str) -> list[str]:
    """Split ``sql`` on ``?`` markers that are outside quoted text.

    Single-quoted literals, double-quoted identifiers and bracketed
    identifiers are skipped. The result has one more element than there are
    placeholders.
    """
    chunks: list[str] = []
    current: list[str] = []
    closing: str | None = None
    for char in sql:
        if closing is not None:
            current.append(char)
            if char == closing:
                closing = None
            continue
        if char == "?":
            chunks.append("".join(current))
            current = []
            continue
        if char in ("'", '"'):
            closing = char
        elif char == "[":
            closing = "]"
        current.append(char)
    chunks.append("".join(current))
    return chunks


def _check_arity(sql: str, chunks: list[str], params: Sequence[Any]) -> None:
    expected = len(chunks) - 1
    if expected != len(params):
        raise QueryError(
            f"Statement has {expected} placeholder(s) but {len(params)} parameter(s) were given",
        ).with_context(sql=sql)


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect: ``?`` passes through, ``sqlite3`` error messages."""

    @property
    def name(self) -> DialectName:
        return DialectName.SQLITE

    @property
    def probe_sql(self) -> str:
        return "SELECT 1"

    def translate(self, sql: str, params: Sequence[Any]) -> tuple[str, Any]:
        _check_arity(sql, split_placeholders(sql), params)
        return sql, list(params)

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def text_type(self, length: int) -> str:
        return f"VARCHAR({length})"

    def create_table(self, table: str, body: str) -> str:
        return f"CREATE TABLE IF NOT EXISTS {self.quote(table)} ({body})"

    def classify(self, exc: Exception) -> SiteMeshError:
        import sqlite3

        if isinstance(exc, SiteMeshError):
            return exc
        message = str(exc)
        if isinstance(exc, sqlite3.IntegrityError):
            if "UNIQUE" in message or "PRIMARY KEY" in message:
                return DuplicateKeyError(f"Already exists: {message}", cause=exc)
            if "FOREIGN KEY" in message:
                return ForeignReferenceError(f"Referenced entity missing: {message}", cause=exc)
        if isinstance(exc, sqlite3.OperationalError) and (
            "unable to open" in message or "database is locked" in message
        ):
            return ConnectivityError(f"SQLite unavailable: {message}", cause=exc)
        return QueryError(f"Query failed: {message}", cause=exc)


class PostgresDialect:
    """PostgreSQL dialect for psycopg2: ``%s`` markers, SQLSTATE codes.

    psycopg2 only understands ``%s`` (or named ``%(x)s``) markers, so ``?``
    becomes ``%s`` and literal ``%`` signs are doubled.
    """

    _CONNECTION_SQLSTATE_PREFIXES = ("08", "57P")

    @property
    def name(self) -> DialectName:
        return DialectName.POSTGRES

    @property
    def probe_sql(self) -> str:
        return "SELECT 1"

    def translate(self, sql: str, params: Sequence[Any]) -> tuple[str, Any]:
        chunks = split_placeholders(sql)
        _check_arity(sql, chunks, params)
        if not params:
            return sql, None
        return "%s".join(chunk.replace("%", "%%") for chunk in chunks), list(params)

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def text_type(self, length: int) -> str:
        return f"VARCHAR({length})"

    def create_table(self, table: str, body: str) -> str:
        return f"CREATE TABLE IF NOT EXISTS {self.quote(table)} ({body})"

    def classify(self, exc: Exception) -> SiteMeshError:
        if isinstance(exc, SiteMeshError):
            return exc
        import psycopg2

        code = getattr(exc, "pgcode", None) or ""
        message = str(exc).strip()
        if code == "23505":
            return DuplicateKeyError(f"Already exists: {message}", cause=exc)
        if code == "23503":
            return ForeignReferenceError(f"Referenced entity missing: {message}", cause=exc)
        if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)) or code.startswith(
            self._CONNECTION_SQLSTATE_PREFIXES
        ):
            return ConnectivityError(f"PostgreSQL unavailable: {message}", cause=exc)
        return QueryError(f"Query failed: {message}", cause=exc)


class MSSQLDialect:
    """SQL Server dialect for pymssql: named ``%(pN)s`` parameters.

    Each ``?`` becomes ``%(p0)s``, ``%(p1)s``, ... and the parameter list
    becomes a mapping, mirroring ``@param0``-style binding on the server.
    """

    _DUPLICATE_ERRORS = frozenset({2601, 2627})
    _FOREIGN_KEY_ERRORS = frozenset({547})
    # Login failed, cannot open database, DB-Lib connect/timeout failures
    _CONNECTION_ERRORS = frozenset({18456, 4060, 20002, 20003, 20006, 20009, 20047})

    @property
    def name(self) -> DialectName:
        return DialectName.MSSQL

    @property
    def probe_sql(self) -> str:
        return "SELECT 1"

    def translate(self, sql: str, params: Sequence[Any]) -> tuple[str, Any]:
        chunks = split_placeholders(sql)
        _check_arity(sql, chunks, params)
        if not params:
            return sql, None
        parts = [chunks[0].replace("%", "%%")]
        for index, chunk in enumerate(chunks[1:]):
            parts.append(f"%(p{index})s")
            parts.append(chunk.replace("%", "%%"))
        return "".join(parts), {f"p{index}": value for index, value in enumerate(params)}

    def quote(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def text_type(self, length: int) -> str:
        return f"NVARCHAR({length})"

    def create_table(self, table: str, body: str) -> str:
        return f"IF OBJECT_ID(N'{table}', N'U') IS NULL CREATE TABLE {self.quote(table)} ({body})"

    @staticmethod
    def _error_number(exc: Exception) -> int | None:
        if exc.args and isinstance(exc.args[0], int):
            return exc.args[0]
        return None

    def classify(self, exc: Exception) -> SiteMeshError:
        if isinstance(exc, SiteMeshError):
            return exc
        import pymssql

        number = self._error_number(exc)
        message = str(exc)
        if number in self._DUPLICATE_ERRORS:
            return DuplicateKeyError(f"Already exists: {message}", cause=exc)
        if number in self._FOREIGN_KEY_ERRORS:
            return ForeignReferenceError(f"Referenced entity missing: {message}", cause=exc)
        if number in self._CONNECTION_ERRORS or isinstance(exc, pymssql.InterfaceError):
            return ConnectivityError(f"SQL Server unavailable: {message}", cause=exc)
        return QueryError(f"Query failed: {message}", cause=exc)


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[DialectName, Dialect] = {
    DialectName.SQLITE: SQLiteDialect(),
    DialectName.POSTGRES: PostgresDialect(),
    DialectName.MSSQL: MSSQLDialect(),
}


def get_dialect(name: DialectName | str) -> Dialect:
    """Get a dialect by name (``mssql``, ``postgres``/``postgresql``, ``sqlite``).

    Raises:
        ValueError: If ``name`` is not recognised.
    """
    try:
        key = DialectName.parse(name)
    except ValueError:
        raise ValueError(f"Unknown dialect '{name}'. Supported: {sorted(d.value for d in _DIALECTS)}") from None
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MSSQLDialect",
    "split_placeholders",
    "get_dialect",
]
