"""Tests for ``sitemesh.core.dialect``: placeholder translation and error classification."""

from __future__ import annotations

import sqlite3

import pytest

from sitemesh.core.dialect import (
    MSSQLDialect,
    PostgresDialect,
    SQLiteDialect,
    get_dialect,
    split_placeholders,
)
from sitemesh.core.errors import (
    ConnectivityError,
    DuplicateKeyError,
    ForeignReferenceError,
    QueryError,
)
from sitemesh.core.sites import DialectName


class TestSplitPlaceholders:
    def test_plain(self):
        assert split_placeholders("SELECT * FROM t WHERE a = ? AND b = ?") == [
            "SELECT * FROM t WHERE a = ",
            " AND b = ",
            "",
        ]

    def test_question_mark_in_string_literal_ignored(self):
        assert len(split_placeholders("SELECT '?' FROM t WHERE a = ?")) == 2

    def test_question_mark_in_quoted_identifier_ignored(self):
        assert len(split_placeholders('SELECT "what?" FROM t')) == 1

    def test_question_mark_in_brackets_ignored(self):
        assert len(split_placeholders("SELECT [col?] FROM t WHERE x = ?")) == 2

    def test_no_placeholders(self):
        assert split_placeholders("SELECT 1") == ["SELECT 1"]


class TestTranslate:
    def test_sqlite_passes_through(self):
        sql, params = SQLiteDialect().translate("SELECT ? , ?", ["a", "b"])
        assert sql == "SELECT ? , ?"
        assert params == ["a", "b"]

    def test_postgres_uses_percent_s(self):
        sql, params = PostgresDialect().translate("SELECT * FROM t WHERE a = ? AND b = ?", [1, 2])
        assert sql == "SELECT * FROM t WHERE a = %s AND b = %s"
        assert params == [1, 2]

    def test_mssql_uses_named_pyformat(self):
        sql, params = MSSQLDialect().translate("UPDATE t SET a = ? WHERE b = ?", ["x", "y"])
        assert sql == "UPDATE t SET a = %(p0)s WHERE b = %(p1)s"
        assert params == {"p0": "x", "p1": "y"}

    def test_percent_doubled_for_pyformat(self):
        sql, _ = PostgresDialect().translate("SELECT * FROM t WHERE a LIKE ?", ["P1%"])
        assert sql == "SELECT * FROM t WHERE a LIKE %s"
        sql, _ = MSSQLDialect().translate("SELECT '100%' AS pct, ? AS v", [1])
        assert sql == "SELECT '100%%' AS pct, %(p0)s AS v"

    def test_no_params_returns_none_for_pyformat(self):
        assert PostgresDialect().translate("SELECT 1", []) == ("SELECT 1", None)
        assert MSSQLDialect().translate("SELECT 1", []) == ("SELECT 1", None)

    @pytest.mark.parametrize("dialect", [SQLiteDialect(), PostgresDialect(), MSSQLDialect()])
    def test_arity_mismatch_raises(self, dialect):
        with pytest.raises(QueryError, match="1 placeholder"):
            dialect.translate("SELECT ? ", [1, 2])


class TestDDL:
    def test_mssql_create_table_guarded(self):
        ddl = MSSQLDialect().create_table("member", "member_id VARCHAR(30)")
        assert ddl.startswith("IF OBJECT_ID(N'member', N'U') IS NULL")
        assert "CREATE TABLE [member]" in ddl

    def test_sqlite_create_table_if_not_exists(self):
        assert SQLiteDialect().create_table("member", "x INT") == 'CREATE TABLE IF NOT EXISTS "member" (x INT)'

    def test_text_types(self):
        assert MSSQLDialect().text_type(100) == "NVARCHAR(100)"
        assert PostgresDialect().text_type(100) == "VARCHAR(100)"


class TestClassifySQLite:
    def setup_method(self):
        self.dialect = SQLiteDialect()

    def test_unique_is_duplicate(self):
        error = self.dialect.classify(sqlite3.IntegrityError("UNIQUE constraint failed: member.member_id"))
        assert isinstance(error, DuplicateKeyError)

    def test_foreign_key(self):
        error = self.dialect.classify(sqlite3.IntegrityError("FOREIGN KEY constraint failed"))
        assert isinstance(error, ForeignReferenceError)

    def test_unable_to_open_is_connectivity(self):
        error = self.dialect.classify(sqlite3.OperationalError("unable to open database file"))
        assert isinstance(error, ConnectivityError)
        assert error.retryable is True

    def test_other_is_query_error(self):
        error = self.dialect.classify(sqlite3.OperationalError("no such table: nope"))
        assert isinstance(error, QueryError)
        assert isinstance(error.cause, sqlite3.OperationalError)


class TestGetDialect:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("sqlite", DialectName.SQLITE),
            ("postgres", DialectName.POSTGRES),
            ("postgresql", DialectName.POSTGRES),
            ("mssql", DialectName.MSSQL),
            ("sqlserver", DialectName.MSSQL),
        ],
    )
    def test_by_name(self, name, expected):
        assert get_dialect(name).name is expected

    def test_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("oracle")
