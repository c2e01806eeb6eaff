"""Tests for the SQL mini-parser.

The supported grammar is enumerated here on purpose: anything outside it
must parse to None rather than being half-understood.
"""

from __future__ import annotations

import pytest

from selfaudit.harness.sql import (
    Condition,
    InsertStatement,
    ResetDefaultStatement,
    TransactionStatement,
    as_number,
    parse_select,
    parse_statement,
    prepare,
    unquote,
)


class TestParseSelect:
    """SELECT shapes."""

    def test_given_full_select_when_parsed_then_all_clauses_read(self) -> None:
        """WHERE, ORDER BY and LIMIT are all recognized."""
        query = parse_select(
            "SELECT * FROM wp_fpdms_reports WHERE client_id = 1 AND status IN ('queued','running') "
            "ORDER BY id DESC LIMIT 1"
        )

        assert query is not None
        assert query.table == "wp_fpdms_reports"
        assert query.conditions == (
            Condition("client_id", "=", "1"),
            Condition("status", "IN", ["queued", "running"]),
        )
        assert (query.order_by, query.descending, query.limit) == ("id", True, 1)

    def test_given_count_when_parsed_then_count_query(self) -> None:
        """``COUNT(*)`` selects a count."""
        query = parse_select("select count(*) from t where kind != 'x'")

        assert query is not None
        assert query.is_count
        assert query.conditions == (Condition("kind", "!=", "x"),)

    def test_given_column_list_when_parsed_then_columns_lowered(self) -> None:
        """Explicit column lists are kept in order."""
        query = parse_select("SELECT Owner, acquired_at FROM locks WHERE lock_key = 'a'")

        assert query is not None
        assert query.columns == ("owner", "acquired_at")

    def test_given_keywords_inside_literals_when_parsed_then_literals_kept_whole(self) -> None:
        """AND, commas, parentheses and LIMIT inside quotes are part of the value."""
        query = parse_select(
            "SELECT * FROM t WHERE name = 'Tom AND Jerry' AND tag IN ('a,b', 'c)') "
            "AND note != 'ORDER BY x LIMIT 9' LIMIT 2"
        )

        assert query is not None
        assert query.conditions == (
            Condition("name", "=", "Tom AND Jerry"),
            Condition("tag", "IN", ["a,b", "c)"]),
            Condition("note", "!=", "ORDER BY x LIMIT 9"),
        )
        assert (query.order_by, query.limit) == (None, 2)

    def test_given_parenthesized_clause_when_parsed_then_parens_stripped(self) -> None:
        """Grouping parentheses around simple predicates are ignored."""
        query = parse_select("SELECT * FROM t WHERE (active = 1)")

        assert query is not None
        assert query.conditions == (Condition("active", "=", "1"),)

    @pytest.mark.parametrize("sql", ["DELETE FROM t", "SELECT FROM t", "SELECT a.b FROM t"])
    def test_given_unsupported_select_when_parsed_then_none(self, sql: str) -> None:
        """Unsupported shapes are rejected."""
        assert parse_select(sql) is None


class TestParseStatement:
    """Non-SELECT shapes."""

    def test_given_single_row_insert_when_parsed_then_row_built(self) -> None:
        """Values are unquoted and escaped quotes restored."""
        statement = parse_statement(
            "INSERT INTO wp_fpdms_locks (lock_key, owner, acquired_at) VALUES ('queue-global', 'it\\'s', 5);"
        )

        assert statement == InsertStatement(
            "wp_fpdms_locks", {"lock_key": "queue-global", "owner": "it's", "acquired_at": "5"}
        )

    def test_given_reset_default_when_parsed_then_keep_id(self) -> None:
        """The bulk ``is_default`` reset is the only UPDATE understood."""
        statement = parse_statement("UPDATE wp_fpdms_templates SET is_default = 0 WHERE id != 4")

        assert statement == ResetDefaultStatement("wp_fpdms_templates", 4)

    @pytest.mark.parametrize("sql", ["START TRANSACTION", "begin", "COMMIT;", " rollback "])
    def test_given_transaction_keyword_when_parsed_then_transaction(self, sql: str) -> None:
        """Transaction control is accepted."""
        assert isinstance(parse_statement(sql), TransactionStatement)

    @pytest.mark.parametrize("sql", ["", "DROP TABLE t", "UPDATE t SET name = 'x' WHERE id = 1"])
    def test_given_other_statement_when_parsed_then_none(self, sql: str) -> None:
        """Everything else is unsupported."""
        assert parse_statement(sql) is None


class TestPrepare:
    """Placeholder substitution."""

    def test_given_string_placeholder_when_prepared_then_quoted_and_escaped(self) -> None:
        """Strings are single-quoted with quotes escaped."""
        assert prepare("name = %s", "O'Brien") == "name = 'O\\'Brien'"

    def test_given_numeric_placeholders_when_prepared_then_coerced(self) -> None:
        """Non-numeric values become 0 for numeric placeholders."""
        assert prepare("a = %d AND b = %d AND c = %f", "7", "7x", 1.5) == "a = 7 AND b = 0 AND c = 1.5"

    def test_given_list_argument_when_prepared_then_expanded(self) -> None:
        """A single sequence argument supplies every placeholder."""
        assert prepare("%s-%d", ["x", 2]) == "'x'-2"

    def test_given_literal_percent_when_prepared_then_kept(self) -> None:
        """``%%`` is a literal percent sign."""
        assert prepare("LIKE '50%%' AND id = %d", 3) == "LIKE '50%' AND id = 3"

    def test_given_prepared_value_when_selected_then_round_trips(self) -> None:
        """Escaped strings parse back to the original value."""
        query = parse_select(prepare("SELECT * FROM t WHERE name = %s", "O'Brien"))

        assert query is not None
        assert query.conditions[0].value == "O'Brien"


class TestScalars:
    """Value helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(True, 1), (3, 3), ("4", 4), ("-2", -2), ("2.5", 2.5), ("abc", None), (None, None)],
    )
    def test_given_value_when_as_number_then_expected(self, value: object, expected: object) -> None:
        """Numeric coercion follows loose database rules."""
        assert as_number(value) == expected

    def test_given_quoted_when_unquote_then_stripped(self) -> None:
        """Surrounding quotes are removed and escapes restored."""
        assert unquote(" 'a\\'b' ") == "a'b"
