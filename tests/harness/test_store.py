"""Tests for the in-memory relational store."""

from __future__ import annotations

import pytest

from selfaudit.harness.store import MockStore, loose_equals

T = "wp_fpdms_items"


@pytest.fixture
def store() -> MockStore:
    return MockStore()


class TestInsert:
    """Auto-increment behavior."""

    def test_given_row_without_id_when_inserted_then_id_assigned(self, store: MockStore) -> None:
        """The first row gets id >= 1 and reads back intact."""
        store.insert(T, {"name": "x"})

        rows = store.select_all(T, [])

        assert len(rows) == 1
        assert rows[0]["id"] >= 1
        assert rows[0]["name"] == "x"

    def test_given_second_insert_when_inserted_then_id_strictly_greater(self, store: MockStore) -> None:
        """Ids strictly increase."""
        store.insert(T, {"name": "a"})
        first = store.insert_id
        store.insert(T, {"name": "b"})

        assert store.insert_id > first

    def test_given_deleted_top_row_when_inserted_then_id_not_reused(self, store: MockStore) -> None:
        """Ids are never reused after deleting the highest row."""
        store.insert(T, {"name": "a"})
        store.insert(T, {"name": "b"})
        store.delete(T, {"id": 2})

        store.insert(T, {"name": "c"})

        assert store.insert_id == 3

    def test_given_explicit_id_when_inserted_then_kept_and_raises_counter(self, store: MockStore) -> None:
        """Explicit ids are honored and later ids continue above them."""
        store.insert(T, {"id": "10", "name": "a"})
        store.insert(T, {"name": "b"})

        assert [r["id"] for r in store.select_all(T, [])] == [10, 11]

    def test_given_mixed_case_columns_when_inserted_then_lowered(self, store: MockStore) -> None:
        """Column names are case-insensitive."""
        store.insert(T, {"Name": "x"})

        assert store.select_scalar(T, [("NAME", "=", "x")]) == 1


class TestSelect:
    """Structured selects."""

    @pytest.fixture
    def filled(self, store: MockStore) -> MockStore:
        for kind, score in (("a", 3), ("b", 1), ("c", 2), ("a", None)):
            store.insert(T, {"type": kind, "score": score})
        return store

    def test_given_order_when_scalar_selected_then_first_row_in_that_order(self, filled: MockStore) -> None:
        """A column scalar honors ordering, while a count ignores limit."""
        where = [("type", "IN", ["b", "c"])]

        assert filled.select_scalar(T, where, column="type", order_by="id") == "b"
        assert filled.select_scalar(T, where, column="type", order_by="id", descending=True, limit=1) == "c"
        assert filled.select_scalar(T, [], limit=1) == 4

    def test_given_in_condition_when_selected_then_only_listed_values(self, filled: MockStore) -> None:
        """IN returns only rows whose field is in the list."""
        rows = filled.select_all(T, [("type", "IN", ["a", "c"])])

        assert sorted(r["type"] for r in rows) == ["a", "a", "c"]

    def test_given_not_equal_when_selected_then_excluded(self, filled: MockStore) -> None:
        """``!=`` drops matching rows."""
        rows = filled.select_all(T, [("type", "!=", "a")])

        assert [r["type"] for r in rows] == ["b", "c"]

    def test_given_order_and_limit_when_selected_then_applied(self, filled: MockStore) -> None:
        """Ordering puts nulls first ascending; limit truncates."""
        asc = filled.select_all(T, [], order_by="score")
        desc = filled.select_all(T, [], order_by="score", descending=True, limit=2)

        assert [r["score"] for r in asc] == [None, 1, 2, 3]
        assert [r["score"] for r in desc] == [3, 2]

    def test_given_loose_value_when_selected_then_matches_numeric(self, filled: MockStore) -> None:
        """String and integer forms of a number compare equal."""
        assert filled.select_row(T, [("id", "=", "2")])["type"] == "b"  # type: ignore[index]

    def test_given_unsupported_operator_when_selected_then_value_error(self, filled: MockStore) -> None:
        """Only =, != and IN are supported."""
        with pytest.raises(ValueError, match="Unsupported operator"):
            filled.select_all(T, [("score", ">", 1)])

    def test_given_textual_select_when_run_then_same_semantics(self, filled: MockStore) -> None:
        """Textual SELECTs run through the parser."""
        rows = filled.get_results(f"SELECT id, type FROM {T} WHERE type IN ('a','b') ORDER BY id DESC LIMIT 2")

        assert rows == [{"id": 4, "type": "a"}, {"id": 2, "type": "b"}]

    def test_given_textual_count_when_var_then_count(self, filled: MockStore) -> None:
        """``COUNT(*)`` through get_var returns the count."""
        assert filled.get_var(f"SELECT COUNT(*) FROM {T} WHERE type = 'a'") == 2

    def test_given_textual_column_when_var_then_first_value(self, filled: MockStore) -> None:
        """A column select through get_var returns the first row's value."""
        assert filled.get_var(f"SELECT type FROM {T} ORDER BY score DESC LIMIT 1") == "a"

    def test_given_unknown_table_when_selected_then_empty(self, store: MockStore) -> None:
        """Missing tables read as empty."""
        assert store.select_all("nope", []) == []
        assert store.get_row("SELECT * FROM nope") is None


class TestUpdateDelete:
    """Equality-matched writes."""

    def test_given_where_when_updated_then_only_matches_changed(self, store: MockStore) -> None:
        """Updates apply to rows matching every predicate."""
        store.insert(T, {"client_id": 1, "status": "queued"})
        store.insert(T, {"client_id": 2, "status": "queued"})

        changed = store.update(T, {"status": "running"}, {"client_id": "1", "status": "queued"})

        assert changed == 1
        assert [r["status"] for r in store.rows(T)] == ["running", "queued"]

    def test_given_where_when_deleted_then_count_returned(self, store: MockStore) -> None:
        """Deletes report how many rows were removed."""
        store.insert(T, {"k": "a"})
        store.insert(T, {"k": "a"})
        store.insert(T, {"k": "b"})

        assert store.delete(T, {"k": "a"}) == 2
        assert store.delete("missing", {"k": "a"}) == 0


class TestQuery:
    """Textual non-SELECT statements."""

    def test_given_duplicate_lock_insert_when_queried_then_zero_rows(self, store: MockStore) -> None:
        """A second textual INSERT of the same lock key affects no rows."""
        sql = "INSERT INTO wp_fpdms_locks (lock_key, owner, acquired_at) VALUES ('queue-global', '{}', '2025-01-01 00:00:00')"

        assert store.query(sql.format("a")) == 1
        assert store.query(sql.format("b")) == 0
        assert [r["owner"] for r in store.rows("wp_fpdms_locks")] == ["a"]

    def test_given_duplicate_insert_elsewhere_when_queried_then_inserted(self, store: MockStore) -> None:
        """The unique-key rule only applies to the locks table."""
        sql = "INSERT INTO wp_fpdms_clients (lock_key) VALUES ('x')"

        assert store.query(sql) == 1
        assert store.query(sql) == 1

    def test_given_reset_default_when_queried_then_others_cleared(self, store: MockStore) -> None:
        """Every row but the kept id loses its default flag."""
        table = store.table("templates")
        for _ in range(3):
            store.insert(table, {"is_default": 1})

        store.query(f"UPDATE {table} SET is_default = 0 WHERE id != 2")

        assert [r["is_default"] for r in store.rows(table)] == [0, 1, 0]

    def test_given_unsupported_statement_when_queried_then_zero(self, store: MockStore) -> None:
        """Unknown statements affect nothing."""
        assert store.query("TRUNCATE wp_fpdms_clients") == 0
        assert store.query("START TRANSACTION") == 1


class TestLooseEquals:
    """Comparison rules."""

    @pytest.mark.parametrize(
        ("left", "right", "expected"),
        [("5", 5, True), ("5.0", 5, True), (None, 0, False), ("a", "a", True), ("a", "b", False)],
    )
    def test_given_values_when_compared_then_expected(self, left: object, right: object, expected: bool) -> None:
        """Numbers compare by value; None only equals None."""
        assert loose_equals(left, right) is expected
