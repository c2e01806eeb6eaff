"""In-memory relational store standing in for the host database handle.

Tables are lists of row dicts keyed by lower-cased column names. Comparisons
are loose the way the host database layer compares: ``"5"`` equals ``5``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from selfaudit.core.logging import get_logger
from selfaudit.harness.sql import (
    Condition,
    InsertStatement,
    ResetDefaultStatement,
    SelectQuery,
    TransactionStatement,
    as_number,
    parse_select,
    parse_statement,
    prepare,
)

log = get_logger("harness.store")

BASE_TABLES = ("clients", "datasources", "schedules", "reports", "anomalies", "templates", "locks")

ConditionLike = Condition | tuple[str, str, Any]


def loose_equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    if left is None or right is None:
        return False
    a, b = as_number(left), as_number(right)
    if a is not None and b is not None:
        return a == b
    return str(left) == str(right)


def _sort_key(value: Any) -> tuple[int, float, str]:
    if value is None:
        return (0, 0.0, "")
    number = as_number(value)
    if number is not None:
        return (1, float(number), "")
    return (2, 0.0, str(value))


def _as_condition(raw: ConditionLike) -> Condition:
    if isinstance(raw, Condition):
        return raw
    name, op, value = raw
    op = op.upper() if op.upper() == "IN" else op
    if op not in ("=", "!=", "IN"):
        raise ValueError(f"Unsupported operator: {op}")
    return Condition(name.lower(), op, list(value) if op == "IN" else value)  # type: ignore[arg-type]


def _matches(row: Mapping[str, Any], conditions: Iterable[Condition]) -> bool:
    for cond in conditions:
        actual = row.get(cond.field)
        if cond.op == "IN":
            if not any(loose_equals(actual, v) for v in cond.value):
                return False
        elif cond.op == "!=":
            if loose_equals(actual, cond.value):
                return False
        elif not loose_equals(actual, cond.value):
            return False
    return True


class MockStore:
    """Named tables of row maps with auto-increment ids."""

    def __init__(self, prefix: str = "wp_fpdms_", tables: Iterable[str] = BASE_TABLES) -> None:
        self.prefix = prefix
        self.insert_id = 0
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._high_water: dict[str, int] = {}
        for name in tables:
            self._tables[self.table(name)] = []

    def table(self, name: str) -> str:
        """Full (prefixed) name of an application table."""
        return f"{self.prefix}{name}"

    @property
    def tables(self) -> list[str]:
        return sorted(self._tables)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self._tables.get(table.lower(), [])]

    # -------------------------------------------------------------------------
    # Structured API
    # -------------------------------------------------------------------------

    def insert(self, table: str, data: Mapping[str, Any]) -> int:
        """Insert one row and return the affected count (1).

        A missing id is assigned as one more than the highest id the table
        has ever held; the assigned id is exposed as ``insert_id``.
        """
        table = table.lower()
        rows = self._tables.setdefault(table, [])
        row = {str(k).lower(): v for k, v in data.items()}
        if row.get("id") is None:
            highest = max((int(as_number(r.get("id")) or 0) for r in rows), default=0)
            row["id"] = max(highest, self._high_water.get(table, 0)) + 1
        else:
            row["id"] = int(as_number(row["id"]) or 0)
        self._high_water[table] = max(self._high_water.get(table, 0), row["id"])
        self.insert_id = row["id"]
        rows.append(row)
        return 1

    def update(self, table: str, data: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        """Update rows matching all ``where`` equalities; return the affected count."""
        conditions = [Condition(str(k).lower(), "=", v) for k, v in where.items()]
        updated = 0
        for row in self._tables.get(table.lower(), []):
            if not _matches(row, conditions):
                continue
            for key, value in data.items():
                row[str(key).lower()] = value
            updated += 1
        return updated

    def delete(self, table: str, where: Mapping[str, Any]) -> int:
        table = table.lower()
        if table not in self._tables:
            return 0
        conditions = [Condition(str(k).lower(), "=", v) for k, v in where.items()]
        kept = [r for r in self._tables[table] if not _matches(r, conditions)]
        deleted = len(self._tables[table]) - len(kept)
        self._tables[table] = kept
        return deleted

    def select_all(
        self,
        table: str,
        conditions: Iterable[ConditionLike] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Rows matching ``conditions``. ``table`` may also be a SELECT statement."""
        if conditions is None and table.lstrip().upper().startswith("SELECT"):
            query = parse_select(table)
            if query is None:
                return []
            return self._run_select(query)
        query = SelectQuery(
            table=table.lower(),
            conditions=tuple(_as_condition(c) for c in conditions or ()),
            order_by=order_by.lower() if order_by else None,
            descending=descending,
            limit=limit,
        )
        return self._run_select(query)

    def select_row(
        self,
        table: str,
        conditions: Iterable[ConditionLike] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        rows = self.select_all(table, conditions, **kwargs)
        return rows[0] if rows else None

    def select_scalar(
        self,
        table: str,
        conditions: Iterable[ConditionLike] | None = None,
        *,
        column: str = "COUNT(*)",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> Any:
        """``COUNT(*)`` of matching rows, or ``column`` of the first row in order.

        Ordering and limit never change a count, as in SQL.
        """
        if conditions is None and table.lstrip().upper().startswith("SELECT"):
            query = parse_select(table)
            if query is None:
                return None
            if query.is_count:
                return len(self._filter(query))
            rows = self._run_select(query)
            return next(iter(rows[0].values()), None) if rows else None
        if column.upper() == "COUNT(*)":
            return len(self.select_all(table, conditions))
        rows = self.select_all(table, conditions, order_by=order_by, descending=descending, limit=limit)
        return rows[0].get(column.lower()) if rows else None

    # -------------------------------------------------------------------------
    # Textual API
    # -------------------------------------------------------------------------

    def prepare(self, query: str, *args: Any) -> str:
        return prepare(query, *args)

    def get_results(self, sql: str) -> list[dict[str, Any]]:
        return self.select_all(sql)

    def get_row(self, sql: str) -> dict[str, Any] | None:
        return self.select_row(sql)

    def get_var(self, sql: str) -> Any:
        return self.select_scalar(sql)

    def query(self, sql: str) -> int:
        """Execute a non-SELECT statement; return the affected row count.

        Only transaction statements, a single-row INSERT and the bulk
        ``is_default`` reset are understood. A textual INSERT into the locks
        table whose ``lock_key`` is already present affects 0 rows.
        """
        statement = parse_statement(sql)
        if statement is None:
            log.debug("query_ignored", sql=sql.strip()[:120])
            return 0

        if isinstance(statement, TransactionStatement):
            return 1

        if isinstance(statement, ResetDefaultStatement):
            for row in self._tables.get(statement.table, []):
                if not loose_equals(row.get("id"), statement.keep_id):
                    row["is_default"] = 0
            return 1

        if isinstance(statement, InsertStatement):
            if statement.table == self.table("locks"):
                key = statement.row.get("lock_key")
                if any(loose_equals(r.get("lock_key"), key) for r in self._tables.get(statement.table, [])):
                    return 0
            return self.insert(statement.table, statement.row)

        return 0

    # -------------------------------------------------------------------------

    def _filter(self, query: SelectQuery) -> list[dict[str, Any]]:
        return [r for r in self._tables.get(query.table, []) if _matches(r, query.conditions)]

    def _run_select(self, query: SelectQuery) -> list[dict[str, Any]]:
        rows = self._filter(query)
        if query.is_count:
            return [{"COUNT(*)": len(rows)}]
        if query.order_by is not None:
            column = query.order_by
            rows = sorted(rows, key=lambda r: _sort_key(r.get(column)), reverse=query.descending)
        if query.limit is not None:
            rows = rows[: query.limit]
        if query.columns != ("*",):
            return [{c: r.get(c) for c in query.columns} for r in rows]
        return [dict(r) for r in rows]
