"""SQL mini-parser for the mock relational store.

Only the statement shapes the application issues are understood:

- ``SELECT <*|COUNT(*)|col[, col...]> FROM t [WHERE ...] [ORDER BY c [ASC|DESC]] [LIMIT n]``
  where the WHERE clause is AND-ed ``col = v``, ``col != v`` and ``col IN (...)``;
  quoted literals may themselves contain AND, commas and parentheses
- ``INSERT INTO t (cols) VALUES (vals)`` with a single row
- ``UPDATE t SET is_default = 0 WHERE id != N``
- ``START TRANSACTION``, ``COMMIT`` and ``ROLLBACK``

Anything else parses to None and the store treats it as affecting no rows.
"""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from typing import Any, Literal

Operator = Literal["=", "!=", "IN"]

_RE_SELECT = re.compile(
    r"^SELECT\s+(?P<columns>\*|COUNT\(\*\)|[a-z0-9_]+(?:\s*,\s*[a-z0-9_]+)*)\s+FROM\s+(?P<table>\S+)\s*(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)
_RE_WHERE = re.compile(r"WHERE\s+(?P<where>.+?)(?:\s+ORDER\s+BY|\s+LIMIT|$)", re.IGNORECASE | re.DOTALL)
_RE_AND = re.compile(r"\s+AND\s+", re.IGNORECASE)
_RE_QUOTED = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", re.DOTALL)
_RE_IN = re.compile(r"^(?P<field>[a-z0-9_]+)\s+IN\s*\((?P<values>[^)]*)\)$", re.IGNORECASE)
_RE_NEQ = re.compile(r"^(?P<field>[a-z0-9_]+)\s*!=\s*(?P<value>.+)$", re.IGNORECASE)
_RE_EQ = re.compile(r"^(?P<field>[a-z0-9_]+)\s*=\s*(?P<value>.+)$", re.IGNORECASE)
_RE_ORDER = re.compile(r"ORDER\s+BY\s+(?P<field>[a-z0-9_]+)\s*(?P<dir>ASC|DESC)?", re.IGNORECASE)
_RE_LIMIT = re.compile(r"LIMIT\s+(?P<limit>\d+)", re.IGNORECASE)
_RE_INSERT = re.compile(
    r"^INSERT\s+INTO\s+(?P<table>\S+)\s*\((?P<columns>[^)]+)\)\s*VALUES\s*\((?P<values>.+)\)$",
    re.IGNORECASE | re.DOTALL,
)
_RE_RESET_DEFAULT = re.compile(
    r"^UPDATE\s+(?P<table>\S+)\s+SET\s+is_default\s*=\s*0\s+WHERE\s+id\s*!=\s*(?P<id>\d+)$",
    re.IGNORECASE,
)
_TRANSACTION = ("START TRANSACTION", "BEGIN", "COMMIT", "ROLLBACK")


@dataclass(frozen=True, slots=True)
class Condition:
    """One AND-ed predicate. ``value`` is a list for IN."""

    field: str
    op: Operator
    value: Any


@dataclass(frozen=True, slots=True)
class SelectQuery:
    table: str
    columns: tuple[str, ...] = ("*",)
    conditions: tuple[Condition, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    @property
    def is_count(self) -> bool:
        return self.columns == ("COUNT(*)",)


@dataclass(frozen=True, slots=True)
class InsertStatement:
    table: str
    row: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResetDefaultStatement:
    """``UPDATE t SET is_default = 0 WHERE id != keep_id``"""

    table: str
    keep_id: int


@dataclass(frozen=True, slots=True)
class TransactionStatement:
    keyword: str


Statement = InsertStatement | ResetDefaultStatement | TransactionStatement


def unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]
    return value.replace("\\'", "'").replace('\\"', '"').replace("\\\\", "\\")


def _mask_quoted(sql: str) -> str:
    """``sql`` with the inside of every quoted literal blanked out, offsets unchanged."""
    return _RE_QUOTED.sub(lambda m: m.group(0)[0] + "_" * (len(m.group(0)) - 2) + m.group(0)[-1], sql)


def _strip(text: str, masked: str, chars: str | None = None) -> tuple[str, str]:
    left = len(masked) - len(masked.lstrip(chars))
    right = len(masked.rstrip(chars))
    if right <= left:
        return "", ""
    return text[left:right], masked[left:right]


def _split_and(text: str, masked: str) -> list[tuple[str, str]]:
    parts: list[tuple[str, str]] = []
    start = 0
    for match in _RE_AND.finditer(masked):
        parts.append((text[start : match.start()], masked[start : match.start()]))
        start = match.end()
    parts.append((text[start:], masked[start:]))
    return parts


def parse_select(sql: str) -> SelectQuery | None:
    match = _RE_SELECT.match(sql.strip())
    if match is None:
        return None

    raw_columns = match.group("columns")
    if raw_columns.upper() == "COUNT(*)":
        columns: tuple[str, ...] = ("COUNT(*)",)
    elif raw_columns == "*":
        columns = ("*",)
    else:
        columns = tuple(c.strip().lower() for c in raw_columns.split(","))

    # Clause keywords, parentheses and commas only count outside quoted literals.
    rest = match.group("rest")
    masked = _mask_quoted(rest)
    conditions: list[Condition] = []
    where = _RE_WHERE.search(masked)
    if where:
        span = slice(where.start("where"), where.end("where"))
        for clause, masked_clause in _split_and(rest[span], masked[span]):
            clause, masked_clause = _strip(clause, masked_clause)
            if not _RE_IN.match(masked_clause):
                clause, masked_clause = _strip(clause, masked_clause, " \t\r\n()")
            if not clause:
                continue
            condition = _parse_condition(clause, masked_clause)
            if condition is not None:
                conditions.append(condition)

    order_by = None
    descending = False
    order = _RE_ORDER.search(masked)
    if order:
        order_by = order.group("field").lower()
        descending = (order.group("dir") or "ASC").upper() == "DESC"

    limit_match = _RE_LIMIT.search(masked)
    return SelectQuery(
        table=match.group("table").lower(),
        columns=columns,
        conditions=tuple(conditions),
        order_by=order_by,
        descending=descending,
        limit=int(limit_match.group("limit")) if limit_match else None,
    )


def _parse_condition(clause: str, masked: str) -> Condition | None:
    if match := _RE_IN.match(masked):
        raw = clause[match.start("values") : match.end("values")]
        values = [unquote(v) for v in _split_values(raw)] if raw.strip() else []
        return Condition(match.group("field").lower(), "IN", values)
    if match := _RE_NEQ.match(masked):
        return Condition(match.group("field").lower(), "!=", unquote(clause[match.start("value") :]))
    if match := _RE_EQ.match(masked):
        return Condition(match.group("field").lower(), "=", unquote(clause[match.start("value") :]))
    return None


def parse_statement(sql: str) -> Statement | None:
    """Parse a non-SELECT statement accepted by ``query``."""
    text = sql.strip().rstrip(";").strip()
    if not text:
        return None

    normalized = " ".join(text.upper().split())
    if normalized in _TRANSACTION or normalized.startswith("START TRANSACTION"):
        return TransactionStatement(normalized)

    if match := _RE_RESET_DEFAULT.match(text):
        return ResetDefaultStatement(match.group("table").lower(), int(match.group("id")))

    if match := _RE_INSERT.match(text):
        columns = [c.strip(" `").lower() for c in match.group("columns").split(",")]
        values = _split_values(match.group("values"))
        row = {col: (unquote(values[i]) if i < len(values) else "") for i, col in enumerate(columns)}
        return InsertStatement(match.group("table").lower(), row)

    return None


def _split_values(values: str) -> list[str]:
    reader = csv.reader([values], quotechar="'", escapechar="\\", skipinitialspace=True)
    return next(reader, [])


def prepare(query: str, *args: Any) -> str:
    """Substitute ``%s``/``%d``/``%f`` placeholders left to right.

    Strings are single-quoted with quotes and backslashes escaped; numeric
    placeholders take non-numeric values as 0. ``%%`` yields a literal ``%``.
    A single list or tuple argument is expanded.
    """
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = tuple(args[0])

    out: list[str] = []
    arg_index = 0
    i = 0
    while i < len(query):
        ch = query[i]
        if ch != "%" or i == len(query) - 1:
            out.append(ch)
            i += 1
            continue
        spec = query[i + 1]
        if spec == "%":
            out.append("%")
        elif spec in "sdf":
            value = args[arg_index] if arg_index < len(args) else ""
            arg_index += 1
            out.append(_format_value(spec, value))
        else:
            out.append(query[i : i + 2])
        i += 2
    return "".join(out)


def _format_value(spec: str, value: Any) -> str:
    if spec == "s":
        text = "" if value is None else str(value)
        escaped = text.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    number = as_number(value)
    if number is None:
        return "0"
    if spec == "d":
        return str(int(number))
    return repr(float(number))


def as_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        text = str(value).strip()
        return int(text) if re.fullmatch(r"-?\d+", text) else float(text)
    except (TypeError, ValueError):
        return None
