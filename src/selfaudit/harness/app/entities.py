"""Application entities and their row mappings.

Structured columns (meta, config, auth, email lists, payload) are stored as
JSON text, matching how the application persists them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any


def decode_json(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        return value
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return default
    return decoded if isinstance(decoded, type(default)) else default


def encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Client:
    id: int | None
    name: str
    email_to: list[str] = field(default_factory=list)
    email_cc: list[str] = field(default_factory=list)
    timezone: str = "UTC"
    notes: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Client:
        return cls(
            id=_int_or_none(row.get("id")),
            name=str(row.get("name", "")),
            email_to=decode_json(row.get("email_to"), []),
            email_cc=decode_json(row.get("email_cc"), []),
            timezone=str(row.get("timezone") or "UTC"),
            notes=str(row.get("notes") or ""),
        )


@dataclass
class DataSource:
    id: int | None
    client_id: int
    type: str
    auth: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DataSource:
        return cls(
            id=_int_or_none(row.get("id")),
            client_id=_int_or_none(row.get("client_id")) or 0,
            type=str(row.get("type", "")),
            auth=decode_json(row.get("auth"), {}),
            config=decode_json(row.get("config"), {}),
            active=bool(_int_or_none(row.get("active")) or 0),
        )


@dataclass
class Schedule:
    id: int | None
    client_id: int
    cron_key: str
    frequency: str
    next_run_at: str | None = None
    last_run_at: str | None = None
    active: bool = True
    template_id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Schedule:
        return cls(
            id=_int_or_none(row.get("id")),
            client_id=_int_or_none(row.get("client_id")) or 0,
            cron_key=str(row.get("cron_key", "")),
            frequency=str(row.get("frequency", "monthly")),
            next_run_at=row.get("next_run_at") or None,
            last_run_at=row.get("last_run_at") or None,
            active=bool(_int_or_none(row.get("active")) or 0),
            template_id=_int_or_none(row.get("template_id")),
        )


@dataclass
class ReportJob:
    id: int | None
    client_id: int
    period_start: str
    period_end: str
    status: str = "queued"
    storage_path: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ReportJob:
        return cls(
            id=_int_or_none(row.get("id")),
            client_id=_int_or_none(row.get("client_id")) or 0,
            period_start=str(row.get("period_start", "")),
            period_end=str(row.get("period_end", "")),
            status=str(row.get("status", "queued")),
            storage_path=row.get("storage_path") or None,
            meta=decode_json(row.get("meta"), {}),
            created_at=row.get("created_at") or None,
        )


@dataclass
class Template:
    id: int | None
    name: str
    description: str
    content: str
    is_default: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Template:
        return cls(
            id=_int_or_none(row.get("id")),
            name=str(row.get("name", "")),
            description=str(row.get("description", "")),
            content=str(row.get("content", "")),
            is_default=bool(_int_or_none(row.get("is_default")) or 0),
        )


@dataclass(frozen=True)
class Period:
    """Inclusive reporting window."""

    start: date
    end: date

    @classmethod
    def from_strings(cls, start: str, end: str) -> Period:
        return cls(date.fromisoformat(start[:10]), date.fromisoformat(end[:10]))

    def contains(self, day: str) -> bool:
        try:
            parsed = date.fromisoformat(day[:10])
        except ValueError:
            return False
        return self.start <= parsed <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.strftime('%d/%m/%Y')} - {self.end.strftime('%d/%m/%Y')}"

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "label": self.label}
