"""CSV-backed data source connectors.

A connector's datasource config carries a ``summary`` produced by
``ingest_csv_summary``; the provider replays that summary as daily metric rows.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from selfaudit.harness.app.entities import Period

NUMERIC_KEYS = ("users", "sessions", "clicks", "impressions", "cost", "conversions", "revenue")

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S")


@dataclass(frozen=True)
class ConnectorProfile:
    """How one connector maps CSV columns onto normalized metrics.

    With ``fill_missing`` every target metric is recorded for every row
    (0 when no alias column is present); otherwise only present columns count.
    """

    name: str
    label: str
    aliases: dict[str, tuple[str, ...]]
    totals: tuple[str, ...]
    fill_missing: bool = True


GOOGLE_ADS = ConnectorProfile(
    name="google_ads",
    label="Google Ads",
    aliases={
        "clicks": ("clicks",),
        "impressions": ("impressions", "impr"),
        "conversions": ("conversions", "all_conversions", "conv"),
        "cost": ("cost", "spend", "amount_spent"),
        "revenue": ("revenue", "conversion_value", "conv_value", "total_conv_value"),
    },
    totals=("clicks", "impressions", "conversions", "cost", "revenue"),
)

META_ADS = ConnectorProfile(
    name="meta_ads",
    label="Meta Ads",
    aliases={
        "clicks": ("clicks", "link_clicks"),
        "impressions": ("impressions",),
        "conversions": ("conversions", "purchases", "leads", "website_purchases"),
        "cost": ("cost", "spend", "amount_spent"),
        "revenue": (
            "revenue",
            "purchase_conversion_value",
            "purchases_conversion_value",
            "website_purchase_conversion_value",
            "total_conversion_value",
        ),
    },
    totals=("clicks", "impressions", "conversions", "cost", "revenue"),
)

CSV_GENERIC = ConnectorProfile(
    name="csv_generic",
    label="Generic CSV Data Source",
    aliases={
        "users": ("users",),
        "sessions": ("sessions",),
        "clicks": ("clicks",),
        "impressions": ("impressions",),
        "conversions": ("conversions",),
        "cost": ("cost", "spend"),
        "revenue": ("revenue",),
    },
    totals=NUMERIC_KEYS,
    fill_missing=False,
)

PROFILES: dict[str, ConnectorProfile] = {p.name: p for p in (GOOGLE_ADS, META_ADS, CSV_GENERIC)}


def sanitize_key(value: str) -> str:
    """Lower-case and keep only ``[a-z0-9_-]``."""
    return re.sub(r"[^a-z0-9_\-]", "", value.strip().lower())


def to_number(value: str) -> float:
    clean = re.sub(r"[^0-9.,\-]", "", value).replace(",", "")
    try:
        return float(clean)
    except ValueError:
        return 0.0


def normalize_date(value: str) -> str | None:
    value = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None


def parse_csv(text: str) -> list[dict[str, str]]:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    if not lines:
        return []
    reader = csv.reader(io.StringIO("\n".join(lines)))
    header = next(reader, [])
    keys = [sanitize_key(h) for h in header]
    return [{key: (row[i] if i < len(row) else "") for i, key in enumerate(keys)} for row in reader]


def _metrics_for_row(row: dict[str, str], profile: ConnectorProfile) -> dict[str, float]:
    metrics: dict[str, float] = {}
    for target, aliases in profile.aliases.items():
        present = [alias for alias in aliases if alias in row]
        if profile.fill_missing:
            value = to_number(row[present[0]]) if present else 0.0
            if value >= 0:
                metrics[target] = value
            continue
        for alias in present:
            value = to_number(row[alias])
            if value < 0:
                continue
            metrics[target] = metrics.get(target, 0.0) + value
    return metrics


def ingest_csv_summary(text: str, profile: ConnectorProfile, ingested_at: str) -> dict[str, Any]:
    """Summarize CSV text into totals and per-day metrics; ``{}`` when nothing is usable."""
    daily: dict[str, dict[str, float]] = {}
    totals = dict.fromkeys(profile.totals, 0.0)

    for row in parse_csv(text):
        day = normalize_date(row.get("date", ""))
        if day is None:
            continue
        metrics = _metrics_for_row(row, profile)
        if not metrics:
            continue
        bucket = daily.setdefault(day, {})
        for metric, value in metrics.items():
            bucket[metric] = round(bucket.get(metric, 0.0) + value, 2)
            totals[metric] = totals.get(metric, 0.0) + value

    if not daily:
        return {}

    return {
        "qa": True,
        "metrics": {k: round(v, 2) for k, v in totals.items()},
        "daily": dict(sorted(daily.items())),
        "rows": len(daily),
        "last_ingested_at": ingested_at,
    }


def ensure_keys(row: dict[str, Any]) -> dict[str, Any]:
    """Normalized metric row: source, date and every numeric key as float."""
    normalized: dict[str, Any] = {
        "source": str(row.get("source", "")),
        "date": str(row.get("date", "")),
    }
    for key in NUMERIC_KEYS:
        normalized[key] = _as_float(row.get(key, 0))
    for key, value in row.items():
        if key in normalized:
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            normalized[key] = float(value)
    return normalized


def merge_daily(*collections: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sum normalized rows from every collection per date."""
    buckets: dict[str, dict[str, Any]] = {}
    for rows in collections:
        for row in rows:
            normalized = ensure_keys(row)
            day = normalized["date"] or "total"
            bucket = buckets.setdefault(day, {"date": day, **dict.fromkeys(NUMERIC_KEYS, 0.0)})
            for key, value in normalized.items():
                if key in ("date", "source"):
                    continue
                bucket[key] = bucket.get(key, 0.0) + float(value)
    return list(buckets.values())


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class SummaryProvider:
    """Replays a stored CSV summary for a reporting period."""

    profile: ConnectorProfile
    auth: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> dict[str, Any]:
        summary = self.config.get("summary")
        return summary if isinstance(summary, dict) else {}

    def test_connection(self) -> tuple[bool, str]:
        if self.summary:
            return True, "CSV summary loaded."
        return False, "No CSV data available for this connector."

    def describe(self) -> dict[str, Any]:
        return {"name": self.profile.name, "label": self.profile.label}

    def fetch_metrics(self, period: Period) -> list[dict[str, Any]]:
        summary = self.summary
        daily = summary.get("daily")
        if isinstance(daily, dict):
            rows = []
            for day, metrics in daily.items():
                if not isinstance(metrics, dict):
                    continue
                day = period.end.isoformat() if day == "total" else str(day)
                if period.contains(day):
                    rows.append(ensure_keys({"source": self.profile.name, "date": day, **metrics}))
            return rows
        metrics = summary.get("metrics")
        if isinstance(metrics, dict):
            return [ensure_keys({"source": self.profile.name, "date": period.end.isoformat(), **metrics})]
        return []

    def fetch_dimensions(self, period: Period) -> dict[str, Any]:
        return {}


def build_provider(kind: str, auth: dict[str, Any], config: dict[str, Any]) -> SummaryProvider | None:
    """Provider for a datasource type; None for types without a CSV connector."""
    profile = PROFILES.get(kind)
    if profile is None:
        return None
    return SummaryProvider(profile, auth, config)
