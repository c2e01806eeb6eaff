"""Period-over-period anomaly detection."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from selfaudit.harness.app.repos import AnomaliesRepo

METRICS = ("users", "sessions", "clicks", "impressions", "conversions", "cost", "revenue")

DELTA_THRESHOLD = 30.0
DELTA_CRITICAL = 50.0
Z_THRESHOLD = 2.0
Z_CRITICAL = 3.0
HISTORY_LIMIT = 8


def aggregate_totals(buckets: Iterable[Any]) -> dict[str, float]:
    """Sum numeric values per metric across buckets; non-numeric values are skipped."""
    totals = dict.fromkeys(METRICS, 0.0)
    for metrics in buckets:
        if not isinstance(metrics, Mapping):
            continue
        for key, value in metrics.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            totals[key] = totals.get(key, 0.0) + float(value)
    return totals


def extract_series(history: Iterable[Any], metric: str) -> list[float]:
    series = [float(p[metric]) for p in history if isinstance(p, Mapping) and metric in p]
    return series[:HISTORY_LIMIT]


def z_score(series: list[float], current: float) -> float | None:
    """Population z-score of ``current``; None with < 3 points or zero spread."""
    if len(series) < 3:
        return None
    mean = sum(series) / len(series)
    std = math.sqrt(sum((v - mean) ** 2 for v in series) / len(series))
    if std <= 0.0:
        return None
    return (current - mean) / std


class Detector:
    def __init__(self, repo: AnomaliesRepo, now: Callable[[], str]) -> None:
        self._repo = repo
        self._now = now

    def evaluate(
        self,
        client_id: int,
        current: Iterable[Any],
        previous: Iterable[Any] = (),
        history: Iterable[Any] = (),
        qa_tag: bool = False,
    ) -> list[dict[str, Any]]:
        """Detect and persist anomalies; returns payloads with ``severity`` added."""
        history = list(history)
        previous_totals = aggregate_totals(previous)
        anomalies: list[dict[str, Any]] = []

        for metric, value in aggregate_totals(current).items():
            prev = previous_totals.get(metric)
            delta = (value - prev) / prev * 100 if prev and prev > 0.0 else None
            z = z_score(extract_series(history, metric), value)

            is_delta = delta is not None and abs(delta) >= DELTA_THRESHOLD
            is_z = z is not None and abs(z) >= Z_THRESHOLD
            if not is_delta and not is_z:
                continue

            critical = abs(delta or 0.0) >= DELTA_CRITICAL or (z is not None and abs(z) >= Z_CRITICAL)
            severity = "critical" if critical else "warn"

            payload: dict[str, Any] = {
                "metric": metric,
                "current": round(value, 2),
                "previous": round(prev, 2) if prev is not None else None,
                "delta_percent": round(delta, 2) if delta is not None else None,
                "z_score": round(z, 2) if z is not None else None,
                "resolved": False,
                "note": "",
            }
            if qa_tag:
                payload["qa"] = True

            self._repo.create(
                {
                    "client_id": client_id,
                    "type": metric,
                    "severity": severity,
                    "payload": payload,
                    "detected_at": self._now(),
                }
            )
            anomalies.append({**payload, "severity": severity})

        return anomalies

    def evaluate_period(
        self,
        client_id: int,
        meta: Mapping[str, Any],
        history: Iterable[Any] = (),
        qa_tag: bool = False,
    ) -> list[dict[str, Any]]:
        """Evaluate a report's daily rows against its previous-period totals."""
        daily = meta.get("metrics_daily")
        previous = meta.get("previous_totals")
        return self.evaluate(
            client_id,
            daily if isinstance(daily, list) else [],
            [previous] if isinstance(previous, Mapping) else [],
            history,
            qa_tag,
        )
