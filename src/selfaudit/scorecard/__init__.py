"""Completeness scorecard across all audit artifacts."""

from selfaudit.scorecard.aggregator import ModuleScore, Scorecard, percentage, run_progress

__all__ = ["ModuleScore", "Scorecard", "percentage", "run_progress"]
