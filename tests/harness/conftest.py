"""Shared fixtures for harness tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from selfaudit.config.models import HarnessConfig
from selfaudit.harness.env import EnvironmentState


class FakeClock:
    """Settable clock returning epoch seconds."""

    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    # 2025-09-15 10:00:00 UTC: the previous calendar month is August 2025
    return FakeClock(datetime(2025, 9, 15, 10, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def env(tmp_path: Path, clock: FakeClock) -> EnvironmentState:
    return EnvironmentState.create(HarnessConfig(), tmp_path / "artifacts", clock)
