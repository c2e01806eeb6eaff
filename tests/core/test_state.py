"""Tests for the cross-run audit state snapshot."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from selfaudit.core.errors import ArtifactError
from selfaudit.core.state import TASK_NAME, AuditState, AuditStateStore


class TestAuditStateStore:
    """Whole-document state persistence tests."""

    def test_given_no_file_when_load_then_fresh_state(self, tmp_path: Path) -> None:
        """A missing state file yields defaults."""
        state = AuditStateStore(tmp_path / ".audit-state.json").load()

        assert state == AuditState()
        assert state.task == TASK_NAME

    def test_given_phases_when_recorded_then_done_list_sorted_and_unique(self, tmp_path: Path) -> None:
        """Recording phases out of order keeps a sorted, de-duplicated list."""
        store = AuditStateStore(tmp_path / ".audit-state.json")

        store.record_phase("contracts", {"pass": 1})
        store.record_phase("inventory", {"classes": 3})
        state = store.record_phase("contracts", {"pass": 2})

        assert state.phases_done == [1, 3]
        assert state.current_phase == 3
        assert state.totals == {"contracts": {"pass": 2}, "inventory": {"classes": 3}}

    def test_given_progress_phase_when_completed_then_flag_persisted(self, tmp_path: Path) -> None:
        """The completed flag is written and survives reloads."""
        path = tmp_path / ".audit-state.json"
        AuditStateStore(path).record_phase("progress", {"overall_pct": 50.0}, completed=True)

        data = json.loads(path.read_text())

        assert data["completed"] is True
        assert data["phases_done"] == [5]
        assert AuditStateStore(path).load().completed is True

    def test_given_non_object_state_when_load_then_malformed(self, tmp_path: Path) -> None:
        """A state file that is not an object is rejected."""
        path = tmp_path / ".audit-state.json"
        path.write_text("[1, 2]")

        with pytest.raises(ArtifactError):
            AuditStateStore(path).load()

    def test_given_junk_phase_entries_when_from_dict_then_ignored(self) -> None:
        """Non-integer phase entries are dropped."""
        state = AuditState.from_dict({"phases_done": [2, "x", 1, 2]})

        assert state.phases_done == [1, 2]
