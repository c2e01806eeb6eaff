"""Cross-run audit state (``.audit-state.json`` at the project root).

The state file is a single snapshot. Every phase reads the whole document,
computes the new snapshot in memory and writes it back in one go; nothing is
patched in place. There is a single operator, so no locking is attempted.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from selfaudit.core.artifacts import read_json, write_artifact
from selfaudit.core.errors import ArtifactError
from selfaudit.core.logging import get_logger

log = get_logger("state")

TASK_NAME = "plugin_functionality_audit"

# Phase numbers in execution order
PHASES: dict[str, int] = {
    "inventory": 1,
    "linkage": 2,
    "contracts": 3,
    "runtime": 4,
    "progress": 5,
}


@dataclass
class AuditState:
    """Snapshot of audit progress persisted between invocations."""

    task: str = TASK_NAME
    current_phase: int = 0
    phases_done: list[int] = field(default_factory=list)
    completed: bool = False
    totals: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditState:
        done = data.get("phases_done", [])
        return cls(
            task=str(data.get("task", TASK_NAME)),
            current_phase=int(data.get("current_phase", 0)),
            phases_done=sorted({int(p) for p in done if isinstance(p, int)}),
            completed=bool(data.get("completed", False)),
            totals=dict(data.get("totals") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AuditStateStore:
    """Read-whole / write-whole access to the state snapshot."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AuditState:
        """Load the snapshot; a missing file yields a fresh state."""
        if not self._path.exists():
            return AuditState()
        data = read_json(self._path)
        if not isinstance(data, dict):
            raise ArtifactError.malformed(str(self._path), "state is not an object")
        return AuditState.from_dict(data)

    def save(self, state: AuditState) -> None:
        write_artifact(self._path, state.to_dict())

    def record_phase(self, phase: str, totals: dict[str, Any], *, completed: bool = False) -> AuditState:
        """Mark a phase done and replace its totals section."""
        state = self.load()
        number = PHASES[phase]
        new_totals = dict(state.totals)
        new_totals[phase] = totals
        new_state = AuditState(
            task=state.task,
            current_phase=number,
            phases_done=sorted({*state.phases_done, number}),
            completed=completed or state.completed,
            totals=new_totals,
        )
        self.save(new_state)
        log.debug("state_recorded", phase=phase, phases_done=new_state.phases_done)
        return new_state
