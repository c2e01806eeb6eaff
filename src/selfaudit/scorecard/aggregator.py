"""Scorecard phase: combine every artifact into per-module completeness scores.

An item passes when it is present (contract PASS) and used (some method has a
linkage reference), or, for runtime items, when the lifecycle operation ended
PASS or WARN. Connector classes may substitute a successful seed datasource
for an in-code reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from selfaudit.config.manifests import CONNECTOR_DATASOURCES, MODULE_GROUPS
from selfaudit.config.models import SelfAuditConfig
from selfaudit.core.artifacts import (
    CONTRACTS,
    INVENTORY,
    LINKAGE,
    PROGRESS,
    REPORT,
    RUNTIME,
    ContractsDoc,
    InventoryDoc,
    LinkageDoc,
    RuntimeDoc,
    load_artifact,
    write_artifact,
)
from selfaudit.core.logging import get_logger
from selfaudit.core.state import AuditStateStore

log = get_logger("scorecard")

UNREFERENCED_LIMIT = 10
NON_FATAL = ("PASS", "WARN")


def percentage(passed: int, total: int) -> float:
    return round(100 * passed / total, 2) if total else 0.0


@dataclass
class ModuleScore:
    name: str
    passed: int = 0
    total: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def pct(self) -> float:
        return percentage(self.passed, self.total)

    def add(self, ok: bool, warning: str | None = None) -> None:
        self.total += 1
        if ok:
            self.passed += 1
        if warning:
            self.warnings.append(warning)

    def to_dict(self, *, verbose: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "pass": self.passed, "total": self.total, "pct": self.pct}
        if verbose and self.warnings:
            data["warn"] = list(self.warnings)
        return data


class Scorecard:
    """Scores built from the four upstream artifacts."""

    def __init__(
        self,
        inventory: InventoryDoc,
        linkage: LinkageDoc,
        contracts: ContractsDoc,
        runtime: RuntimeDoc,
    ) -> None:
        self.inventory = inventory
        self.linkage = linkage
        self.contracts = contracts
        self.runtime = runtime
        self._used = {m.class_name for m in linkage.methods.values() if m.reference_count > 0}
        self.modules = [self._admin(), self._http(), *self._class_modules()]

    @property
    def passed(self) -> int:
        return sum(m.passed for m in self.modules)

    @property
    def total(self) -> int:
        return sum(m.total for m in self.modules)

    @property
    def overall_pct(self) -> float:
        return percentage(self.passed, self.total)

    def _runtime_status(self, phase: str) -> str:
        return str(getattr(self.runtime, phase).get("status", "UNKNOWN"))

    def _admin(self) -> ModuleScore:
        score = ModuleScore("Admin")
        for page in self.inventory.admin_pages:
            entries = (self.linkage.methods.get(f"{page.class_name}::{m.name}") for m in page.methods)
            referenced = any(e is not None and e.references for e in entries)
            score.add(referenced, None if referenced else f"{page.class_name} has no referenced methods")
        return score

    def _http(self) -> ModuleScore:
        score = ModuleScore("Http")
        for route in self.contracts.routes:
            ok = route.status in NON_FATAL
            score.add(ok, None if route.status == "PASS" else f"{route.path} reported {route.status}")
        return score

    def _class_modules(self) -> list[ModuleScore]:
        seeded = self.runtime.seed.get("datasources") or {}
        modules = []
        for name, (group, phases) in MODULE_GROUPS.items():
            score = ModuleScore(name)
            for entry in self.contracts.classes.get(group, []):
                cls = entry.class_name
                used = cls in self._used
                if group == "services_connectors":
                    key = CONNECTOR_DATASOURCES.get(cls)
                    seeded_ok = key is not None and seeded.get(key) == "ok"
                    ok = entry.status == "PASS" and (used or seeded_ok)
                    warning = (
                        f"{cls} status={entry.status} runtime={'ok' if seeded_ok else 'missing'} "
                        f"usage={'yes' if used else 'no'}"
                    )
                else:
                    ok = entry.status == "PASS" and used
                    warning = f"{cls} status={entry.status} usage={'yes' if used else 'no'}"
                score.add(ok, None if ok else warning)
            for phase in phases:
                status = self._runtime_status(phase)
                if status == "PASS":
                    score.add(True)
                elif status == "WARN":
                    score.add(True, f"Runtime {phase} reported WARN.")
                else:
                    score.add(False, f"Runtime {phase} status {status}.")
            modules.append(score)
        return modules

    def unreferenced(self, limit: int = UNREFERENCED_LIMIT) -> list[str]:
        return list(self.linkage.summary.top_unreferenced[:limit])

    def runtime_summary(self) -> dict[str, Any]:
        return {
            **{phase: self._runtime_status(phase) for phase in ("seed", "run", "anomalies", "status")},
            "notes": list(self.runtime.notes),
        }

    def progress(self, generated_at: str) -> dict[str, Any]:
        """Terse view: module scores and the overall percentage."""
        return {
            "generated_at": generated_at,
            "modules": [m.to_dict() for m in self.modules],
            "overall_pct": self.overall_pct,
        }

    def report(self) -> dict[str, Any]:
        """Verbose view: adds warnings, dead-code candidates and runtime notes."""
        return {
            "modules": [m.to_dict(verbose=True) for m in self.modules],
            "overall_pct": self.overall_pct,
            "unreferenced_methods": self.unreferenced(),
            "runtime": self.runtime_summary(),
        }


def load_scorecard(artifacts_dir: Path) -> Scorecard:
    return Scorecard(
        load_artifact(artifacts_dir / INVENTORY, InventoryDoc),
        load_artifact(artifacts_dir / LINKAGE, LinkageDoc),
        load_artifact(artifacts_dir / CONTRACTS, ContractsDoc),
        load_artifact(artifacts_dir / RUNTIME, RuntimeDoc),
    )


def run_progress(root: Path, config: SelfAuditConfig) -> tuple[dict[str, Any], dict[str, Any]]:
    """Scorecard phase entry point: write progress.json and report.json, mark the audit complete."""
    artifacts_dir = root / config.paths.artifacts_dir
    card = load_scorecard(artifacts_dir)
    progress = card.progress(datetime.now(UTC).isoformat(timespec="seconds"))
    report = card.report()

    write_artifact(artifacts_dir / PROGRESS, progress)
    write_artifact(artifacts_dir / REPORT, report)
    AuditStateStore(root / config.paths.state_file).record_phase(
        "progress",
        {
            "modules": progress["modules"],
            "overall_pct": card.overall_pct,
            "total_items": card.total,
            "passed_items": card.passed,
            "top_unreferenced": report["unreferenced_methods"],
            "runtime_summary": report["runtime"],
        },
        completed=True,
    )
    log.info("scorecard_written", overall_pct=card.overall_pct, items=card.total)
    return progress, report
