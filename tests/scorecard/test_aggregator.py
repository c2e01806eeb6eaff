"""Tests for the completeness scorecard."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from selfaudit.config.models import SelfAuditConfig
from selfaudit.core.artifacts import (
    CONTRACTS,
    INVENTORY,
    LINKAGE,
    RUNTIME,
    ContractsDoc,
    InventoryDoc,
    LinkageDoc,
    RuntimeDoc,
    write_artifact,
)
from selfaudit.core.errors import ArtifactError
from selfaudit.core.state import AuditStateStore
from selfaudit.scorecard import ModuleScore, Scorecard, percentage, run_progress

QA_PAGE = "FP\\DMS\\Admin\\Pages\\QaPage"
QUEUE = "FP\\DMS\\Infra\\Queue"
LOCK = "FP\\DMS\\Infra\\Lock"
DB = "FP\\DMS\\Infra\\DB"
GOOGLE = "FP\\DMS\\Services\\Connectors\\GoogleAdsProvider"
GA4 = "FP\\DMS\\Services\\Connectors\\GA4Provider"
CSV = "FP\\DMS\\Services\\Connectors\\CsvGenericProvider"


def _method(cls: str, name: str, refs: int) -> dict[str, Any]:
    return {
        "class": cls,
        "method": name,
        "reference_count": refs,
        "references": [{"file": "src/x.php", "line": i + 1, "type": "static"} for i in range(refs)],
    }


def _docs() -> dict[str, dict[str, Any]]:
    return {
        INVENTORY: {
            "classes": [],
            "admin_pages": [{"class": QA_PAGE, "methods": [{"name": "register"}, {"name": "render"}]}],
        },
        LINKAGE: {
            "methods": {
                f"{QA_PAGE}::render": _method(QA_PAGE, "render", 1),
                f"{QUEUE}::tick": _method(QUEUE, "tick", 2),
                f"{LOCK}::acquire": _method(LOCK, "acquire", 0),
            },
            "summary": {"top_unreferenced": [f"{LOCK}::acquire"]},
        },
        CONTRACTS: {
            "classes": {
                "infra": [
                    {"class": QUEUE, "status": "PASS"},
                    {"class": LOCK, "status": "PASS"},
                    {"class": DB, "status": "FAIL"},
                ],
                "services_connectors": [
                    {"class": GOOGLE, "status": "PASS"},
                    {"class": GA4, "status": "PASS"},
                    {"class": CSV, "status": "FAIL"},
                ],
            },
            "routes": [
                {"path": "/tick", "status": "PASS"},
                {"path": "/qa/run", "status": "WARN"},
                {"path": "/qa/seed", "status": "FAIL"},
            ],
        },
        RUNTIME: {
            "seed": {"status": "PASS", "datasources": {"google_ads": "ok", "csv_generic": "ok"}},
            "run": {"status": "WARN"},
            "anomalies": {"status": "FAIL"},
            "status": {},
            "notes": ["PDF renderer missing – recorded as WARN."],
        },
    }


@pytest.fixture
def card() -> Scorecard:
    docs = _docs()
    return Scorecard(
        InventoryDoc.model_validate(docs[INVENTORY]),
        LinkageDoc.model_validate(docs[LINKAGE]),
        ContractsDoc.model_validate(docs[CONTRACTS]),
        RuntimeDoc.model_validate(docs[RUNTIME]),
    )


def _module(card: Scorecard, name: str) -> ModuleScore:
    return next(m for m in card.modules if m.name == name)


class TestPercentage:
    @pytest.mark.parametrize(("passed", "total", "expected"), [(3, 4, 75.0), (2, 3, 66.67), (0, 0, 0.0), (5, 5, 100.0)])
    def test_percentage(self, passed: int, total: int, expected: float) -> None:
        assert percentage(passed, total) == expected


class TestModuleScore:
    def test_add_tracks_warnings(self) -> None:
        score = ModuleScore("X")
        score.add(True)
        score.add(False, "missing")
        assert (score.passed, score.total, score.pct) == (1, 2, 50.0)
        assert score.to_dict() == {"name": "X", "pass": 1, "total": 2, "pct": 50.0}
        assert score.to_dict(verbose=True)["warn"] == ["missing"]

    def test_verbose_without_warnings_has_no_warn_key(self) -> None:
        assert "warn" not in ModuleScore("X").to_dict(verbose=True)


class TestScorecard:
    def test_module_order(self, card: Scorecard) -> None:
        assert [m.name for m in card.modules] == [
            "Admin",
            "Http",
            "Infra",
            "Services Reports",
            "Services Connectors",
            "Anomalies",
            "QA Automation",
        ]

    def test_admin_page_needs_a_referenced_method(self, card: Scorecard) -> None:
        assert _module(card, "Admin").to_dict() == {"name": "Admin", "pass": 1, "total": 1, "pct": 100.0}

    def test_routes_pass_on_pass_or_warn(self, card: Scorecard) -> None:
        http = _module(card, "Http")
        assert (http.passed, http.total) == (2, 3)
        assert http.warnings == ["/qa/run reported WARN", "/qa/seed reported FAIL"]

    def test_classes_need_presence_and_usage(self, card: Scorecard) -> None:
        infra = _module(card, "Infra")
        # Only Queue is present and used; the WARN run phase also counts.
        assert (infra.passed, infra.total) == (2, 4)
        assert f"{LOCK} status=PASS usage=no" in infra.warnings
        assert "Runtime run reported WARN." in infra.warnings

    def test_connectors_accept_seeded_datasource(self, card: Scorecard) -> None:
        connectors = _module(card, "Services Connectors")
        assert (connectors.passed, connectors.total) == (1, 3)
        assert f"{GA4} status=PASS runtime=missing usage=no" in connectors.warnings
        assert f"{CSV} status=FAIL runtime=ok usage=no" in connectors.warnings

    def test_runtime_phases(self, card: Scorecard) -> None:
        anomalies = _module(card, "Anomalies")
        assert (anomalies.passed, anomalies.total) == (0, 1)
        assert anomalies.warnings == ["Runtime anomalies status FAIL."]
        qa = _module(card, "QA Automation")
        assert (qa.passed, qa.total) == (1, 2)
        assert qa.warnings == ["Runtime status status UNKNOWN."]

    def test_empty_group_scores_zero(self, card: Scorecard) -> None:
        assert _module(card, "Services Reports").to_dict() == {
            "name": "Services Reports",
            "pass": 0,
            "total": 0,
            "pct": 0.0,
        }

    def test_overall(self, card: Scorecard) -> None:
        assert (card.passed, card.total) == (7, 14)
        assert card.overall_pct == 50.0

    def test_report_view(self, card: Scorecard) -> None:
        report = card.report()
        assert report["unreferenced_methods"] == [f"{LOCK}::acquire"]
        assert report["runtime"] == {
            "seed": "PASS",
            "run": "WARN",
            "anomalies": "FAIL",
            "status": "UNKNOWN",
            "notes": ["PDF renderer missing – recorded as WARN."],
        }
        assert "warn" not in report["modules"][0]
        assert "warn" in report["modules"][1]

    def test_progress_view(self, card: Scorecard) -> None:
        progress = card.progress("2025-09-15T10:00:00+00:00")
        assert progress["generated_at"] == "2025-09-15T10:00:00+00:00"
        assert progress["overall_pct"] == 50.0
        assert all("warn" not in m for m in progress["modules"])


class TestRunProgress:
    def _write_docs(self, root: Path, config: SelfAuditConfig) -> Path:
        artifacts = root / config.paths.artifacts_dir
        for name, payload in _docs().items():
            write_artifact(artifacts / name, payload)
        return artifacts

    def test_writes_views_and_completes_audit(self, tmp_path: Path) -> None:
        config = SelfAuditConfig()
        artifacts = self._write_docs(tmp_path, config)

        progress, report = run_progress(tmp_path, config)

        assert json.loads((artifacts / "progress.json").read_text(encoding="utf-8")) == progress
        assert json.loads((artifacts / "report.json").read_text(encoding="utf-8")) == report

        state = AuditStateStore(tmp_path / config.paths.state_file).load()
        assert state.completed is True
        assert 5 in state.phases_done
        totals = state.totals["progress"]
        assert totals["overall_pct"] == 50.0
        assert (totals["passed_items"], totals["total_items"]) == (7, 14)
        assert totals["top_unreferenced"] == [f"{LOCK}::acquire"]

    def test_missing_artifact(self, tmp_path: Path) -> None:
        config = SelfAuditConfig()
        artifacts = self._write_docs(tmp_path, config)
        (artifacts / RUNTIME).unlink()

        with pytest.raises(ArtifactError):
            run_progress(tmp_path, config)
