"""Runtime phase: drive the QA lifecycle against a fresh substitute environment."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from selfaudit.config.manifests import EXPECTED_RUNTIME_KEYS
from selfaudit.config.models import SelfAuditConfig
from selfaudit.core.artifacts import RUNTIME, write_artifact
from selfaudit.core.logging import get_logger
from selfaudit.core.state import AuditStateStore
from selfaudit.harness.app.automation import Automation
from selfaudit.harness.app.infra import Mailer, Options
from selfaudit.harness.app.reports import PdfRenderer
from selfaudit.harness.env import Clock, EnvironmentState

log = get_logger("harness.runner")

LIFECYCLE = ("seed", "run", "anomalies", "status")

PDF_MISSING_MARKERS = ("mpdf", "pdf renderer missing")
PDF_MISSING_NOTE = "PDF renderer missing – recorded as WARN."


def missing_keys(payload: dict[str, Any], expected: tuple[str, ...]) -> list[str]:
    return [key for key in expected if key not in payload]


def is_pdf_missing(payload: dict[str, Any]) -> bool:
    warnings = payload.get("warnings") or []
    return any(marker in str(w).lower() for w in warnings for marker in PDF_MISSING_MARKERS)


class RuntimeHarness:
    """Runs seed, run, anomalies and status in order and collects the payloads.

    A lifecycle operation that raises is recorded as a FAIL payload carrying
    the error message; later operations still run.
    """

    def __init__(
        self,
        env: EnvironmentState,
        pdf_renderer: PdfRenderer | None = None,
        *,
        webhook_url: str = "",
    ) -> None:
        self.env = env
        Mailer.bootstrap(env)
        self.automation = Automation(env, pdf_renderer)
        if webhook_url:
            Options(env).update_global_settings({"error_webhook_url": webhook_url})

    def _invoke(self, name: str, operation: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        try:
            payload = operation()
        except Exception as exc:
            log.warning("lifecycle_failed", operation=name, error=str(exc), exc_info=True)
            return {"qa": name, "status": "FAIL", "error": str(exc)}
        log.debug("lifecycle_done", operation=name, status=payload.get("status"))
        return payload

    def execute(self) -> dict[str, Any]:
        results: dict[str, dict[str, Any]] = {}
        for name in LIFECYCLE:
            results[name] = self._invoke(name, getattr(self.automation, name))

        notes: list[str] = []
        run = results["run"]
        if run.get("status") != "PASS" and is_pdf_missing(run):
            if run.get("status") == "FAIL":
                run["status"] = "WARN"
            notes.append(PDF_MISSING_NOTE)

        missing = {
            name: keys
            for name in LIFECYCLE
            if (keys := missing_keys(results[name], EXPECTED_RUNTIME_KEYS[name]))
        }

        return {
            **results,
            "http_requests": len(self.env.http.requests),
            "mail_events": len(self.env.mail.log),
            "remote_requests": list(self.env.http.requests),
            "mail_log": list(self.env.mail.log),
            "missing_keys": missing,
            "notes": notes,
        }


def run_runtime(
    root: Path,
    config: SelfAuditConfig,
    *,
    pdf_renderer: PdfRenderer | None = None,
    clock: Clock | None = None,
) -> dict[str, Any]:
    """Runtime phase entry point: write runtime.json."""
    artifacts_dir = root / config.paths.artifacts_dir
    env = EnvironmentState.create(config.harness, artifacts_dir, clock or time.time)
    payload = RuntimeHarness(env, pdf_renderer, webhook_url=config.harness.webhook_url).execute()

    write_artifact(artifacts_dir / RUNTIME, payload)
    totals = {name: payload[name].get("status", "FAIL") for name in LIFECYCLE}
    totals["missing_keys"] = sum(len(keys) for keys in payload["missing_keys"].values())
    AuditStateStore(root / config.paths.state_file).record_phase("runtime", totals)
    log.info("runtime_finished", **totals)
    return payload
