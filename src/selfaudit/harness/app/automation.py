"""QA automation lifecycle: seed, run, anomalies, status, all, cleanup.

Every operation returns a flat payload with ``qa`` naming the operation and a
``status`` of PASS, WARN or FAIL.
"""

from __future__ import annotations

import secrets
from typing import Any

from selfaudit.core.logging import get_logger
from selfaudit.harness.app.anomalies import Detector
from selfaudit.harness.app.connectors import CSV_GENERIC, GOOGLE_ADS, META_ADS, ConnectorProfile, ingest_csv_summary
from selfaudit.harness.app.entities import Client, Period, Schedule
from selfaudit.harness.app.infra import Lock, Mailer, Options, post_error_webhook
from selfaudit.harness.app.queue import GLOBAL_LOCK, Queue, last_month
from selfaudit.harness.app.reports import DEFAULT_TEMPLATE, PdfRenderer
from selfaudit.harness.app.repos import (
    AnomaliesRepo,
    ClientsRepo,
    DataSourcesRepo,
    ReportsRepo,
    SchedulesRepo,
    TemplatesRepo,
)
from selfaudit.harness.env import EnvironmentState

log = get_logger("harness.qa")

CLIENT_NAME = "QA Demo Client"
CLIENT_EMAIL = "qa-client@example.com"
OWNER_EMAIL = "qa-owner@example.com"
QA_NOTES = '{"qa":true,"label":"QA automation"}'
QA_CRON_KEY = "fpdms-qa-monthly"
QA_TIMEZONE = "Europe/Rome"

PDF_MISSING_WARNING = "PDF renderer missing (composer install required)"

GOOGLE_ADS_CSV = """Date,Clicks,Impressions,Cost,Conversions
2025-08-01,120,10000,35.50,4
2025-08-02,80,8000,24.00,2"""

META_ADS_CSV = """Date,Clicks,Impressions,Cost,Purchases
2025-08-01,60,5000,18.00,1
2025-08-02,90,7000,21.00,3"""

GENERIC_CSV = """Date,Users,Sessions,Revenue
2025-08-01,200,260,120.00
2025-08-02,150,210,90.00"""

FIXTURES: dict[str, tuple[ConnectorProfile, str, dict[str, str]]] = {
    "google_ads": (GOOGLE_ADS, GOOGLE_ADS_CSV, {"account_name": "QA Google Ads Fixture"}),
    "meta_ads": (META_ADS, META_ADS_CSV, {"account_name": "QA Meta Ads Fixture"}),
    "csv_generic": (CSV_GENERIC, GENERIC_CSV, {"source_label": "QA Generic CSV Fixture"}),
}


def combine_status(*statuses: str) -> str:
    """FAIL beats WARN beats PASS."""
    if "FAIL" in statuses:
        return "FAIL"
    if "WARN" in statuses:
        return "WARN"
    return "PASS"


class Automation:
    def __init__(self, env: EnvironmentState, pdf: PdfRenderer | None = None) -> None:
        self._env = env
        self._pdf = pdf
        self._options = Options(env)
        self._clients = ClientsRepo(env)
        self._sources = DataSourcesRepo(env)
        self._schedules = SchedulesRepo(env)
        self._reports = ReportsRepo(env)
        self._anomalies = AnomaliesRepo(env)
        self._templates = TemplatesRepo(env)
        self._client: Client | None = None
        self._schedule: Schedule | None = None

    def queue(self) -> Queue:
        return Queue(self._env, self._pdf)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def seed(self) -> dict[str, Any]:
        setup = self._ensure_setup()
        datasources = setup["datasources"]
        ok = all(datasources.get(kind) == "ok" for kind in FIXTURES) and setup["schedule"] == "ok"
        client: Client = setup["client"]
        log.info("qa_seed", client=client.id, datasources=datasources, schedule=setup["schedule"])
        return {
            "qa": "seed",
            "client_id": client.id or 0,
            "datasources": datasources,
            "schedule": setup["schedule"],
            "status": "PASS" if ok else "WARN",
        }

    def run(self, ensure_prerequisites: bool = True) -> dict[str, Any]:
        if ensure_prerequisites:
            self._ensure_setup()

        client = self._resolve_client()
        if client is None or client.id is None:
            return {"qa": "run", "status": "FAIL", "error": "client_missing"}

        schedule = self._resolve_schedule(client)
        start, end = self.qa_period()
        default = self._templates.find_default()
        template_id = (schedule.template_id if schedule else None) or (default.id if default else None)

        queue = self.queue()
        job = queue.enqueue(
            client.id,
            start,
            end,
            template_id,
            schedule.id if schedule else None,
            {"qa": True, "origin": "qa-rest"},
        )
        if job is None or job.id is None:
            return {"qa": "run", "client_id": client.id, "status": "FAIL", "error": "enqueue_failed"}

        locks = self.probe_locks()
        queue.tick()

        report = self._reports.find(job.id)
        if report is None or report.id is None:
            return {"qa": "run", "client_id": client.id, "status": "FAIL", "error": "report_missing"}
        if not report.meta.get("qa"):
            self._reports.update(report.id, {"meta": {**report.meta, "qa": True}})
            report = self._reports.find(report.id) or report

        warnings: list[str] = []
        status = "PASS"
        if report.status.upper() != "SUCCESS":
            error = str(report.meta.get("error", ""))
            if "mPDF" in error:
                warnings.append(PDF_MISSING_WARNING)
                status = "WARN"
            else:
                status = "FAIL"
        if locks != "OK":
            warnings.append(f"lock_probe_{locks.lower()}")
            status = combine_status(status, "FAIL" if locks == "BROKEN" else "WARN")

        mail_status = str(report.meta.get("mail_status", "unknown")).lower()
        email = {"sent": "SENT", "failed": "FAIL"}.get(mail_status, mail_status.upper())
        if email != "SENT" and status != "FAIL":
            status = "WARN"

        log.info("qa_run", client=client.id, report=report.id, report_status=report.status, email=email, locks=locks)
        return {
            "qa": "run",
            "client_id": client.id,
            "report_id": report.id,
            "pdf": report.storage_path or "",
            "email": email,
            "locks": locks,
            "warnings": warnings,
            "status": status,
        }

    def probe_locks(self) -> str:
        """Check that a held queue lock refuses a second owner.

        OK when the rival acquisition is refused, CONTENDED when the lock was
        already held by someone else, BROKEN when both owners got it.
        """
        lock = Lock(self._env)
        owner = "qa-probe-" + secrets.token_hex(4)
        rival = owner + "-rival"
        if not lock.acquire(GLOBAL_LOCK, owner, 30):
            return "CONTENDED"
        try:
            if lock.acquire(GLOBAL_LOCK, rival, 30):
                lock.release(GLOBAL_LOCK, rival)
                return "BROKEN"
            return "OK"
        finally:
            lock.release(GLOBAL_LOCK, owner)

    def anomalies(self, ensure_prerequisites: bool = True) -> dict[str, Any]:
        if ensure_prerequisites:
            self._ensure_setup()

        client = self._resolve_client()
        if client is None or client.id is None:
            return {"qa": "anomalies", "status": "FAIL", "error": "client_missing"}

        start, end = self.qa_period()
        period = Period.from_strings(start, end)
        history = [{"clicks": 120 + i * 10, "sessions": 300 + i * 15, "conversions": 5 + i} for i in range(8)]
        meta = {
            "metrics_daily": [
                {
                    "source": "qa_fixture",
                    "date": period.end.isoformat(),
                    "clicks": 420.0,
                    "sessions": 620.0,
                    "conversions": 18.0,
                }
            ],
            "previous_totals": {"clicks": 160.0, "sessions": 360.0, "conversions": 8.0},
        }

        detector = Detector(self._anomalies, self._env.current_time)
        found = detector.evaluate_period(client.id, meta, history, qa_tag=True)
        mail_sent = bool(found) and Mailer(self._env).send_anomaly_alert(client, found)
        if found:
            post_error_webhook(
                self._env,
                {"client": client.name, "period": {"start": start, "end": end}, "anomalies": found, "qa": True},
            )

        status = "PASS"
        if not found:
            status = "FAIL"
        elif not mail_sent:
            status = "WARN"

        severities = list(dict.fromkeys(str(a.get("severity", "warn")) for a in found))
        log.info("qa_anomalies", client=client.id, detected=len(found), mail="sent" if mail_sent else "fail")
        return {
            "qa": "anomalies",
            "client_id": client.id,
            "anomalies": len(found),
            "severities": severities,
            "status": status,
        }

    def all(self) -> dict[str, Any]:
        seed = self.seed()
        run = self.run(False)
        anomalies = self.anomalies(False)
        status = combine_status(seed["status"], run["status"], anomalies["status"])
        log.info("qa_all", client=seed["client_id"], status=status)
        return {
            "qa": "all",
            "client_id": seed["client_id"],
            "report_id": run.get("report_id", 0),
            "pdf": run.get("pdf", ""),
            "email": run.get("email", "UNKNOWN"),
            "anomalies": anomalies.get("anomalies", 0),
            "locks": run.get("locks", "OK"),
            "warnings": list(dict.fromkeys(run.get("warnings", []))),
            "status": status,
        }

    def status(self) -> dict[str, Any]:
        client = self._resolve_client()
        if client is None or client.id is None:
            return {"qa": "status", "warnings": ["client_missing"], "status": "WARN"}

        schedules = self._schedules.for_client(client.id)
        reports = self._reports.for_client(client.id)
        last = reports[0] if reports else None

        warnings = []
        if not schedules:
            warnings.append("schedule_missing")
        if last is None:
            warnings.append("report_missing")

        return {
            "qa": "status",
            "client_id": client.id,
            "schedules": len(schedules),
            "last_report": {"id": last.id or 0, "path": last.storage_path, "date": last.created_at} if last else None,
            "anomalies_count": self._anomalies.count_for_client(client.id),
            "last_tick": self._options.last_tick(),
            "mail_last_result": str(last.meta.get("mail_status", "unknown")).upper() if last else "UNKNOWN",
            "warnings": warnings,
            "status": "PASS" if not warnings else "WARN",
        }

    def cleanup(self) -> dict[str, Any]:
        """Delete every QA row (and report file) of the QA client."""
        client = self._resolve_client()
        if client is None or client.id is None:
            return {
                "qa": "cleanup",
                "client_deleted": 0,
                "datasources_deleted": 0,
                "schedules_deleted": 0,
                "reports_deleted": 0,
                "anomalies_deleted": 0,
                "status": "PASS",
            }

        client_id = client.id
        datasources = self._sources.delete_by_client(client_id)
        schedules = self._schedules.delete_by_client(client_id)

        reports = 0
        base = self._env.uploads.base_dir
        for report in self._reports.for_client(client_id):
            if report.storage_path:
                (base / report.storage_path.lstrip("/")).unlink(missing_ok=True)
            if report.id is not None and self._reports.delete(report.id):
                reports += 1

        anomalies = self._anomalies.delete_by_client(client_id)
        self._clients.delete(client_id)
        self._client = None
        self._schedule = None

        log.info(
            "qa_cleanup",
            client=client_id,
            datasources=datasources,
            schedules=schedules,
            reports=reports,
            anomalies=anomalies,
        )
        return {
            "qa": "cleanup",
            "client_deleted": 1,
            "datasources_deleted": datasources,
            "schedules_deleted": schedules,
            "reports_deleted": reports,
            "anomalies_deleted": anomalies,
            "status": "PASS",
        }

    # -------------------------------------------------------------------------
    # Setup helpers
    # -------------------------------------------------------------------------

    def qa_period(self) -> tuple[str, str]:
        return last_month(self._env.now().date())

    def _ensure_setup(self) -> dict[str, Any]:
        self._options.ensure_defaults()
        self._options.qa_key()
        settings = self._options.global_settings()
        if not settings.get("owner_email"):
            self._options.update_global_settings({"owner_email": OWNER_EMAIL})
        if self._templates.find_default() is None:
            self._templates.create(
                {
                    "name": DEFAULT_TEMPLATE.name,
                    "description": DEFAULT_TEMPLATE.description,
                    "content": DEFAULT_TEMPLATE.content,
                    "is_default": 1,
                }
            )

        client = self._ensure_client()
        datasources = self._ensure_datasources(client)
        schedule = self._ensure_schedule(client)
        self._client = client
        self._schedule = schedule
        return {"client": client, "datasources": datasources, "schedule": "ok" if schedule else "error"}

    def _ensure_client(self) -> Client:
        payload = {
            "name": CLIENT_NAME,
            "email_to": [CLIENT_EMAIL],
            "email_cc": [],
            "timezone": QA_TIMEZONE,
            "notes": QA_NOTES,
        }
        existing = self._clients.find_by_name(CLIENT_NAME)
        if existing is not None and existing.id is not None:
            self._clients.update(existing.id, payload)
            return self._clients.find(existing.id) or existing
        created = self._clients.create(payload)
        return created or Client(None, CLIENT_NAME, [CLIENT_EMAIL], [], QA_TIMEZONE, QA_NOTES)

    def _ensure_datasources(self, client: Client) -> dict[str, str]:
        existing = {source.type: source.id for source in self._sources.for_client(client.id or 0)}
        now = self._env.current_time()
        statuses: dict[str, str] = {}
        for kind, (profile, csv_text, extra) in FIXTURES.items():
            summary = ingest_csv_summary(csv_text, profile, now)
            if not summary:
                statuses[kind] = "error"
                continue
            payload = {
                "client_id": client.id or 0,
                "type": kind,
                "auth": {},
                "config": {**extra, "summary": summary, "qa": True, "last_seeded_at": now},
                "active": 1,
            }
            source_id = existing.get(kind)
            if source_id is not None:
                self._sources.update(source_id, payload)
            else:
                self._sources.create(payload)
            statuses[kind] = "ok"
        return statuses

    def _ensure_schedule(self, client: Client) -> Schedule | None:
        default = self._templates.find_default()
        fields = {
            "frequency": "monthly",
            "next_run_at": self._env.current_time(),
            "active": 1,
            "template_id": default.id if default else None,
        }
        schedule = self._resolve_schedule(client)
        if schedule is not None and schedule.id is not None:
            self._schedules.update(schedule.id, fields)
            return self._schedules.find(schedule.id)
        return self._schedules.create({"client_id": client.id or 0, "cron_key": QA_CRON_KEY, **fields})

    def _resolve_client(self) -> Client | None:
        if self._client is None:
            self._client = self._clients.find_by_name(CLIENT_NAME)
        return self._client

    def _resolve_schedule(self, client: Client) -> Schedule | None:
        if self._schedule is not None and self._schedule.client_id == client.id:
            return self._schedule
        for candidate in self._schedules.for_client(client.id or 0):
            if candidate.frequency == "monthly":
                self._schedule = candidate
                return candidate
        return None
