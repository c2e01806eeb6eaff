"""Report job queue: scheduling, locking and processing."""

from __future__ import annotations

import secrets
from datetime import date, datetime, timedelta
from typing import Any

from selfaudit.core.logging import get_logger
from selfaudit.harness.app.anomalies import Detector
from selfaudit.harness.app.connectors import SummaryProvider, build_provider
from selfaudit.harness.app.entities import DataSource, Period, ReportJob, Schedule
from selfaudit.harness.app.infra import Lock, Mailer, Options, post_error_webhook
from selfaudit.harness.app.reports import (
    DEFAULT_TEMPLATE,
    HtmlRenderer,
    MissingPdfRenderer,
    PdfRenderer,
    ReportBuilder,
    TokenEngine,
)
from selfaudit.harness.app.repos import (
    AnomaliesRepo,
    ClientsRepo,
    DataSourcesRepo,
    ReportsRepo,
    SchedulesRepo,
    TemplatesRepo,
)
from selfaudit.harness.env import EnvironmentState

log = get_logger("harness.queue")

GLOBAL_LOCK = "queue-global"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    return first, next_month - timedelta(days=1)


def last_month(today: date) -> tuple[str, str]:
    """First and last day of the previous calendar month (ISO dates)."""
    start, end = month_bounds(today.replace(day=1) - timedelta(days=1))
    return start.isoformat(), end.isoformat()


def add_month(moment: datetime) -> datetime:
    carry, month = divmod(moment.month, 12)
    _, last_day = month_bounds(date(moment.year + carry, month + 1, 1))
    return moment.replace(year=moment.year + carry, month=month + 1, day=min(moment.day, last_day.day))


def build_providers(sources: list[DataSource]) -> list[SummaryProvider]:
    providers = []
    for source in sources:
        if not source.active:
            continue
        provider = build_provider(source.type, source.auth, source.config)
        if provider is not None:
            providers.append(provider)
    return providers


class Queue:
    """Report job queue processed by ``tick``."""

    def __init__(self, env: EnvironmentState, pdf: PdfRenderer | None = None) -> None:
        self._env = env
        self._pdf = pdf or MissingPdfRenderer()
        self._reports = ReportsRepo(env)
        self._schedules = SchedulesRepo(env)
        self._clients = ClientsRepo(env)
        self._templates = TemplatesRepo(env)
        self._sources = DataSourcesRepo(env)
        self._options = Options(env)
        self._lock = Lock(env)

    def enqueue(
        self,
        client_id: int,
        period_start: str,
        period_end: str,
        template_id: int | None = None,
        schedule_id: int | None = None,
        extra_meta: dict[str, Any] | None = None,
    ) -> ReportJob | None:
        """Queue a report, merging meta into a queued/running job for the same period."""
        meta: dict[str, Any] = {}
        if template_id is not None:
            meta["template_id"] = template_id
        if schedule_id is not None:
            meta["schedule_id"] = schedule_id
        meta.update(extra_meta or {})

        existing = self._reports.find_by_client_and_period(client_id, period_start, period_end, ["queued", "running"])
        if existing is not None and existing.id is not None:
            if meta:
                self._reports.update(existing.id, {"meta": {**existing.meta, **meta}})
            return self._reports.find(existing.id)

        return self._reports.create(
            {
                "client_id": client_id,
                "period_start": period_start,
                "period_end": period_end,
                "status": "queued",
                "meta": meta,
            }
        )

    def tick(self) -> ReportJob | None:
        """Dispatch due schedules and process the next queued job.

        Returns the processed job, or None when the queue was empty or a lock
        was contended.
        """
        self._options.set_last_tick(self._env.timestamp())
        owner = "fpdms-" + secrets.token_hex(8)

        if not self._lock.acquire(GLOBAL_LOCK, owner):
            log.info("lock_contended", lock=GLOBAL_LOCK)
            return None
        try:
            self.dispatch_due_schedules()
            job = self._reports.next_queued()
            if job is not None and job.id is not None:
                self._reports.update(job.id, {"meta": {**job.meta, "started_at": self._env.current_time()}})
                job = self._reports.find(job.id)
        finally:
            self._lock.release(GLOBAL_LOCK, owner)

        if job is None or job.id is None:
            return None

        client_lock = f"client-{job.client_id}"
        if not self._lock.acquire(client_lock, owner):
            log.info("lock_contended", lock=client_lock)
            self._reports.update(job.id, {"status": "queued"})
            return None
        try:
            self.process(job)
        finally:
            self._lock.release(client_lock, owner)
        return self._reports.find(job.id)

    def dispatch_due_schedules(self) -> None:
        for schedule in self._schedules.due_schedules(self._env.current_time()):
            if schedule.id is None or self._clients.find(schedule.client_id) is None:
                continue
            start, end = last_month(self._env.now().date())
            next_run_at = self.next_run_at(schedule)
            job = self.enqueue(
                schedule.client_id,
                start,
                end,
                schedule.template_id,
                schedule.id,
                {"origin": "schedule", "schedule_next_run_at": next_run_at},
            )
            if job is not None:
                self._schedules.update(schedule.id, {"next_run_at": next_run_at})

    def next_run_at(self, schedule: Schedule) -> str:
        try:
            base = datetime.strptime(schedule.next_run_at or "", _TIME_FORMAT)
        except ValueError:
            base = self._env.now().replace(tzinfo=None)
        if schedule.frequency == "daily":
            upcoming = base + timedelta(days=1)
        elif schedule.frequency == "weekly":
            upcoming = base + timedelta(weeks=1)
        else:
            upcoming = add_month(base)
        return upcoming.strftime(_TIME_FORMAT)

    def process(self, job: ReportJob) -> None:
        """Render, detect anomalies, then mail one running job."""
        if job.id is None:
            return
        client = self._clients.find(job.client_id)
        if client is None or client.id is None:
            self._reports.update(job.id, {"status": "failed", "meta": {**job.meta, "error": "Client not found for report job."}})
            return

        template = None
        if job.meta.get("template_id"):
            template = self._templates.find(int(job.meta["template_id"]))
        template = template or self._templates.find_default() or DEFAULT_TEMPLATE

        period = Period.from_strings(job.period_start, job.period_end)
        builder = ReportBuilder(self._env, self._reports, HtmlRenderer(TokenEngine()), self._pdf)
        result = builder.generate(
            job,
            client,
            build_providers(self._sources.for_client(client.id)),
            period,
            template,
            self._previous_metrics(job),
        )
        if result is None or result.id is None or result.status != "success":
            log.info("report_generation_failed", client=client.id, report=job.id)
            return

        detector = Detector(AnomaliesRepo(self._env), self._env.current_time)
        anomalies = detector.evaluate_period(client.id, result.meta, self._metrics_history(client.id, result.id))
        if anomalies:
            self._reports.update(result.id, {"meta": {**result.meta, "anomalies": anomalies}})
            Mailer(self._env).send_anomaly_alert(client, anomalies)

        result = self._reports.find(result.id) or result
        self.mark_schedule_completion(result)

        sent = Mailer(self._env).send_report(client, result, period)
        latest = self._reports.find(result.id) or result
        stamp = self._env.current_time()
        meta = {**latest.meta, "mail_status": "sent" if sent else "failed", "mail_attempted_at": stamp}
        if sent:
            meta["mail_sent_at"] = stamp
        else:
            meta["mail_error"] = "delivery_failed"
            post_error_webhook(
                self._env,
                {"client": client.name, "report_id": result.id, "period": period.to_dict(), "error": "delivery_failed"},
            )
        self._reports.update(result.id, {"meta": meta})

    def mark_schedule_completion(self, job: ReportJob) -> None:
        schedule_id = int(job.meta.get("schedule_id") or 0)
        if schedule_id <= 0:
            return
        schedule = self._schedules.find(schedule_id)
        if schedule is None:
            return
        next_run = job.meta.get("schedule_next_run_at") or self.next_run_at(schedule)
        self._schedules.update(schedule_id, {"last_run_at": self._env.current_time(), "next_run_at": str(next_run)})

    def _previous_metrics(self, job: ReportJob) -> dict[str, Any]:
        for report in self._reports.search({"client_id": job.client_id, "status": "success"}):
            if report.id == job.id:
                continue
            if isinstance(report.meta.get("kpi"), dict):
                return report.meta["kpi"]
        return {}

    def _metrics_history(self, client_id: int, exclude_id: int, limit: int = 8) -> list[dict[str, float]]:
        series = []
        for report in self._reports.search({"client_id": client_id, "status": "success"}):
            if report.id == exclude_id:
                continue
            totals = report.meta.get("kpi_total")
            if isinstance(totals, dict):
                series.append(totals)
            if len(series) >= limit:
                break
        return series
