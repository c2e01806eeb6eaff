"""Tests for the QA automation lifecycle."""

from __future__ import annotations

import pytest

from selfaudit.harness.app.automation import (
    CLIENT_NAME,
    OWNER_EMAIL,
    PDF_MISSING_WARNING,
    Automation,
    combine_status,
)
from selfaudit.harness.app.infra import Lock, Options
from selfaudit.harness.app.queue import GLOBAL_LOCK
from selfaudit.harness.app.reports import HtmlFileRenderer
from selfaudit.harness.app.repos import ClientsRepo, DataSourcesRepo, SchedulesRepo, TemplatesRepo


class TestCombineStatus:
    @pytest.mark.parametrize(
        ("statuses", "expected"),
        [(("PASS", "PASS"), "PASS"), (("PASS", "WARN"), "WARN"), (("WARN", "FAIL", "PASS"), "FAIL"), ((), "PASS")],
    )
    def test_precedence(self, statuses: tuple[str, ...], expected: str) -> None:
        assert combine_status(*statuses) == expected


class TestSeed:
    def test_seed_creates_fixtures(self, env) -> None:
        result = Automation(env).seed()

        assert result["status"] == "PASS"
        assert result["datasources"] == {"google_ads": "ok", "meta_ads": "ok", "csv_generic": "ok"}
        assert result["schedule"] == "ok"

        client = ClientsRepo(env).find_by_name(CLIENT_NAME)
        assert client is not None
        assert result["client_id"] == client.id
        assert client.timezone == "Europe/Rome"
        assert Options(env).global_settings()["owner_email"] == OWNER_EMAIL
        assert TemplatesRepo(env).find_default() is not None

        schedules = SchedulesRepo(env).for_client(client.id)
        assert [(s.frequency, s.next_run_at) for s in schedules] == [("monthly", "2025-09-15 10:00:00")]

    def test_seed_is_idempotent(self, env) -> None:
        first = Automation(env).seed()
        second = Automation(env).seed()

        assert second["client_id"] == first["client_id"]
        assert len(env.store.rows(env.store.table("clients"))) == 1
        assert len(DataSourcesRepo(env).for_client(first["client_id"])) == 3
        assert len(SchedulesRepo(env).for_client(first["client_id"])) == 1
        assert len(env.store.rows(env.store.table("templates"))) == 1

    def test_datasource_carries_summary(self, env) -> None:
        result = Automation(env).seed()
        sources = {s.type: s for s in DataSourcesRepo(env).for_client(result["client_id"])}
        summary = sources["google_ads"].config["summary"]
        assert summary["metrics"]["clicks"] == 200.0
        assert sources["csv_generic"].config["source_label"] == "QA Generic CSV Fixture"

    def test_existing_owner_email_is_kept(self, env) -> None:
        Options(env).update_global_settings({"owner_email": "boss@agency.test"})
        Automation(env).seed()
        assert Options(env).global_settings()["owner_email"] == "boss@agency.test"


class TestRun:
    def test_run_without_pdf_backend_warns(self, env) -> None:
        result = Automation(env).run()

        assert result["status"] == "WARN"
        assert result["warnings"] == [PDF_MISSING_WARNING]
        assert result["locks"] == "OK"
        assert result["email"] == "UNKNOWN"
        assert result["pdf"] == ""

    def test_run_with_renderer_passes(self, env) -> None:
        result = Automation(env, HtmlFileRenderer()).run()

        assert result["status"] == "PASS"
        assert result["email"] == "SENT"
        assert result["warnings"] == []
        assert result["pdf"] == "fpdms/2025/09/qa-demo-client-20250801-20250831.pdf"
        assert (env.uploads.base_dir / result["pdf"]).is_file()

        report_mail = env.mail.log[0]
        assert report_mail["to"] == ["qa-client@example.com"]
        assert f"Bcc: {OWNER_EMAIL}" in report_mail["headers"]

    def test_report_meta_is_tagged(self, env) -> None:
        automation = Automation(env, HtmlFileRenderer())
        result = automation.run()
        report = automation._reports.find(result["report_id"])
        assert report.meta["qa"] is True
        assert report.meta["kpi_total"]["clicks"] == 350.0
        assert report.meta["kpi_total"]["sessions"] == 470.0

    def test_run_without_client(self, env) -> None:
        assert Automation(env).run(ensure_prerequisites=False) == {
            "qa": "run",
            "status": "FAIL",
            "error": "client_missing",
        }

    def test_broken_lock_fails_run(self, env, monkeypatch) -> None:
        monkeypatch.setattr(Lock, "acquire", lambda self, name, owner, ttl=120: True)
        result = Automation(env, HtmlFileRenderer()).run()
        assert result["locks"] == "BROKEN"
        assert "lock_probe_broken" in result["warnings"]
        assert result["status"] == "FAIL"


class TestProbeLocks:
    def test_ok(self, env) -> None:
        assert Automation(env).probe_locks() == "OK"
        assert Lock(env).holder(GLOBAL_LOCK) is None

    def test_contended(self, env) -> None:
        Lock(env).acquire(GLOBAL_LOCK, "worker")
        assert Automation(env).probe_locks() == "CONTENDED"
        assert Lock(env).holder(GLOBAL_LOCK) == "worker"


class TestAnomalies:
    def test_fixture_flags_three_critical_metrics(self, env) -> None:
        result = Automation(env).anomalies()

        assert result["status"] == "PASS"
        assert result["anomalies"] == 3
        assert result["severities"] == ["critical"]
        alert = env.mail.last
        assert alert["to"] == [OWNER_EMAIL]
        assert alert["subject"].startswith("[Anomaly] QA Demo Client:")

    def test_webhook_receives_anomalies(self, env) -> None:
        Options(env).update_global_settings({"error_webhook_url": "https://hooks.test/errors"})
        Automation(env).anomalies()
        assert len(env.http.requests) == 1

    def test_without_client(self, env) -> None:
        result = Automation(env).anomalies(ensure_prerequisites=False)
        assert result["status"] == "FAIL"
        assert result["error"] == "client_missing"


class TestStatus:
    def test_before_seed(self, env) -> None:
        assert Automation(env).status() == {"qa": "status", "warnings": ["client_missing"], "status": "WARN"}

    def test_after_seed_without_report(self, env) -> None:
        automation = Automation(env)
        automation.seed()
        result = automation.status()
        assert result["status"] == "WARN"
        assert result["warnings"] == ["report_missing"]
        assert result["last_report"] is None
        assert result["mail_last_result"] == "UNKNOWN"

    def test_after_full_cycle(self, env) -> None:
        automation = Automation(env, HtmlFileRenderer())
        automation.seed()
        run = automation.run(False)
        automation.anomalies(False)

        result = automation.status()
        assert result["status"] == "PASS"
        assert result["schedules"] == 1
        assert result["last_report"]["id"] == run["report_id"]
        assert result["last_report"]["path"] == run["pdf"]
        assert result["anomalies_count"] == 3
        assert result["last_tick"] == env.timestamp()
        assert result["mail_last_result"] == "SENT"


class TestAll:
    def test_all_combines_operations(self, env) -> None:
        result = Automation(env).all()
        assert result["qa"] == "all"
        assert result["status"] == "WARN"
        assert result["anomalies"] == 3
        assert result["warnings"] == [PDF_MISSING_WARNING]
        assert result["locks"] == "OK"


class TestCleanup:
    def test_removes_every_qa_row(self, env) -> None:
        automation = Automation(env, HtmlFileRenderer())
        run = automation.all()
        pdf = env.uploads.base_dir / run["pdf"]
        assert pdf.is_file()

        result = automation.cleanup()

        assert result == {
            "qa": "cleanup",
            "client_deleted": 1,
            "datasources_deleted": 3,
            "schedules_deleted": 1,
            "reports_deleted": 1,
            "anomalies_deleted": 3,
            "status": "PASS",
        }
        assert not pdf.exists()
        assert ClientsRepo(env).find_by_name(CLIENT_NAME) is None
        assert automation.status()["warnings"] == ["client_missing"]

    def test_nothing_to_clean(self, env) -> None:
        result = Automation(env).cleanup()
        assert result["status"] == "PASS"
        assert result["client_deleted"] == 0
