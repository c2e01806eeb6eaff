"""Application infrastructure: options, locks and mail."""

from __future__ import annotations

import json
import secrets
import string
from datetime import timedelta
from typing import Any

from selfaudit.core.logging import get_logger
from selfaudit.harness.app.entities import Client, Period, ReportJob
from selfaudit.harness.env import EnvironmentState

log = get_logger("harness.app")

GLOBAL_SETTINGS = "fpdms_global_settings"
LAST_TICK = "fpdms_last_tick_at"
QA_KEY = "fpdms_qa_key"

DEFAULT_SETTINGS: dict[str, Any] = {
    "owner_email": "",
    "pdf_branding": {"logo_url": "", "primary_color": "#1d4ed8", "footer_text": ""},
    "mail": {"smtp": {"host": "", "port": 587, "secure": "none", "user": "", "pass": ""}},
    "retention_days": 90,
    "error_webhook_url": "",
    "tick_key": "",
}


def generate_password(length: int = 12) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


class Options:
    """Global settings and bookkeeping options."""

    def __init__(self, env: EnvironmentState) -> None:
        self._options = env.options
        self._env = env

    def global_settings(self) -> dict[str, Any]:
        stored = self._options.get(GLOBAL_SETTINGS, {})
        return {**DEFAULT_SETTINGS, **(stored if isinstance(stored, dict) else {})}

    def update_global_settings(self, settings: dict[str, Any]) -> None:
        self._options.set(GLOBAL_SETTINGS, {**self.global_settings(), **settings})

    def ensure_defaults(self) -> None:
        settings = self.global_settings()
        if not settings.get("tick_key"):
            settings["tick_key"] = generate_password(32)
        self.update_global_settings(settings)

    def last_tick(self) -> int:
        return int(self._options.get(LAST_TICK, 0) or 0)

    def set_last_tick(self, timestamp: int) -> None:
        self._options.set(LAST_TICK, timestamp)

    def qa_key(self) -> str:
        key = str(self._options.get(QA_KEY, "") or "")
        if not key:
            key = generate_password(32)
            self._options.set(QA_KEY, key)
        return key


class Lock:
    """Named mutual-exclusion locks backed by the locks table.

    Acquisition is a textual INSERT, which the store refuses (0 rows) when
    the key is already held. Locks older than their ttl are removed first.
    """

    TRANSIENT_PREFIX = "fpdms_lock_"

    def __init__(self, env: EnvironmentState) -> None:
        self._env = env
        self._store = env.store
        self._table = env.store.table("locks")

    def acquire(self, name: str, owner: str, ttl: int = 120) -> bool:
        self._cleanup_expired(ttl)
        sql = self._store.prepare(
            f"INSERT INTO {self._table} (lock_key, owner, acquired_at) VALUES (%s, %s, %s)",
            name,
            owner,
            self._env.current_time(),
        )
        if self._store.query(sql) <= 0:
            log.debug("lock_refused", lock=name, owner=owner)
            return False
        self._env.transients.set(self.TRANSIENT_PREFIX + name, owner, ttl)
        return True

    def release(self, name: str, owner: str) -> None:
        self._env.transients.delete(self.TRANSIENT_PREFIX + name)
        self._store.delete(self._table, {"lock_key": name, "owner": owner})

    def holder(self, name: str) -> str | None:
        row = self._store.get_row(
            self._store.prepare(f"SELECT owner, acquired_at FROM {self._table} WHERE lock_key = %s", name)
        )
        return str(row["owner"]) if row else None

    def _cleanup_expired(self, ttl: int) -> None:
        cutoff = (self._env.now() - timedelta(seconds=ttl)).strftime("%Y-%m-%d %H:%M:%S")
        for row in self._store.select_all(self._table):
            if str(row.get("acquired_at", "")) < cutoff:
                self._store.delete(self._table, {"id": row["id"]})


def configure_transport(transport: dict[str, Any], settings: dict[str, Any]) -> None:
    """Switch ``transport`` to SMTP when the settings carry a host and port."""
    smtp = (settings.get("mail") or {}).get("smtp") or {}
    host = str(smtp.get("host") or "").strip()
    try:
        port = int(smtp.get("port") or 0)
    except (TypeError, ValueError):
        port = 0
    if not host or port <= 0:
        return

    secure = str(smtp.get("secure") or "none").lower()
    username = str(smtp.get("user") or "").strip()
    transport.update(
        mailer="smtp",
        host=host,
        port=port,
        secure=secure if secure in ("ssl", "tls") else "",
        auth=bool(username),
    )
    if username:
        transport["username"] = username


class Mailer:
    def __init__(self, env: EnvironmentState) -> None:
        self._env = env
        self._options = Options(env)

    @staticmethod
    def bootstrap(env: EnvironmentState) -> None:
        """Hook the SMTP settings into every outgoing message, as on plugin load."""
        options = Options(env)
        env.hooks.add_action(
            "phpmailer_init",
            lambda transport: configure_transport(transport, options.global_settings()),
        )

    def _owner(self) -> str:
        owner = str(self._options.global_settings().get("owner_email") or "").strip()
        return owner if "@" in owner else ""

    def send_report(self, client: Client, report: ReportJob, period: Period) -> bool:
        """Mail the report PDF to the client (owner as fallback or Bcc)."""
        owner = self._owner()
        primary = [e for e in client.email_to if "@" in e] or ([owner] if owner else [])
        if not primary:
            return False
        cc = [e for e in client.email_cc if "@" in e and e not in primary]

        headers = ["Content-Type: text/html; charset=UTF-8"]
        if cc:
            headers.append("Cc: " + ", ".join(cc))
        if owner and owner not in primary and owner not in cc:
            headers.append("Bcc: " + owner)

        if not report.storage_path:
            log.info("mail_attachment_missing", report=report.id)
            return False
        base = self._env.uploads.base_dir.resolve()
        attachment = (base / report.storage_path.lstrip("/\\")).resolve()
        if not attachment.is_relative_to(base) or not attachment.is_file():
            log.info("mail_attachment_not_found", path=str(attachment))
            return False

        subject = f"[Report] {client.name} – {period.start} to {period.end}"
        body = f"<p>Attached you will find the latest marketing report for {client.name}.</p>"
        return self._env.mail.send(primary, subject, body, headers, [str(attachment)])

    def send_anomaly_alert(self, client: Client, anomalies: list[dict[str, Any]]) -> bool:
        owner = self._owner()
        if not owner or not anomalies:
            return False
        first = anomalies[0]
        subject = f"[Anomaly] {client.name}: {first.get('metric', 'metric')} ({first.get('severity', 'warn')})"
        items = "".join(
            f"<li><strong>{a.get('metric', 'metric')}</strong> – Δ "
            f"{'n/a' if a.get('delta_percent') is None else format(a['delta_percent'], '.1f') + '%'}"
            f" ({a.get('severity', 'warn')})</li>"
            for a in anomalies
        )
        body = f"<p>The anomaly detector flagged the following metrics for {client.name}.</p><ul>{items}</ul>"
        return self._env.mail.send(owner, subject, body, ["Content-Type: text/html; charset=UTF-8"])


def post_error_webhook(env: EnvironmentState, payload: dict[str, Any]) -> bool:
    """POST ``payload`` to the configured error webhook; False when none is set."""
    url = str(Options(env).global_settings().get("error_webhook_url") or "")
    if not url:
        return False
    env.http.post(
        url,
        {
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(payload, ensure_ascii=False),
            "timeout": 5,
        },
    )
    return True
