"""Report rendering: token templates, HTML layout, PDF output."""

from __future__ import annotations

import html
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from selfaudit.core.logging import get_logger
from selfaudit.harness.app.connectors import NUMERIC_KEYS, SummaryProvider, ensure_keys, merge_daily
from selfaudit.harness.app.entities import Client, Period, ReportJob, Template
from selfaudit.harness.app.infra import Options
from selfaudit.harness.app.repos import ReportsRepo
from selfaudit.harness.env import EnvironmentState

log = get_logger("harness.reports")

_RE_TOKEN = re.compile(r"{{\s*([^}]+)\s*}}")

# Date format letters understood by the ``date`` filter.
_DATE_LETTERS = {
    "d": "%d",
    "D": "%a",
    "l": "%A",
    "m": "%m",
    "M": "%b",
    "F": "%B",
    "Y": "%Y",
    "y": "%y",
    "H": "%H",
    "i": "%M",
    "s": "%S",
}

DEFAULT_TEMPLATE = Template(
    id=None,
    name="Default report",
    description="KPI overview with anomalies.",
    content="<h2>{{ client.name }}</h2><p>{{ period.label }}</p>{{ sections.kpi|raw }}{{ sections.anomalies|raw }}",
    is_default=True,
)


class PdfRendererMissing(RuntimeError):
    """No PDF backend is installed."""


class PdfRenderer(Protocol):
    def render(self, html_content: str, target: Path) -> None: ...


class MissingPdfRenderer:
    """Renderer used when no PDF backend is available; always fails."""

    def render(self, html_content: str, target: Path) -> None:
        raise PdfRendererMissing("mPDF library is not available. Run composer install on the server.")


class HtmlFileRenderer:
    """Writes the rendered HTML to the target path instead of a PDF."""

    def render(self, html_content: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(html_content, encoding="utf-8")


def _scalar_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_date(value: str, pattern: str) -> str | None:
    try:
        moment = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    out = []
    for ch in pattern:
        if ch == "j":
            out.append(str(moment.day))
        elif ch == "n":
            out.append(str(moment.month))
        elif ch in _DATE_LETTERS:
            out.append(moment.strftime(_DATE_LETTERS[ch]))
        else:
            out.append(ch)
    return "".join(out)


def format_number(value: Any, decimals: int = 0) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    return f"{number:,.{decimals}f}"


class TokenEngine:
    """Renders ``{{ path.to.value|filter }}`` tokens against a context.

    Output is HTML-escaped unless the filter is ``raw``. ``number`` formats
    numbers; any other filter is a date format.
    """

    def render(self, template: str, context: dict[str, Any]) -> str:
        def replace(match: re.Match[str]) -> str:
            path, _, token_filter = match.group(1).strip().partition("|")
            value = self.resolve_path(context, path.strip())
            token_filter = token_filter.strip()
            if token_filter == "raw":
                return value
            if token_filter:
                value = self.apply_filter(value, token_filter)
            return html.escape(value)

        return _RE_TOKEN.sub(replace, template)

    def resolve_path(self, context: dict[str, Any], path: str) -> str:
        value: Any = context
        for segment in filter(None, path.split(".")):
            if isinstance(value, dict) and segment in value:
                value = value[segment]
            else:
                return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return _scalar_text(value)

    def apply_filter(self, value: str, token_filter: str) -> str:
        if token_filter == "number":
            return format_number(value)
        formatted = format_date(value, token_filter)
        return value if formatted is None else formatted


class HtmlRenderer:
    """Wraps the rendered template body in the branded report layout."""

    LABELS = {
        "users": "Users",
        "sessions": "Sessions",
        "clicks": "Clicks",
        "impressions": "Impressions",
        "cost": "Cost",
        "conversions": "Conversions",
        "revenue": "Revenue",
    }

    def __init__(self, tokens: TokenEngine) -> None:
        self._tokens = tokens

    def render(self, template: Template, context: dict[str, Any]) -> str:
        sections = self.build_sections(context)
        body = ""
        if template.content.strip():
            body = self._tokens.render(template.content, {**context, "sections": sections})
        if not re.sub(r"<[^>]*>", "", body).strip():
            body = "".join(sections.values())

        report = context.get("report", {})
        if report.get("empty"):
            message = report.get("empty_message") or "No data available for this period."
            body += f'<div class="fpdms-empty">{html.escape(message)}</div>'

        branding = context.get("branding", {})
        color = branding.get("primary_color") or "#1d4ed8"
        if not re.fullmatch(r"#[0-9a-fA-F]{3}(?:[0-9a-fA-F]{3})?", color):
            color = "#1d4ed8"
        logo = branding.get("logo_url") or ""
        logo_html = f'<img src="{html.escape(logo)}" alt="logo" style="max-width:200px;">' if logo else ""
        footer = html.escape(branding.get("footer_text") or "")
        client = html.escape(str(context.get("client", {}).get("name", "")))
        period = html.escape(str(context.get("period", {}).get("label", "")))

        return (
            '<!DOCTYPE html><html><head><meta charset="utf-8"><style>'
            "body{font-family:sans-serif;color:#111;margin:0;padding:40px;background:#f3f4f6;}"
            f"h1,h2,h3{{color:{color};margin:0;}}"
            ".section{background:#fff;padding:24px;border-radius:12px;margin-bottom:24px;}"
            ".kpi{padding:16px;border-radius:10px;background:#f8fafc;border:1px solid #e2e8f0;}"
            ".severity-critical{color:#b91c1c;font-weight:600;}"
            ".severity-warn{color:#d97706;font-weight:600;}"
            ".footer{margin-top:24px;font-size:12px;color:#64748b;text-align:center;}"
            "</style></head><body>"
            f'<div class="section report-cover">{logo_html}<h1>{client}</h1><p>{period}</p></div>'
            f'<div class="report-body">{body}</div>'
            f'<div class="footer">{footer}</div>'
            "</body></html>"
        )

    def build_sections(self, context: dict[str, Any]) -> dict[str, str]:
        sections = {"kpi": self._kpi_section(context), "anomalies": self._anomalies_section(context)}
        return {k: v for k, v in sections.items() if v}

    def _kpi_section(self, context: dict[str, Any]) -> str:
        totals = context.get("kpi", {}).get("totals", {})
        cards = "".join(
            f'<div class="kpi"><span>{label}</span><strong>'
            f"{format_number(totals.get(key, 0.0), 2 if key in ('cost', 'revenue') else 0)}</strong></div>"
            for key, label in self.LABELS.items()
        )
        return f'<div class="section"><h2>Key performance indicators</h2><div class="kpi-grid">{cards}</div></div>'

    def _anomalies_section(self, context: dict[str, Any]) -> str:
        items = ""
        for anomaly in context.get("anomalies", {}).get("items", []):
            if not isinstance(anomaly, dict):
                continue
            metric = html.escape(str(anomaly.get("metric", "Metric")))
            severity = html.escape(str(anomaly.get("severity", "warn")))
            delta = anomaly.get("delta_percent")
            delta_text = f"{float(delta):.1f}%" if delta is not None else ""
            items += f'<li class="severity-{severity.lower()}">{metric} ({delta_text})</li>'
        if not items:
            return ""
        return f'<div class="section anomalies"><h2>Anomalies</h2><ul>{items}</ul></div>'


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "client"


def aggregate_rows(rows: list[dict[str, Any]]) -> dict[str, float]:
    totals = dict.fromkeys(NUMERIC_KEYS, 0.0)
    for row in rows:
        for key in NUMERIC_KEYS:
            totals[key] += float(row.get(key, 0.0) or 0.0)
    return totals


class ReportBuilder:
    """Collects provider data and renders one report job to a PDF file."""

    def __init__(self, env: EnvironmentState, reports: ReportsRepo, html_renderer: HtmlRenderer, pdf: PdfRenderer):
        self._env = env
        self._reports = reports
        self._html = html_renderer
        self._pdf = pdf

    def generate(
        self,
        job: ReportJob,
        client: Client,
        providers: list[SummaryProvider],
        period: Period,
        template: Template,
        previous_metrics: dict[str, Any] | None = None,
    ) -> ReportJob | None:
        """Render the job; on any rendering error the job is marked failed with the message."""
        if job.id is None or job.id <= 0:
            raise ValueError("Report job must have a valid ID before generation")
        if client.id is None or client.id <= 0:
            raise ValueError("Client must have a valid ID before report generation")

        timestamp = self._env.current_time()
        meta = {
            **job.meta,
            **self.collect_data(providers, period, previous_metrics or {}),
            "generated_at": timestamp,
            "period": period.to_dict(),
        }

        try:
            context = self.build_context(client, period, meta)
            content = self._html.render(template, context)
            absolute, relative = self.determine_path(client, period)
            self._pdf.render(content, absolute)
        except Exception as exc:
            log.warning("report_failed", client=client.id, report=job.id, error=str(exc))
            self._reports.update(job.id, {"status": "failed", "meta": {**meta, "error": str(exc), "failed_at": timestamp}})
            return self._reports.find(job.id)

        self._reports.update(
            job.id,
            {
                "status": "success",
                "storage_path": relative,
                "meta": {**meta, "completed_at": timestamp, "template_id": template.id},
            },
        )
        log.info("report_generated", client=client.id, report=job.id, path=relative)
        return self._reports.find(job.id)

    def collect_data(
        self, providers: list[SummaryProvider], period: Period, previous_metrics: dict[str, Any]
    ) -> dict[str, Any]:
        metrics: dict[str, list[dict[str, Any]]] = {}
        sources: dict[str, str] = {}
        dimensions: dict[str, Any] = {}
        has_rows = False

        for provider in providers:
            definition = provider.describe()
            name = str(definition.get("name") or "unknown")
            sources[name] = str(definition.get("label") or name)
            rows = []
            for row in provider.fetch_metrics(period):
                normalized = ensure_keys({"source": name, "date": period.end.isoformat(), **row})
                if any(normalized[k] for k in NUMERIC_KEYS):
                    has_rows = True
                rows.append(normalized)
            if rows:
                metrics[name] = rows
            found = provider.fetch_dimensions(period)
            if found:
                dimensions[name] = found

        daily = [{**row, "source": "aggregate"} for row in merge_daily(*metrics.values())] if metrics else []
        previous_totals = dict.fromkeys(NUMERIC_KEYS, 0.0)
        for totals in previous_metrics.values():
            if isinstance(totals, dict):
                for key in NUMERIC_KEYS:
                    previous_totals[key] += float(totals.get(key, 0.0) or 0.0)

        return {
            "kpi": {source: aggregate_rows(rows) for source, rows in metrics.items()},
            "kpi_total": aggregate_rows(daily),
            "dimensions": dimensions,
            "sources": sources,
            "metrics_daily": daily,
            "previous_totals": previous_totals,
            "empty": not has_rows and not dimensions,
        }

    def build_context(self, client: Client, period: Period, meta: dict[str, Any]) -> dict[str, Any]:
        settings = Options(self._env).global_settings()
        branding = settings.get("pdf_branding")
        return {
            "client": {"id": client.id, "name": client.name},
            "period": period.to_dict(),
            "kpi": {"totals": meta.get("kpi_total", {}), "by_source": meta.get("kpi", {})},
            "branding": dict(branding) if isinstance(branding, dict) else {},
            "anomalies": {"items": meta.get("anomalies", [])},
            "report": {"empty": meta.get("empty", False), "generated_at": meta.get("generated_at", "")},
        }

    def determine_path(self, client: Client, period: Period) -> tuple[Path, str]:
        """Absolute and upload-relative path of the report file."""
        now = self._env.now()
        name = f"{slugify(client.name)}-{period.start:%Y%m%d}-{period.end:%Y%m%d}.pdf"
        relative = f"fpdms/{now:%Y}/{now:%m}/{name}"
        absolute = self._env.uploads.base_dir / relative
        absolute.parent.mkdir(parents=True, exist_ok=True)
        return absolute, relative
