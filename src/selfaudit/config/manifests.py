"""Fixed audit manifests.

These tables describe what a complete plugin must contain. They are data,
not configuration: changing them changes what "complete" means, so they are
versioned with the code instead of being read from YAML.
"""

from __future__ import annotations

# group -> {class FQN -> description}
REQUIRED_CLASSES: dict[str, dict[str, str]] = {
    "infra": {
        "FP\\DMS\\Infra\\DB": "Database access layer",
        "FP\\DMS\\Infra\\Options": "Options manager",
        "FP\\DMS\\Infra\\Logger": "Logger service",
        "FP\\DMS\\Infra\\Mailer": "Mailer service",
        "FP\\DMS\\Infra\\Queue": "Queue dispatcher",
        "FP\\DMS\\Infra\\Lock": "Lock coordination",
    },
    "services_reports": {
        "FP\\DMS\\Services\\Reports\\ReportBuilder": "Report builder",
        "FP\\DMS\\Services\\Reports\\HtmlRenderer": "HTML report renderer",
        "FP\\DMS\\Services\\Reports\\TokenEngine": "Report token engine",
    },
    "services_anomalies": {
        "FP\\DMS\\Services\\Anomalies\\Detector": "Anomalies detector",
        "FP\\DMS\\Services\\Anomalies\\Engine": "Anomalies engine",
    },
    "services_connectors": {
        "FP\\DMS\\Services\\Connectors\\GoogleAdsProvider": "Google Ads connector",
        "FP\\DMS\\Services\\Connectors\\MetaAdsProvider": "Meta Ads connector",
        "FP\\DMS\\Services\\Connectors\\CsvGenericProvider": "CSV generic connector",
        "FP\\DMS\\Services\\Connectors\\GA4Provider": "GA4 connector",
        "FP\\DMS\\Services\\Connectors\\GSCProvider": "GSC connector",
    },
    "qa": {
        "FP\\DMS\\Services\\Qa\\Automation": "QA automation orchestrator",
        "FP\\DMS\\Admin\\Pages\\QaPage": "QA admin page",
        "FP\\DMS\\Http\\Routes": "HTTP routes registrar",
    },
}

# route path (as written in the routes file) -> expected HTTP method
REQUIRED_ROUTES: dict[str, str] = {
    "/tick": "POST",
    "/run/(?P<client_id>\\d+)": "POST",
    "/report/(?P<report_id>\\d+)/download": "GET",
    "/qa/seed": "POST",
    "/qa/run": "POST",
    "/qa/anomalies": "POST",
    "/qa/all": "POST",
    "/qa/status": "GET",
    "/qa/cleanup": "POST",
}

# connector class -> datasource key reported by the runtime seed phase
CONNECTOR_DATASOURCES: dict[str, str] = {
    "FP\\DMS\\Services\\Connectors\\GoogleAdsProvider": "google_ads",
    "FP\\DMS\\Services\\Connectors\\MetaAdsProvider": "meta_ads",
    "FP\\DMS\\Services\\Connectors\\CsvGenericProvider": "csv_generic",
    "FP\\DMS\\Services\\Connectors\\GA4Provider": "ga4",
    "FP\\DMS\\Services\\Connectors\\GSCProvider": "gsc",
}

# Scorecard module -> (contract group, runtime phases counted as extra items)
MODULE_GROUPS: dict[str, tuple[str, tuple[str, ...]]] = {
    "Infra": ("infra", ("run",)),
    "Services Reports": ("services_reports", ()),
    "Services Connectors": ("services_connectors", ()),
    "Anomalies": ("services_anomalies", ("anomalies",)),
    "QA Automation": ("qa", ("seed", "status")),
}

# Required payload fields per runtime lifecycle operation
EXPECTED_RUNTIME_KEYS: dict[str, tuple[str, ...]] = {
    "seed": ("qa", "client_id", "datasources", "schedule", "status"),
    "run": ("qa", "client_id", "report_id", "pdf", "email", "locks", "warnings", "status"),
    "anomalies": ("qa", "client_id", "anomalies", "severities", "status"),
    "status": (
        "qa",
        "client_id",
        "schedules",
        "last_report",
        "anomalies_count",
        "last_tick",
        "mail_last_result",
        "warnings",
        "status",
    ),
}
