"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (SELFAUDIT__SECTION__KEY)
3. Project YAML (<project>/.selfaudit/config.yaml)
4. Built-in defaults (this file)

Examples:
    SELFAUDIT__LOGGING__LEVEL=DEBUG
    SELFAUDIT__LINKAGE__TOP_UNREFERENCED_LIMIT=25
    SELFAUDIT__HARNESS__WEBHOOK_URL=
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        SELFAUDIT__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. Phase summaries are printed regardless.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class PathsConfig(BaseModel):
    """Where artifacts and cross-run state live, relative to the project root.

    Env vars:
        SELFAUDIT__PATHS__ARTIFACTS_DIR: Artifact directory
        SELFAUDIT__PATHS__STATE_FILE: Audit state snapshot
    """

    artifacts_dir: str = Field(
        default=".selfaudit",
        description="Directory holding the phase JSON artifacts.",
    )
    state_file: str = Field(
        default=".audit-state.json",
        description="Cross-run AuditState snapshot.",
    )


class ScanConfig(BaseModel):
    """Source tree scanning.

    Env vars:
        SELFAUDIT__SCAN__SOURCE_DIRS: Directories to catalog
        SELFAUDIT__SCAN__ENTRY_FILES: Extra files searched for call sites
    """

    source_dirs: list[str] = Field(
        default_factory=lambda: ["src"],
        description="Directories walked by the inventory and linkage phases.",
    )
    entry_files: list[str] = Field(
        default_factory=lambda: ["fp-digital-marketing-suite.php"],
        description="Files outside source_dirs that linkage also searches (skipped if absent).",
    )
    extensions: list[str] = Field(
        default_factory=lambda: [".php"],
        description="File extensions treated as source.",
    )
    admin_pages_dir: str = Field(
        default="src/Admin/Pages/",
        description="Types declared under this prefix are listed as admin pages.",
    )
    routes_call: str = Field(
        default="register_rest_route",
        description="Function whose calls declare REST routes.",
    )
    cli_pattern: str = Field(
        default=r"WP_CLI::add_command\s*\(\s*'([^']+)'",
        description="Regex capturing CLI command names.",
    )


class LinkageConfig(BaseModel):
    """Call-graph resolution knobs.

    Env vars:
        SELFAUDIT__LINKAGE__CALLABLE_WINDOW: Token window pairing a class marker with a method string
        SELFAUDIT__LINKAGE__TOP_UNREFERENCED_LIMIT: Size of the dead-code list
    """

    callable_window: int = Field(
        default=40,
        description="Max token distance between a Type::class marker and a method-name string.",
    )
    this_lookback: int = Field(
        default=10,
        description="Max tokens searched backwards for a $this marker.",
    )
    top_unreferenced_limit: int = Field(
        default=10,
        description="Number of unreferenced methods listed in summaries.",
    )
    include_interfaces: bool = Field(
        default=False,
        description="Track interface methods. They can never gain references without "
        "inheritance-aware resolution, so they only add dead-code noise.",
    )

    @field_validator("callable_window", "this_lookback", "top_unreferenced_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Must be >= 0, got {v}")
        return v


class ContractsConfig(BaseModel):
    """Contract verification.

    Env vars:
        SELFAUDIT__CONTRACTS__VENDOR_PREFIX: Namespace prefix stripped to derive file paths
        SELFAUDIT__CONTRACTS__ROUTE_NAMESPACE: REST namespace routes must be registered under
    """

    vendor_prefix: str = Field(
        default="FP\\DMS\\",
        description="Namespace prefix mapped onto the source directory.",
    )
    source_dir: str = Field(default="src", description="Directory the vendor prefix maps onto.")
    routes_file: str = Field(
        default="src/Http/Routes.php",
        description="File scanned for route registrations.",
    )
    route_namespace: str = Field(default="fpdms/v1", description="REST namespace of the routes.")


class HarnessConfig(BaseModel):
    """Runtime harness substitutes.

    Env vars:
        SELFAUDIT__HARNESS__TABLE_PREFIX: Prefix of mock tables
        SELFAUDIT__HARNESS__UPLOAD_DIR: Upload directory (relative to artifacts dir)
        SELFAUDIT__HARNESS__WEBHOOK_URL: Error webhook configured during seed ("" disables)
    """

    table_prefix: str = Field(default="wp_fpdms_", description="Prefix for mock table names.")
    upload_dir: str = Field(
        default="runtime/uploads",
        description="Local upload directory, relative to the artifacts directory.",
    )
    upload_url: str = Field(
        default="https://example.test/uploads",
        description="Fake public URL matching upload_dir.",
    )
    webhook_url: str = Field(
        default="https://example.test/hooks/fpdms-errors",
        description="Error webhook written into settings during seed. Requests are only logged.",
    )
    timezone: str = Field(default="UTC", description="Timezone used by the substitute clock.")


class SelfAuditConfig(BaseModel):
    """Root configuration for selfaudit."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    linkage: LinkageConfig = Field(default_factory=LinkageConfig)
    contracts: ContractsConfig = Field(default_factory=ContractsConfig)
    harness: HarnessConfig = Field(default_factory=HarnessConfig)
