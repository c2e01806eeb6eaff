"""Config module exports."""

from selfaudit.config.loader import load_config
from selfaudit.config.models import (
    ContractsConfig,
    HarnessConfig,
    LinkageConfig,
    LoggingConfig,
    PathsConfig,
    ScanConfig,
    SelfAuditConfig,
)

__all__ = [
    "load_config",
    "ContractsConfig",
    "HarnessConfig",
    "LinkageConfig",
    "LoggingConfig",
    "PathsConfig",
    "ScanConfig",
    "SelfAuditConfig",
]
