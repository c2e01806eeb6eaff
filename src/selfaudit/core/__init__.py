"""Core module exports."""

from selfaudit.core.errors import (
    ArtifactError,
    ConfigError,
    ErrorCode,
    InternalError,
    SelfAuditError,
)
from selfaudit.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from selfaudit.core.progress import status

__all__ = [
    # Errors
    "ArtifactError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "SelfAuditError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "status",
]
