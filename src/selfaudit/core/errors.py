"""selfaudit error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 4xxx: Artifact (prior-phase JSON missing or malformed)
- 9xxx: Internal

Only artifact errors are fatal to a phase. Source files that cannot be read,
call targets that cannot be resolved and contract mismatches are absorbed into
the structured reports instead of being raised.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Artifact (4xxx)
    ARTIFACT_MISSING = 4001
    ARTIFACT_MALFORMED = 4002
    ARTIFACT_EMPTY = 4003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class SelfAuditError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'ARTIFACT_MISSING')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(SelfAuditError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ArtifactError(SelfAuditError):
    """A prior-phase artifact could not be used. Fatal for the current phase."""

    @classmethod
    def missing(cls, path: str, phase: str) -> "ArtifactError":
        return cls(
            code=ErrorCode.ARTIFACT_MISSING,
            message=f"Required artifact missing: {path}. Run the '{phase}' phase first.",
            details={"path": path, "phase": phase},
        )

    @classmethod
    def malformed(cls, path: str, reason: str) -> "ArtifactError":
        return cls(
            code=ErrorCode.ARTIFACT_MALFORMED,
            message=f"Artifact at {path} is invalid: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def empty(cls, path: str, what: str) -> "ArtifactError":
        return cls(
            code=ErrorCode.ARTIFACT_EMPTY,
            message=f"No {what} discovered in {path}",
            details={"path": path, "what": what},
        )


class InternalError(SelfAuditError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
