"""Structured logging for audit runs.

Every CLI invocation gets a short run id that is stamped on each event.
Console handlers write to stderr by default so ``--json`` output on stdout
stays parseable, and go quiet while a Rich table is on screen.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from selfaudit.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
_CONSOLES = ("stderr", "stdout")


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Set or generate the run correlation ID."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def clear_run_id() -> None:
    _run_id.set(None)


def _stamp_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if rid := get_run_id():
        event_dict.setdefault("run_id", rid)
    return event_dict


def _level(name: str | None, fallback: int = logging.WARNING) -> int:
    if not name:
        return fallback
    return _LEVELS.get(name.upper(), fallback)


class ConsoleSuppressingFilter(logging.Filter):
    """Drops console records while a Rich table is being rendered."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from selfaudit.core.progress import is_console_suppressed

        return not is_console_suppressed()


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "WARNING",
) -> None:
    """Route structlog through stdlib handlers, one handler per configured output.

    Without ``config`` a single stderr output is used at ``level``.
    """
    from selfaudit.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )

    root_level = _level(config.level)
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _stamp_run_id,  # type: ignore[list-item]
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for output in config.outputs:
        handler = _handler_for(output, pre_chain)
        handler.setLevel(_level(output.level, root_level))
        root.addHandler(handler)


def _handler_for(output: LogOutputConfig, pre_chain: list[structlog.types.Processor]) -> logging.Handler:
    handler: logging.Handler
    if output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    elif output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")

    is_console = output.destination in _CONSOLES
    if is_console:
        handler.addFilter(ConsoleSuppressingFilter())

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=is_console and sys.stderr.isatty(),
            pad_event_to=0,
            pad_level=False,
        )
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))
    return handler


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a lazy logger that picks up whatever configuration is active at call time.

    Module-level loggers are created at import, before the CLI configures
    logging, so nothing may be bound here.
    """
    if name:
        return structlog.get_logger(name, logger=name)  # type: ignore[no-any-return]
    return structlog.get_logger()  # type: ignore[no-any-return]
