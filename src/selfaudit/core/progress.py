"""User-facing console output for audit phases.

Every phase ends with one summary line; the scorecard phase can also print a
module table. Output goes to stderr through a shared Rich console so JSON
printed on stdout stays machine-readable.

Usage::

    from selfaudit.core.progress import status, module_table

    status("Inventory: 42 classes, 311 methods", style="success")
    status("Contracts: 20 passed / 24 total (4 failed)", style="warning")
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_STATUS_COLORS = {
    "PASS": "green",
    "WARN": "yellow",
    "FAIL": "red",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    """Check if console logging is currently suppressed."""
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Pause structlog console output while a multi-line block is printed."""
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


def _get_logger() -> BoundLogger:
    from selfaudit.core.logging import get_logger

    return get_logger("progress")


def get_console() -> Console:
    """Get the shared Rich console instance."""
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print a styled status message to stderr."""
    prefix = _STYLES.get(style, "")
    padding = " " * indent
    _console.print(f"{padding}{prefix}{message}", highlight=False)
    _get_logger().debug("status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return "1 file" / "3 files"."""
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count} {word}"


def style_for(passed: int, total: int) -> str:
    """Pick a status style for a passed/total pair."""
    if total == 0 or passed == total:
        return "success"
    if passed == 0:
        return "error"
    return "warning"


def colored_status(value: str) -> str:
    color = _STATUS_COLORS.get(value.upper())
    return f"[{color}]{value}[/{color}]" if color else value


def module_table(modules: Sequence[dict[str, Any]], *, verbose: bool = False) -> None:
    """Render per-module scores; verbose adds each module's warnings."""
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Module")
    table.add_column("Pass", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("%", justify="right")
    if verbose:
        table.add_column("Warnings")

    for module in modules:
        pct = f"{module['pct']:.2f}"
        row = [module["name"], str(module["pass"]), str(module["total"]), pct]
        if verbose:
            row.append("\n".join(module.get("warn", [])) or "-")
        table.add_row(*row)

    with suppress_console_logs():
        _console.print(table)
