"""selfaudit runtime command - run the QA lifecycle against substitutes."""

from pathlib import Path
from typing import Any

import click

from selfaudit.cli.utils import echo_json, json_option, path_argument, run_phase
from selfaudit.core.progress import colored_status, status
from selfaudit.harness.runner import LIFECYCLE, run_runtime


def runtime_summary(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        **{name: payload[name].get("status") for name in LIFECYCLE},
        "http_requests": payload["http_requests"],
        "mail_events": payload["mail_events"],
        "missing_keys": payload["missing_keys"],
        "notes": payload["notes"],
    }


def report_runtime(payload: dict[str, Any]) -> None:
    statuses = [payload[name].get("status", "FAIL") for name in LIFECYCLE]
    passed = sum(1 for s in statuses if s in ("PASS", "WARN"))
    parts = " ".join(f"{name}={colored_status(s)}" for name, s in zip(LIFECYCLE, statuses, strict=True))
    style = "success" if passed == len(statuses) else "error"
    status(f"Runtime: {passed} passed / {len(statuses)} total  {parts}", style=style)
    for name, keys in payload["missing_keys"].items():
        status(f"{name} payload missing {', '.join(keys)}", style="warning", indent=2)
    for note in payload["notes"]:
        status(note, style="warning", indent=2)


@click.command()
@path_argument
@json_option
@click.pass_context
def runtime_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Run seed, run, anomalies and status; write runtime.json."""
    payload = run_phase(ctx, path, run_runtime)
    if as_json:
        echo_json(runtime_summary(payload))
    else:
        report_runtime(payload)
