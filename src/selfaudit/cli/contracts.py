"""selfaudit contracts command - verify required classes and routes."""

from pathlib import Path
from typing import Any

import click

from selfaudit.cli.utils import echo_json, json_option, path_argument, run_phase
from selfaudit.contracts.verifier import run_contracts
from selfaudit.core.progress import status, style_for


def report_contracts(payload: dict[str, Any]) -> None:
    summary = payload["summary"]
    status(
        f"Contracts: {summary['passed']} passed / {summary['total_checks']} total ({summary['failed']} failed)",
        style=style_for(summary["passed"], summary["total_checks"]),
    )
    for checks in payload["classes"].values():
        for check in checks:
            if check["status"] != "PASS":
                status(f"{check['class']} missing at {check['file']}", style="error", indent=2)
    for route in payload["routes"]:
        if route["status"] != "PASS":
            actual = route["details"]["actual_method"] or "not registered"
            status(f"{route['path']}: expected {route['details']['expected_method']}, got {actual}", style="error", indent=2)


@click.command()
@path_argument
@json_option
@click.pass_context
def contracts_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Check required classes and REST routes; write contracts.json."""
    payload = run_phase(ctx, path, run_contracts)
    if as_json:
        echo_json(payload["summary"])
    else:
        report_contracts(payload)
