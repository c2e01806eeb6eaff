"""selfaudit inventory command - catalog declared types."""

from pathlib import Path
from typing import Any

import click

from selfaudit.cli.utils import echo_json, json_option, path_argument, run_phase
from selfaudit.core.progress import pluralize, status
from selfaudit.scan.inventory import run_inventory


def report_inventory(summary: dict[str, Any]) -> None:
    status(
        f"Inventory: {pluralize(summary['classes'], 'class', 'classes')}, "
        f"{pluralize(summary['interfaces'], 'interface')}, {pluralize(summary['traits'], 'trait')}, "
        f"{pluralize(summary['methods'], 'public method')}, {pluralize(summary['rest_routes'], 'route')}, "
        f"{pluralize(summary['admin_pages'], 'admin page')}",
        style="success" if summary["classes"] else "warning",
    )


@click.command()
@path_argument
@json_option
@click.pass_context
def inventory_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Scan the source tree and write inventory.json.

    PATH is the project root (default: current directory).
    """
    payload = run_phase(ctx, path, run_inventory)
    if as_json:
        echo_json(payload["summary"])
    else:
        report_inventory(payload["summary"])
