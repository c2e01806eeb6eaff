"""selfaudit linkage command - resolve call sites of cataloged methods."""

from pathlib import Path
from typing import Any

import click

from selfaudit.cli.utils import echo_json, json_option, path_argument, run_phase
from selfaudit.core.progress import status, style_for
from selfaudit.scan.linkage import run_linkage


def linkage_summary(summary: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in summary.items() if k != "files_scanned"} | {"files_scanned": len(summary["files_scanned"])}


def report_linkage(summary: dict[str, Any]) -> None:
    referenced = summary["methods_with_references"]
    total = summary["total_methods"]
    status(
        f"Linkage: {referenced} referenced / {total} total ({summary['methods_without_references']} unreferenced)",
        style=style_for(referenced, total),
    )
    for key in summary["top_unreferenced"]:
        status(key, indent=4)


@click.command()
@path_argument
@json_option
@click.pass_context
def linkage_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Find references to every cataloged method and write linkage.json.

    Requires inventory.json from the inventory phase.
    """
    payload = run_phase(ctx, path, run_linkage)
    if as_json:
        echo_json(linkage_summary(payload["summary"]))
    else:
        report_linkage(payload["summary"])
