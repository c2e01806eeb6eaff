"""selfaudit progress command - compute the completeness scorecard."""

from pathlib import Path
from typing import Any

import click

from selfaudit.cli.utils import echo_json, json_option, path_argument, run_phase
from selfaudit.core.progress import module_table, status, style_for
from selfaudit.scorecard.aggregator import run_progress


def report_progress(progress: dict[str, Any], report: dict[str, Any], *, verbose: bool) -> None:
    passed = sum(m["pass"] for m in progress["modules"])
    total = sum(m["total"] for m in progress["modules"])
    status(f"Progress: {progress['overall_pct']:.2f}% ({passed} passed / {total} total)", style=style_for(passed, total))
    module_table(report["modules"] if verbose else progress["modules"], verbose=verbose)
    if verbose:
        for key in report["unreferenced_methods"]:
            status(f"unreferenced: {key}", indent=2)
        for note in report["runtime"]["notes"]:
            status(note, style="warning", indent=2)


@click.command()
@path_argument
@json_option
@click.option("--verbose-report", is_flag=True, help="Show warnings, unreferenced methods and runtime notes")
@click.pass_context
def progress_command(ctx: click.Context, path: Path, as_json: bool, verbose_report: bool) -> None:
    """Combine all artifacts into progress.json and report.json."""
    progress, report = run_phase(ctx, path, run_progress)
    if as_json:
        echo_json(report if verbose_report else progress)
    else:
        report_progress(progress, report, verbose=verbose_report)
