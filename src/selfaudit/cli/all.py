"""selfaudit all command - run every phase in order."""

from pathlib import Path

import click

from selfaudit.cli.contracts import report_contracts
from selfaudit.cli.inventory import report_inventory
from selfaudit.cli.linkage import linkage_summary, report_linkage
from selfaudit.cli.progress import report_progress
from selfaudit.cli.runtime import report_runtime, runtime_summary
from selfaudit.cli.utils import echo_json, json_option, path_argument, phase_errors, project_config
from selfaudit.contracts.verifier import run_contracts
from selfaudit.harness.runner import run_runtime
from selfaudit.scan.inventory import run_inventory
from selfaudit.scan.linkage import run_linkage
from selfaudit.scorecard.aggregator import run_progress


@click.command()
@path_argument
@json_option
@click.pass_context
def all_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Run inventory, linkage, contracts, runtime and progress."""
    root = path.resolve()
    config = project_config(ctx, root)
    with phase_errors():
        inventory = run_inventory(root, config)
        if not as_json:
            report_inventory(inventory["summary"])
        linkage = run_linkage(root, config)
        if not as_json:
            report_linkage(linkage["summary"])
        contracts = run_contracts(root, config)
        if not as_json:
            report_contracts(contracts)
        runtime = run_runtime(root, config)
        if not as_json:
            report_runtime(runtime)
        progress, report = run_progress(root, config)

    if as_json:
        echo_json(
            {
                "inventory": inventory["summary"],
                "linkage": linkage_summary(linkage["summary"]),
                "contracts": contracts["summary"],
                "runtime": runtime_summary(runtime),
                "progress": progress,
            }
        )
    else:
        report_progress(progress, report, verbose=False)
