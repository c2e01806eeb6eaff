"""selfaudit CLI - selfaudit command."""

import click

from selfaudit import __version__
from selfaudit.cli.all import all_command
from selfaudit.cli.contracts import contracts_command
from selfaudit.cli.inventory import inventory_command
from selfaudit.cli.linkage import linkage_command
from selfaudit.cli.progress import progress_command
from selfaudit.cli.runtime import runtime_command
from selfaudit.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="selfaudit")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """selfaudit - static and runtime completeness audit of a plugin source tree."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(inventory_command, name="inventory")
cli.add_command(linkage_command, name="linkage")
cli.add_command(contracts_command, name="contracts")
cli.add_command(runtime_command, name="runtime")
cli.add_command(progress_command, name="progress")
cli.add_command(all_command, name="all")


if __name__ == "__main__":
    cli()
