"""CLI utilities."""

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

import click

from selfaudit.config.loader import load_config
from selfaudit.config.models import SelfAuditConfig
from selfaudit.core.errors import SelfAuditError
from selfaudit.core.logging import clear_run_id, configure_logging, set_run_id

T = TypeVar("T")

path_argument = click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
json_option = click.option("--json", "as_json", is_flag=True, help="Print the phase summary as JSON")


def project_config(ctx: click.Context, root: Path) -> SelfAuditConfig:
    """Load the project's config and route logging through it.

    ``-v`` on the group forces DEBUG regardless of the configured level.
    """
    try:
        config = load_config(root)
    except SelfAuditError as e:
        raise click.ClickException(str(e)) from e
    if ctx.find_root().obj and ctx.find_root().obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)
    return config


@contextmanager
def phase_errors() -> Iterator[None]:
    """Turn fatal audit errors into a click error (exit 1)."""
    set_run_id()
    try:
        yield
    except SelfAuditError as e:
        raise click.ClickException(str(e)) from e
    finally:
        clear_run_id()


def run_phase(ctx: click.Context, path: Path, phase: Callable[[Path, SelfAuditConfig], T]) -> T:
    root = path.resolve()
    config = project_config(ctx, root)
    with phase_errors():
        return phase(root, config)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))
