"""Command: workspace initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from faultpath.commands._base import FpCommand
from faultpath.services.init import InitService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_INIT_EXAMPLES = """\
  faultpath init
  faultpath init /srv/troubleshooting
  faultpath init . --no-config"""


@click.command("init", cls=FpCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--no-config", is_flag=True, help="Do not write a faultpath.toml.")
@click.pass_obj
def init_cmd(app: AppContext, path: str, no_config: bool) -> None:
    """Create the database (and a starter config) under PATH."""
    app.emit(InitService.init_workspace(Path(path), write_config=not no_config))
