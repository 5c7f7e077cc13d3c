"""Subcommand modules for faultpath.

Provides register_commands() which uses deferred imports to keep
``faultpath --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all command groups and standalone commands on the root CLI group.

    6 groups (have subcommands) + 3 standalone commands.
    """
    # --- Groups ---
    from faultpath.commands.cache import cache
    from faultpath.commands.category import category
    from faultpath.commands.connection import connection
    from faultpath.commands.issue import issue
    from faultpath.commands.node import node
    from faultpath.commands.session import session

    cli.add_command(issue)
    cli.add_command(node)
    cli.add_command(connection)
    cli.add_command(session)
    cli.add_command(category)
    cli.add_command(cache)

    # --- Standalone commands ---
    from faultpath.commands.init_cmd import init_cmd
    from faultpath.commands.transfer import export_cmd, import_cmd

    cli.add_command(init_cmd)
    cli.add_command(export_cmd)
    cli.add_command(import_cmd)
