"""Command group: display-category registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from faultpath.commands._base import FpGroup
from faultpath.services.categories import CategoryService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_CATEGORY_EXAMPLES = """\
  faultpath category list
  faultpath category rename Hardware "Printer hardware"
  faultpath category delete Legacy"""


@click.group(cls=FpGroup, examples=_CATEGORY_EXAMPLES)
@click.pass_obj
def category(app: AppContext) -> None:
    """List and relabel display categories."""


@category.command(name="list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List display categories with node counts."""
    app.emit(CategoryService(app.store).list_categories())


@category.command()
@click.argument("old_name")
@click.argument("new_name")
@click.pass_obj
def rename(app: AppContext, old_name: str, new_name: str) -> None:
    """Relabel every node in OLD_NAME as NEW_NAME."""
    app.emit(CategoryService(app.store).rename(old_name, new_name))


@category.command()
@click.argument("name")
@click.pass_obj
def delete(app: AppContext, name: str) -> None:
    """Clear NAME from every node; nodes themselves are kept."""
    app.emit(CategoryService(app.store).delete(name))
