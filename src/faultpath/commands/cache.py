"""Command group: in-process cache maintenance."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from faultpath.commands._base import FpGroup
from faultpath.services.caches import CacheService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_CACHE_EXAMPLES = """\
  faultpath cache stats
  faultpath cache cleanup
  faultpath cache clear --name tree"""


@click.group(cls=FpGroup, examples=_CACHE_EXAMPLES)
@click.pass_obj
def cache(app: AppContext) -> None:
    """Inspect and flush the graph, tree and aggregate caches."""


@cache.command()
@click.pass_obj
def stats(app: AppContext) -> None:
    """Show entry counts, hit rates and limits per cache."""
    app.emit(CacheService(app.store).stats())


@cache.command()
@click.pass_obj
def cleanup(app: AppContext) -> None:
    """Drop expired entries."""
    app.emit(CacheService(app.store).cleanup())


@cache.command()
@click.option("--name", default=None, help="Only this cache (graph, tree or aggregate).")
@click.pass_obj
def clear(app: AppContext, name: str | None) -> None:
    """Drop every entry."""
    app.emit(CacheService(app.store).clear(name))
