"""Command group: node CRUD."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from faultpath.commands._base import FpGroup
from faultpath.domain.models import NodeUpdate
from faultpath.domain.types import NodeType
from faultpath.infrastructure.repositories.query import NodeFilter
from faultpath.services.graph import GraphService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_NODE_EXAMPLES = """\
  faultpath node create printer question "Does the printer power on?"
  faultpath node create printer conclusion "Replace the power supply" --display Hardware
  faultpath node get 3f2a...
  faultpath node list --category printer --type question
  faultpath node update 3f2a... --text "Is the power LED lit?"
  faultpath node delete 3f2a..."""

_TYPE_CHOICE = click.Choice([t.value for t in NodeType], case_sensitive=False)


@click.group(cls=FpGroup, examples=_NODE_EXAMPLES)
@click.pass_obj
def node(app: AppContext) -> None:
    """Create, inspect, change and delete nodes."""


@node.command()
@click.argument("category")
@click.argument("node_type", type=_TYPE_CHOICE)
@click.argument("text")
@click.option("--semantic-id", default=None, help="Internal stable tag.")
@click.option("--display", "display_category", default=None, help="UI grouping label.")
@click.option("--x", "position_x", type=float, default=None, help="Layout X position.")
@click.option("--y", "position_y", type=float, default=None, help="Layout Y position.")
@click.pass_obj
def create(
    app: AppContext,
    category: str,
    node_type: str,
    text: str,
    semantic_id: str | None,
    display_category: str | None,
    position_x: float | None,
    position_y: float | None,
) -> None:
    """Create a question or conclusion node."""
    app.emit(
        GraphService(app.store).create_node(
            category,
            node_type,
            text,
            semantic_id=semantic_id,
            display_category=display_category,
            position_x=position_x,
            position_y=position_y,
        )
    )


@node.command()
@click.argument("node_id")
@click.option("--with-connections", is_flag=True, help="Include outgoing answers.")
@click.pass_obj
def get(app: AppContext, node_id: str, with_connections: bool) -> None:
    """Show one node."""
    svc = GraphService(app.store)
    app.emit(svc.get_node_with_connections(node_id) if with_connections else svc.get_node(node_id))


@node.command(name="list")
@click.option("--category", default=None, help="Filter by category.")
@click.option("--type", "node_type", type=_TYPE_CHOICE, default=None, help="Filter by node type.")
@click.option("--display", "display_category", default=None, help="Filter by display category.")
@click.option("--include-inactive", is_flag=True, help="Include deactivated nodes.")
@click.pass_obj
def list_cmd(
    app: AppContext,
    category: str | None,
    node_type: str | None,
    display_category: str | None,
    include_inactive: bool,
) -> None:
    """List nodes."""
    node_filter = NodeFilter(
        category=category,
        node_type=NodeType(node_type.lower()) if node_type else None,
        display_category=display_category,
        active_only=not include_inactive,
    )
    app.emit(GraphService(app.store).list_nodes(node_filter))


@node.command()
@click.argument("node_id")
@click.option("--text", default=None, help="New text.")
@click.option("--type", "node_type", type=_TYPE_CHOICE, default=None, help="New node type.")
@click.option("--semantic-id", default=None, help="New semantic id.")
@click.option("--display", "display_category", default=None, help="New display category.")
@click.option("--x", "position_x", type=float, default=None, help="New X position.")
@click.option("--y", "position_y", type=float, default=None, help="New Y position.")
@click.option("--active/--inactive", "is_active", default=None, help="Toggle activity.")
@click.pass_obj
def update(app: AppContext, node_id: str, **fields: Any) -> None:
    """Change fields of a node; omitted options stay as they are."""
    changes = NodeUpdate(**{k: v for k, v in fields.items() if v is not None})
    app.emit(GraphService(app.store).update_node(node_id, changes))


@node.command()
@click.argument("node_id")
@click.pass_obj
def delete(app: AppContext, node_id: str) -> None:
    """Delete a node and every connection touching it."""
    app.emit(GraphService(app.store).delete_node(node_id))
