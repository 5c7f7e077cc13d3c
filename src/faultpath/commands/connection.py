"""Command group: connection CRUD."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from faultpath.commands._base import FpGroup
from faultpath.domain.models import ConnectionUpdate
from faultpath.infrastructure.repositories.query import ConnectionFilter
from faultpath.services.graph import GraphService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_CONNECTION_EXAMPLES = """\
  faultpath connection create <from-id> <to-id> "No"
  faultpath connection create <from-id> <to-id> "Yes" --order 1
  faultpath connection list --from <node-id>
  faultpath connection update <id> --label "Not sure"
  faultpath connection delete <id>"""


@click.group(cls=FpGroup, examples=_CONNECTION_EXAMPLES)
@click.pass_obj
def connection(app: AppContext) -> None:
    """Create, inspect, change and delete answer connections."""


@connection.command()
@click.argument("from_node_id")
@click.argument("to_node_id")
@click.argument("label")
@click.option("--order", "order_index", type=int, default=0, help="Option position.")
@click.pass_obj
def create(
    app: AppContext, from_node_id: str, to_node_id: str, label: str, order_index: int
) -> None:
    """Connect two nodes with a labelled answer."""
    app.emit(GraphService(app.store).create_connection(from_node_id, to_node_id, label, order_index))


@connection.command()
@click.argument("connection_id")
@click.pass_obj
def get(app: AppContext, connection_id: str) -> None:
    """Show one connection."""
    app.emit(GraphService(app.store).get_connection(connection_id))


@connection.command(name="list")
@click.option("--from", "from_node_id", default=None, help="Filter by source node.")
@click.option("--to", "to_node_id", default=None, help="Filter by target node.")
@click.option("--category", default=None, help="Filter by source node category.")
@click.option("--include-inactive", is_flag=True, help="Include deactivated connections.")
@click.pass_obj
def list_cmd(
    app: AppContext,
    from_node_id: str | None,
    to_node_id: str | None,
    category: str | None,
    include_inactive: bool,
) -> None:
    """List connections in option order."""
    conn_filter = ConnectionFilter(
        from_node_id=from_node_id,
        to_node_id=to_node_id,
        category=category,
        active_only=not include_inactive,
    )
    app.emit(GraphService(app.store).list_connections(conn_filter))


@connection.command()
@click.argument("connection_id")
@click.option("--to", "to_node_id", default=None, help="New target node.")
@click.option("--label", default=None, help="New label.")
@click.option("--order", "order_index", type=int, default=None, help="New option position.")
@click.option("--active/--inactive", "is_active", default=None, help="Toggle activity.")
@click.pass_obj
def update(app: AppContext, connection_id: str, **fields: Any) -> None:
    """Change fields of a connection; omitted options stay as they are."""
    changes = ConnectionUpdate(**{k: v for k, v in fields.items() if v is not None})
    app.emit(GraphService(app.store).update_connection(connection_id, changes))


@connection.command()
@click.argument("connection_id")
@click.pass_obj
def delete(app: AppContext, connection_id: str) -> None:
    """Delete a connection."""
    app.emit(GraphService(app.store).delete_connection(connection_id))
