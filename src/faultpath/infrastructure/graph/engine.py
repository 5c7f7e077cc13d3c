"""GraphEngine — lazy-built NetworkX graph of active nodes and connections.

Rebuilt from the database on first access after an invalidation; the Store
invalidates it whenever a transaction ends. Per-category analysis works on
a ``GraphSnapshot`` instead, so it can reuse the cached snapshot.
"""

from __future__ import annotations

from itertools import islice
from typing import TYPE_CHECKING

import networkx as nx

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from faultpath.domain.models import GraphSnapshot

type _Graph = nx.DiGraph

# simple_cycles is exponential on dense graphs; reports only need a sample.
MAX_REPORTED_CYCLES = 20


class GraphEngine:
    """Lazy-loading graph engine backed by the connections table."""

    def __init__(self, db: Engine) -> None:
        self._db = db
        self._graph: _Graph | None = None

    @property
    def graph(self) -> _Graph:
        """Return the graph, building from DB on first access."""
        if self._graph is None:
            self._graph = self._build_from_db()
        return self._graph

    def invalidate(self) -> None:
        """Clear the cached graph, forcing rebuild on next access."""
        self._graph = None

    def _build_from_db(self) -> _Graph:
        """Build a DiGraph from active nodes and connections.

        Loads all nodes first (so isolated nodes appear in the graph),
        then adds edges with their attributes.
        """
        from sqlalchemy import select

        from faultpath.infrastructure.database.schema import connections, nodes

        g: _Graph = nx.DiGraph()
        with self._db.connect() as conn:
            for row in conn.execute(
                select(nodes.c.id, nodes.c.category, nodes.c.node_type).where(
                    nodes.c.is_active == 1
                )
            ):
                g.add_node(row.id, category=row.category, node_type=row.node_type)

            for row in conn.execute(
                select(
                    connections.c.id,
                    connections.c.from_node_id,
                    connections.c.to_node_id,
                    connections.c.label,
                ).where(connections.c.is_active == 1)
            ):
                if row.from_node_id in g and row.to_node_id in g:
                    g.add_edge(row.from_node_id, row.to_node_id, id=row.id, label=row.label)
        return g


# ---------------------------------------------------------------------------
# Snapshot analysis
# ---------------------------------------------------------------------------


def snapshot_graph(snapshot: GraphSnapshot) -> _Graph:
    """Build a DiGraph restricted to one category's snapshot.

    Edges to nodes outside the category are kept as edges to bare nodes
    so reachability inside the category is not affected by them.
    """
    g: _Graph = nx.DiGraph()
    for node in snapshot.nodes:
        g.add_node(node.id, node_type=str(node.node_type), text=node.text)
    for conn in snapshot.connections:
        g.add_edge(conn.from_node_id, conn.to_node_id, id=conn.id, label=conn.label)
    return g


def find_cycles(g: _Graph, *, limit: int = MAX_REPORTED_CYCLES) -> list[list[str]]:
    """Return up to *limit* simple cycles as node-id lists."""
    return [list(cycle) for cycle in islice(nx.simple_cycles(g), limit)]


def unreachable_from(g: _Graph, root_id: str, node_ids: list[str]) -> list[str]:
    """Node ids from *node_ids* that cannot be reached from *root_id*."""
    if root_id not in g:
        return list(node_ids)
    reachable = nx.descendants(g, root_id) | {root_id}
    return [node_id for node_id in node_ids if node_id not in reachable]


def edge_closes_cycle(g: _Graph, from_node_id: str, to_node_id: str) -> bool:
    """Whether adding ``from -> to`` to *g* creates a directed cycle."""
    if from_node_id == to_node_id:
        return True
    if to_node_id not in g or from_node_id not in g:
        return False
    return nx.has_path(g, to_node_id, from_node_id)
