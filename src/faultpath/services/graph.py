"""GraphService — node and connection CRUD plus per-category graph reads.

Writes run inside ``Store.transaction()`` and record the categories they
touch, so cached snapshots and trees are dropped before the call returns.
Reads of a whole category go through the graph cache via :meth:`snapshot`.

Invariants enforced here rather than by the database:

- a connection never starts at a conclusion node;
- deleting a node first deletes every connection touching it;
- with ``graph.allow_cycles`` off, no write may close a directed cycle.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Collection
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, or_, select, update

from faultpath.domain.ids import new_id, normalize_category, root_semantic_id, validate_category
from faultpath.domain.models import (
    Connection,
    ConnectionUpdate,
    GraphSnapshot,
    Node,
    NodeUpdate,
)
from faultpath.domain.types import NodeType, parse_node_type
from faultpath.infrastructure.database.schema import connections, nodes
from faultpath.infrastructure.graph.engine import (
    edge_closes_cycle,
    find_cycles,
    snapshot_graph,
    unreachable_from,
)
from faultpath.infrastructure.repositories.query import ConnectionFilter, NodeFilter
from faultpath.services._helpers import clean_text, now_iso
from faultpath.services.base import BaseService, storage_guard
from faultpath.services.contracts import CompletenessData, dump_validated
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from sqlalchemy import Connection as DbConnection

CATEGORY_RULE = "letters, digits, spaces and . - / _, starting with a letter or digit"


def category_error(op: str, category: str) -> ServiceResult:
    return failure(
        op,
        ErrorCode.VALIDATION_FAILED,
        f"Invalid category {category!r}: use 1-100 characters ({CATEGORY_RULE})",
        field="category",
    )


def inbound_categories(conn: DbConnection, node_ids: Collection[str]) -> list[str]:
    """Categories holding a connection into any of *node_ids*."""
    return list(
        conn.execute(
            select(nodes.c.category)
            .join(connections, connections.c.from_node_id == nodes.c.id)
            .where(connections.c.to_node_id.in_(node_ids))
            .distinct()
        ).scalars()
    )


def _node_dump(node: Node) -> dict[str, Any]:
    return node.model_dump(mode="json")


def _conn_dump(conn: Connection) -> dict[str, Any]:
    return conn.model_dump(mode="json")


class GraphService(BaseService):
    """Handles nodes, connections and category-level graph reads."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @property
    def _allow_cycles(self) -> bool:
        return self._store.settings.graph.allow_cycles

    @property
    def root_semantic_suffix(self) -> str:
        return self._store.settings.graph.root_suffix

    def root_semantic_id(self, category: str) -> str:
        return root_semantic_id(category, self.root_semantic_suffix)

    def _closes_cycle(
        self,
        from_node_id: str,
        to_node_id: str,
        *,
        replacing: tuple[str, str] | None = None,
    ) -> bool:
        """Whether ``from -> to`` would close a cycle in the committed graph."""
        g = self._store.graph.graph
        if replacing is not None and g.has_edge(*replacing):
            g = g.copy()
            g.remove_edge(*replacing)
        return edge_closes_cycle(g, from_node_id, to_node_id)

    def snapshot(self, category: str) -> GraphSnapshot | None:
        """Active nodes and connections of *category*, via the graph cache.

        Returns None for a category without active nodes; absent
        categories are never cached.
        """
        cache = self._store.graph_cache
        cached = cache.get(category)
        if cached is not None:
            return cached

        with trace_span("load_snapshot") as span:
            node_rows, conn_rows = self._store.queries.category_graph_rows(category)
            if span:
                span.annotate("nodes", len(node_rows))
        if not node_rows:
            return None

        snap = GraphSnapshot(
            category=category,
            nodes=[Node.model_validate(row) for row in node_rows],
            connections=[Connection.model_validate(row) for row in conn_rows],
        )
        cache.set(category, snap)
        return snap

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @traced
    @storage_guard("create_node")
    def create_node(
        self,
        category: str,
        node_type: NodeType | str,
        text: str,
        *,
        semantic_id: str | None = None,
        display_category: str | None = None,
        position_x: float | None = None,
        position_y: float | None = None,
    ) -> ServiceResult:
        """Create a question or conclusion node in *category*."""
        op = "create_node"
        category = normalize_category(category or "")
        if not validate_category(category):
            return category_error(op, category)

        body = clean_text(text)
        if body is None:
            return failure(op, ErrorCode.VALIDATION_FAILED, "Node text must not be empty", field="text")

        kind = parse_node_type(str(node_type))
        if kind is None:
            return failure(
                op,
                ErrorCode.VALIDATION_FAILED,
                f"Unknown node type {node_type!r}; expected 'question' or 'conclusion'",
                field="node_type",
            )

        now = now_iso()
        values: dict[str, Any] = {
            "id": new_id(),
            "category": category,
            "node_type": str(kind),
            "text": body,
            "semantic_id": clean_text(semantic_id),
            "display_category": clean_text(display_category),
            "position_x": position_x,
            "position_y": position_y,
            "is_active": 1,
            "created_at": now,
            "updated_at": now,
        }
        with self._store.transaction() as txn:
            txn.conn.execute(insert(nodes).values(**values))
            txn.touch(category)

        return ServiceResult(ok=True, op=op, data={"node": _node_dump(Node.model_validate(values))})

    @traced
    @storage_guard("get_node")
    def get_node(self, node_id: str) -> ServiceResult:
        row = self._store.queries.get_node(node_id)
        if row is None:
            return failure("get_node", ErrorCode.NOT_FOUND, f"No node found with ID: {node_id}")
        return ServiceResult(ok=True, op="get_node", data={"node": _node_dump(Node.model_validate(row))})

    @traced
    @storage_guard("list_nodes")
    def list_nodes(self, node_filter: NodeFilter | None = None) -> ServiceResult:
        rows = self._store.queries.list_nodes(node_filter)
        items = [_node_dump(Node.model_validate(row)) for row in rows]
        return ServiceResult(ok=True, op="list_nodes", data={"count": len(items), "items": items})

    @traced
    @storage_guard("get_node_with_connections")
    def get_node_with_connections(self, node_id: str) -> ServiceResult:
        """A node plus its active outgoing connections, each with its target node."""
        op = "get_node_with_connections"
        queries = self._store.queries
        row = queries.get_node(node_id)
        if row is None:
            return failure(op, ErrorCode.NOT_FOUND, f"No node found with ID: {node_id}")

        items: list[dict[str, Any]] = []
        for conn_row in queries.list_connections(ConnectionFilter(from_node_id=node_id)):
            target = queries.get_node(conn_row["to_node_id"])
            items.append(
                {
                    **_conn_dump(Connection.model_validate(conn_row)),
                    "target": _node_dump(Node.model_validate(target)) if target else None,
                }
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={"node": _node_dump(Node.model_validate(row)), "connections": items},
        )

    @traced
    @storage_guard("update_node")
    def update_node(self, node_id: str, changes: NodeUpdate) -> ServiceResult:
        """Merge explicitly-set fields of *changes* onto the node."""
        op = "update_node"
        warnings: list[str] = []
        values = changes.changes()

        if "text" in values:
            body = clean_text(values["text"])
            if body is None:
                return failure(
                    op, ErrorCode.VALIDATION_FAILED, "Node text must not be empty", field="text"
                )
            values["text"] = body
        for key in ("semantic_id", "display_category"):
            if key in values:
                values[key] = clean_text(values[key])
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0

        with self._store.transaction() as txn:
            row = self._store.queries.get_node(node_id, conn=txn.conn)
            if row is None:
                return failure(op, ErrorCode.NOT_FOUND, f"No node found with ID: {node_id}")

            if (
                values.get("node_type") == NodeType.CONCLUSION
                and row["node_type"] != NodeType.CONCLUSION
            ):
                outgoing = self._store.queries.list_connections(
                    ConnectionFilter(from_node_id=node_id), conn=txn.conn
                )
                if outgoing:
                    warnings.append(
                        f"Node is now a conclusion; its {len(outgoing)} outgoing "
                        "connection(s) are ignored during traversal"
                    )

            if values:
                values["updated_at"] = now_iso()
                txn.conn.execute(update(nodes).where(nodes.c.id == node_id).values(**values))
                # Other categories may cache edges into this node.
                txn.touch(row["category"], *inbound_categories(txn.conn, [node_id]))
            merged = {**row, **values}

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "node": _node_dump(Node.model_validate(merged)),
                "fields_changed": sorted(k for k in values if k != "updated_at"),
            },
            warnings=warnings,
        )

    @traced
    @storage_guard("delete_node")
    def delete_node(self, node_id: str) -> ServiceResult:
        """Delete a node and every connection where it is source or target.

        Runs as one transaction: either all rows go or none do.
        """
        op = "delete_node"
        queries = self._store.queries
        with self._store.transaction() as txn:
            row = queries.get_node(node_id, conn=txn.conn)
            if row is None:
                return failure(op, ErrorCode.NOT_FOUND, f"No node found with ID: {node_id}")

            incident = queries.incident_connections(node_id, conn=txn.conn)
            neighbour_ids = {c["from_node_id"] for c in incident} | {c["to_node_id"] for c in incident}
            neighbour_ids.discard(node_id)
            if neighbour_ids:
                affected = txn.conn.execute(
                    select(nodes.c.category).where(nodes.c.id.in_(neighbour_ids)).distinct()
                ).scalars()
                txn.touch(*affected)

            removed = txn.conn.execute(
                delete(connections).where(
                    or_(connections.c.from_node_id == node_id, connections.c.to_node_id == node_id)
                )
            ).rowcount
            txn.conn.execute(delete(nodes).where(nodes.c.id == node_id))
            txn.touch(row["category"])

        return ServiceResult(
            ok=True,
            op=op,
            data={"id": node_id, "category": row["category"], "deleted_connections": removed},
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @traced
    @storage_guard("create_connection")
    def create_connection(
        self,
        from_node_id: str,
        to_node_id: str,
        label: str,
        order_index: int = 0,
    ) -> ServiceResult:
        """Create a labelled answer edge ``from_node_id -> to_node_id``."""
        op = "create_connection"
        text = clean_text(label)
        if text is None:
            return failure(
                op, ErrorCode.VALIDATION_FAILED, "Connection label must not be empty", field="label"
            )
        if from_node_id == to_node_id:
            return failure(
                op,
                ErrorCode.VALIDATION_FAILED,
                "A connection cannot point a node at itself",
                field="to_node_id",
            )

        queries = self._store.queries
        with self._store.transaction() as txn:
            source = queries.get_node(from_node_id, conn=txn.conn)
            if source is None:
                return failure(op, ErrorCode.NOT_FOUND, f"Source node not found: {from_node_id}")
            target = queries.get_node(to_node_id, conn=txn.conn)
            if target is None:
                return failure(op, ErrorCode.NOT_FOUND, f"Target node not found: {to_node_id}")
            if source["node_type"] == NodeType.CONCLUSION:
                return failure(
                    op,
                    ErrorCode.VALIDATION_FAILED,
                    "Conclusion nodes are terminal and cannot have outgoing connections",
                    field="from_node_id",
                )
            if not self._allow_cycles and self._closes_cycle(from_node_id, to_node_id):
                return failure(
                    op,
                    ErrorCode.VALIDATION_FAILED,
                    "Connection would create a cycle and cycles are disabled",
                    field="to_node_id",
                )

            now = now_iso()
            values: dict[str, Any] = {
                "id": new_id(),
                "from_node_id": from_node_id,
                "to_node_id": to_node_id,
                "label": text,
                "order_index": order_index,
                "is_active": 1,
                "created_at": now,
                "updated_at": now,
            }
            txn.conn.execute(insert(connections).values(**values))
            txn.touch(source["category"], target["category"])

        return ServiceResult(
            ok=True, op=op, data={"connection": _conn_dump(Connection.model_validate(values))}
        )

    @traced
    @storage_guard("get_connection")
    def get_connection(self, connection_id: str) -> ServiceResult:
        row = self._store.queries.get_connection(connection_id)
        if row is None:
            return failure(
                "get_connection", ErrorCode.NOT_FOUND, f"No connection found with ID: {connection_id}"
            )
        return ServiceResult(
            ok=True,
            op="get_connection",
            data={"connection": _conn_dump(Connection.model_validate(row))},
        )

    @traced
    @storage_guard("list_connections")
    def list_connections(self, connection_filter: ConnectionFilter | None = None) -> ServiceResult:
        rows = self._store.queries.list_connections(connection_filter)
        items = [_conn_dump(Connection.model_validate(row)) for row in rows]
        return ServiceResult(
            ok=True, op="list_connections", data={"count": len(items), "items": items}
        )

    @traced
    @storage_guard("update_connection")
    def update_connection(self, connection_id: str, changes: ConnectionUpdate) -> ServiceResult:
        """Merge explicitly-set fields onto the connection, re-validating a new target."""
        op = "update_connection"
        values = changes.changes()
        if "label" in values:
            text = clean_text(values["label"])
            if text is None:
                return failure(
                    op, ErrorCode.VALIDATION_FAILED, "Connection label must not be empty", field="label"
                )
            values["label"] = text
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0

        queries = self._store.queries
        with self._store.transaction() as txn:
            row = queries.get_connection(connection_id, conn=txn.conn)
            if row is None:
                return failure(
                    op, ErrorCode.NOT_FOUND, f"No connection found with ID: {connection_id}"
                )

            touched_ids = {row["from_node_id"], row["to_node_id"]}
            new_target = values.get("to_node_id")
            if new_target is not None and new_target != row["to_node_id"]:
                if new_target == row["from_node_id"]:
                    return failure(
                        op,
                        ErrorCode.VALIDATION_FAILED,
                        "A connection cannot point a node at itself",
                        field="to_node_id",
                    )
                if queries.get_node(new_target, conn=txn.conn) is None:
                    return failure(op, ErrorCode.NOT_FOUND, f"Target node not found: {new_target}")
                if not self._allow_cycles and self._closes_cycle(
                    row["from_node_id"],
                    new_target,
                    replacing=(row["from_node_id"], row["to_node_id"]),
                ):
                    return failure(
                        op,
                        ErrorCode.VALIDATION_FAILED,
                        "Connection would create a cycle and cycles are disabled",
                        field="to_node_id",
                    )
                touched_ids.add(new_target)

            if values:
                values["updated_at"] = now_iso()
                txn.conn.execute(
                    update(connections).where(connections.c.id == connection_id).values(**values)
                )
                categories = txn.conn.execute(
                    select(nodes.c.category).where(nodes.c.id.in_(touched_ids)).distinct()
                ).scalars()
                txn.touch(*categories)
            merged = {**row, **values}

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "connection": _conn_dump(Connection.model_validate(merged)),
                "fields_changed": sorted(k for k in values if k != "updated_at"),
            },
        )

    @traced
    @storage_guard("delete_connection")
    def delete_connection(self, connection_id: str) -> ServiceResult:
        op = "delete_connection"
        queries = self._store.queries
        with self._store.transaction() as txn:
            row = queries.get_connection(connection_id, conn=txn.conn)
            if row is None:
                return failure(
                    op, ErrorCode.NOT_FOUND, f"No connection found with ID: {connection_id}"
                )
            categories = txn.conn.execute(
                select(nodes.c.category)
                .where(nodes.c.id.in_([row["from_node_id"], row["to_node_id"]]))
                .distinct()
            ).scalars()
            txn.touch(*categories)
            txn.conn.execute(delete(connections).where(connections.c.id == connection_id))

        return ServiceResult(ok=True, op=op, data={"id": connection_id})

    # ------------------------------------------------------------------
    # Category-level reads
    # ------------------------------------------------------------------

    def _external_node(self, node_id: str) -> Node | None:
        row = self._store.queries.get_node(node_id)
        return Node.model_validate(row) if row is not None else None

    def _missing_category(self, op: str, category: str) -> ServiceResult:
        return failure(op, ErrorCode.NOT_FOUND, f"No active nodes in category '{category}'")

    @traced
    @storage_guard("get_graph")
    def get_graph(self, category: str) -> ServiceResult:
        """All active nodes and connections of *category*.

        A category with no active nodes is NOT_FOUND, never an empty graph.
        """
        op = "get_graph"
        category = normalize_category(category or "")
        snap = self.snapshot(category)
        if snap is None:
            return self._missing_category(op, category)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "category": snap.category,
                "nodes": [_node_dump(n) for n in snap.nodes],
                "connections": [_conn_dump(c) for c in snap.connections],
            },
        )

    @traced
    @storage_guard("get_tree")
    def get_tree(self, category: str) -> ServiceResult:
        """Nested rendering of *category* from its root question.

        Depth-first in option order. A node reached a second time is
        rendered as a reference (``"ref": true``) without children, so
        shared subtrees and cycles appear once.
        """
        op = "get_tree"
        category = normalize_category(category or "")
        cached = self._store.tree_cache.get(category)
        if cached is not None:
            return ServiceResult(ok=True, op=op, data=copy.deepcopy(cached))

        snap = self.snapshot(category)
        if snap is None:
            return self._missing_category(op, category)
        root = snap.root(self.root_semantic_id(category))
        if root is None:
            return failure(op, ErrorCode.NOT_FOUND, f"Category '{category}' has no root question")

        data = {
            "category": category,
            "root_node_id": root.id,
            "tree": _render_tree(snap, root, self._external_node),
        }
        self._store.tree_cache.set(category, data)
        return ServiceResult(ok=True, op=op, data=copy.deepcopy(data))

    @traced
    @storage_guard("is_complete")
    def is_complete(self, category: str) -> ServiceResult:
        """Completeness report for *category*.

        Complete iff a root question exists and every active question has
        at least one active outgoing connection. Unreachable nodes and
        cycles are reported alongside but do not affect the verdict.
        """
        op = "is_complete"
        category = normalize_category(category or "")
        snap = self.snapshot(category)
        if snap is None:
            return self._missing_category(op, category)

        root = snap.root(self.root_semantic_id(category))
        sources = {c.from_node_id for c in snap.connections}
        incomplete = [n.id for n in snap.questions() if n.id not in sources]

        with trace_span("analyse_graph"):
            g = snapshot_graph(snap)
            node_ids = [n.id for n in snap.nodes]
            unreachable = unreachable_from(g, root.id, node_ids) if root else node_ids
            cycles = find_cycles(g)

        data = dump_validated(
            CompletenessData,
            {
                "category": category,
                "complete": root is not None and not incomplete,
                "root_node_id": root.id if root else None,
                "incomplete_nodes": incomplete,
                "unreachable_nodes": unreachable,
                "cycles": cycles,
            },
        )
        return ServiceResult(ok=True, op=op, data=data)


def _render_tree(
    snap: GraphSnapshot,
    root: Node,
    external: Callable[[str], Node | None],
) -> dict[str, Any]:
    """Iterative depth-first rendering; avoids recursion limits on long chains.

    Targets outside the category are rendered as leaves marked ``external``.
    """

    def render(node: Node, via: Connection | None) -> dict[str, Any]:
        return {
            "id": node.id,
            "node_type": str(node.node_type),
            "text": node.text,
            "via": via.label if via else None,
            "connection_id": via.id if via else None,
            "children": [],
        }

    tree = render(root, None)
    seen: set[str] = {root.id}
    stack: list[tuple[Node, dict[str, Any]]] = [(root, tree)]
    while stack:
        node, rendered = stack.pop()
        if node.is_conclusion:
            continue
        pending: list[tuple[Node, dict[str, Any]]] = []
        for conn in snap.outgoing(node.id):
            target = snap.node(conn.to_node_id)
            if target is None:
                outside = external(conn.to_node_id)
                if outside is not None:
                    child = render(outside, conn)
                    child["external"] = outside.category
                    rendered["children"].append(child)
                continue
            child = render(target, conn)
            rendered["children"].append(child)
            if target.id in seen:
                child["ref"] = True
                continue
            seen.add(target.id)
            pending.append((target, child))
        stack.extend(reversed(pending))
    return tree
