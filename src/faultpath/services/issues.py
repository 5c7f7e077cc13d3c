"""IssueService — category-level operations on whole troubleshooting graphs.

An issue is every node sharing one ``category`` key. Creating one seeds
its root question, tagged with the reserved ``<category>_start`` semantic
id; activation toggles every node and connection of the category at once.
"""

from __future__ import annotations

import copy
from typing import Any

from sqlalchemy import delete, insert, or_, select, update

from faultpath.domain.ids import new_id, normalize_category, validate_category
from faultpath.domain.models import Node
from faultpath.domain.types import NodeType
from faultpath.infrastructure.database.schema import connections, nodes
from faultpath.infrastructure.repositories.query import ConnectionFilter, NodeFilter
from faultpath.infrastructure.store import StoreTransaction
from faultpath.services._helpers import clean_text, now_iso
from faultpath.services.base import BaseService, storage_guard
from faultpath.services.graph import GraphService, category_error, inbound_categories
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import traced

_ISSUES_KEY = "issues"


class IssueService(BaseService):
    """List, create, (de)activate and delete whole issues."""

    @traced
    @storage_guard("list_issues")
    def list_issues(self) -> ServiceResult:
        """Every category with counts, activity flag and root question.

        Served from the aggregate cache; any graph write clears it.
        """
        cache = self._store.aggregate_cache
        items = cache.get(_ISSUES_KEY)
        if items is None:
            items = self._build_issue_list()
            cache.set(_ISSUES_KEY, items)
        items = copy.deepcopy(items)
        return ServiceResult(ok=True, op="list_issues", data={"count": len(items), "items": items})

    def _build_issue_list(self) -> list[dict[str, Any]]:
        graph = GraphService(self._store)
        items: list[dict[str, Any]] = []
        for summary in self._store.queries.category_summaries():
            category = summary["category"]
            snap = graph.snapshot(category)
            root = snap.root(graph.root_semantic_id(category)) if snap else None
            items.append(
                {
                    "category": category,
                    "display_category": summary["display_category"],
                    "root_node_id": root.id if root else None,
                    "root_question": root.text if root else None,
                    "is_active": bool(summary["active_count"]),
                    "node_count": int(summary["node_count"]),
                    "question_count": len(snap.questions()) if snap else 0,
                    "created_at": summary["created_at"],
                    "updated_at": summary["updated_at"],
                }
            )
        return items

    @traced
    @storage_guard("create_issue")
    def create_issue(
        self,
        category: str,
        root_question_text: str,
        *,
        display_category: str | None = None,
    ) -> ServiceResult:
        """Create a new category with its root question."""
        op = "create_issue"
        category = normalize_category(category or "")
        if not validate_category(category):
            return category_error(op, category)
        text = clean_text(root_question_text)
        if text is None:
            return failure(
                op,
                ErrorCode.VALIDATION_FAILED,
                "Root question text must not be empty",
                field="root_question_text",
            )

        graph = GraphService(self._store)
        with self._store.transaction() as txn:
            if self._store.queries.count_category_nodes(category, conn=txn.conn):
                return failure(
                    op,
                    ErrorCode.CONFLICT,
                    f"Category '{category}' already exists",
                    category=category,
                )
            now = now_iso()
            values: dict[str, Any] = {
                "id": new_id(),
                "category": category,
                "node_type": str(NodeType.QUESTION),
                "text": text,
                "semantic_id": graph.root_semantic_id(category),
                "display_category": clean_text(display_category),
                "position_x": None,
                "position_y": None,
                "is_active": 1,
                "created_at": now,
                "updated_at": now,
            }
            txn.conn.execute(insert(nodes).values(**values))
            txn.touch(category)

        root = Node.model_validate(values)
        return ServiceResult(
            ok=True,
            op=op,
            data={"category": category, "root_node": root.model_dump(mode="json")},
        )

    @traced
    @storage_guard("set_issue_active")
    def set_issue_active(self, category: str, active: bool, *, force: bool = False) -> ServiceResult:
        """Activate or deactivate every node and connection of *category*.

        Activation refuses a graph with unanswered questions unless *force*.
        """
        op = "set_issue_active"
        category = normalize_category(category or "")
        with self._store.transaction() as txn:
            node_rows = self._issue_nodes(txn, category)
            if not node_rows:
                return failure(op, ErrorCode.NOT_FOUND, f"No issue found for category '{category}'")
            updated = self._apply_active(op, txn, category, node_rows, active, force=force)
            if isinstance(updated, ServiceResult):
                return updated

        return ServiceResult(
            ok=True,
            op=op,
            data={"category": category, "is_active": active, "nodes_updated": updated},
        )

    @traced
    @storage_guard("update_issue")
    def update_issue(
        self,
        category: str,
        *,
        display_category: str | None = None,
        is_active: bool | None = None,
        force: bool = False,
    ) -> ServiceResult:
        """Relabel and/or (de)activate a whole issue in one transaction.

        An empty *display_category* clears the label. Omitted arguments
        leave the issue as it is.
        """
        op = "update_issue"
        category = normalize_category(category or "")
        if display_category is None and is_active is None:
            return failure(
                op, ErrorCode.VALIDATION_FAILED, "Nothing to update: pass a display category or activity"
            )

        fields_changed: list[str] = []
        with self._store.transaction() as txn:
            node_rows = self._issue_nodes(txn, category)
            if not node_rows:
                return failure(op, ErrorCode.NOT_FOUND, f"No issue found for category '{category}'")

            # Activity first: a refused activation must leave nothing written.
            if is_active is not None:
                updated = self._apply_active(op, txn, category, node_rows, is_active, force=force)
                if isinstance(updated, ServiceResult):
                    return updated
                fields_changed.append("is_active")
            if display_category is not None:
                txn.conn.execute(
                    update(nodes)
                    .where(nodes.c.category == category)
                    .values(display_category=clean_text(display_category), updated_at=now_iso())
                )
                txn.touch(category)
                fields_changed.append("display_category")

        issue = next(
            (item for item in self._build_issue_list() if item["category"] == category), None
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={"category": category, "issue": issue, "fields_changed": fields_changed},
        )

    def _issue_nodes(self, txn: StoreTransaction, category: str) -> list[dict[str, Any]]:
        return self._store.queries.list_nodes(
            NodeFilter(category=category, active_only=False), conn=txn.conn
        )

    def _apply_active(
        self,
        op: str,
        txn: StoreTransaction,
        category: str,
        node_rows: list[dict[str, Any]],
        active: bool,
        *,
        force: bool,
    ) -> int | ServiceResult:
        """Flip ``is_active`` on the issue's nodes and their outgoing connections."""
        node_ids = [row["id"] for row in node_rows]
        if active and not force:
            sources = {
                row["from_node_id"]
                for row in self._store.queries.list_connections(
                    ConnectionFilter(category=category, active_only=False), conn=txn.conn
                )
            }
            unanswered = [
                row["id"]
                for row in node_rows
                if row["node_type"] == NodeType.QUESTION and row["id"] not in sources
            ]
            if unanswered:
                return failure(
                    op,
                    ErrorCode.VALIDATION_FAILED,
                    f"Issue '{category}' has {len(unanswered)} question(s) without answers; "
                    "add connections or force activation",
                    incomplete_nodes=unanswered,
                )

        flag = 1 if active else 0
        now = now_iso()
        updated = txn.conn.execute(
            update(nodes).where(nodes.c.category == category).values(is_active=flag, updated_at=now)
        ).rowcount
        txn.conn.execute(
            update(connections)
            .where(connections.c.from_node_id.in_(node_ids))
            .values(is_active=flag, updated_at=now)
        )
        txn.touch(category, *inbound_categories(txn.conn, node_ids))
        return updated

    @traced
    @storage_guard("delete_issue")
    def delete_issue(self, category: str) -> ServiceResult:
        """Delete every node of *category* and all connections touching them."""
        op = "delete_issue"
        category = normalize_category(category or "")
        with self._store.transaction() as txn:
            node_ids = (
                txn.conn.execute(select(nodes.c.id).where(nodes.c.category == category))
                .scalars()
                .all()
            )
            if not node_ids:
                return failure(op, ErrorCode.NOT_FOUND, f"No issue found for category '{category}'")

            # Connections from other categories into this one go too.
            txn.touch(category, *inbound_categories(txn.conn, node_ids))

            removed_connections = txn.conn.execute(
                delete(connections).where(
                    or_(
                        connections.c.from_node_id.in_(node_ids),
                        connections.c.to_node_id.in_(node_ids),
                    )
                )
            ).rowcount
            removed_nodes = txn.conn.execute(
                delete(nodes).where(nodes.c.category == category)
            ).rowcount

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "category": category,
                "deleted_nodes": removed_nodes,
                "deleted_connections": removed_connections,
            },
        )
