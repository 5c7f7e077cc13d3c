"""TransferService — export categories as documents and import them back.

Export is a pure read from storage (never the caches). Import processes
each document independently: one transaction per document, committed only
when every node and connection of it was written. A rejected document
leaves no rows behind and is reported in ``errors``; the remaining
documents still import.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import networkx as nx
from pydantic import ValidationError
from sqlalchemy import insert

from faultpath.domain.documents import (
    CURRENT_VERSION,
    ExportConnection,
    ExportDocument,
    ExportNode,
    is_supported_version,
)
from faultpath.domain.ids import new_id, normalize_category, validate_category
from faultpath.domain.types import NodeType
from faultpath.infrastructure.database.schema import connections, nodes
from faultpath.infrastructure.graph.engine import find_cycles
from faultpath.infrastructure.store import StoreTransaction
from faultpath.services._helpers import clean_text, now_iso
from faultpath.services.base import BaseService, storage_guard
from faultpath.services.contracts import ImportResultData, dump_validated
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import trace_span, traced


class _DocumentRejected(Exception):
    """Raised inside an import transaction to roll the document back."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class TransferService(BaseService):
    """Bulk export and import of category graphs."""

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _document(self, category: str) -> ExportDocument | None:
        node_rows, conn_rows = self._store.queries.category_graph_rows(category)
        if not node_rows:
            return None
        members = {row["id"] for row in node_rows}
        return ExportDocument(
            version=CURRENT_VERSION,
            exported_at=now_iso(),
            category=category,
            nodes=[ExportNode.model_validate(row) for row in node_rows],
            # Edges into other categories cannot be resolved on import.
            connections=[
                ExportConnection.model_validate(row)
                for row in conn_rows
                if row["to_node_id"] in members
            ],
        )

    @traced
    @storage_guard("export")
    def export(self, category: str) -> ServiceResult:
        """Export the active graph of *category* as a versioned document."""
        category = normalize_category(category or "")
        doc = self._document(category)
        if doc is None:
            return failure("export", ErrorCode.NOT_FOUND, f"No active nodes in category '{category}'")
        return ServiceResult(ok=True, op="export", data={"document": doc.model_dump(mode="json")})

    @traced
    @storage_guard("export_all")
    def export_all(self) -> ServiceResult:
        """Export every category that has active nodes."""
        documents: list[dict[str, Any]] = []
        for summary in self._store.queries.category_summaries():
            if not summary["active_count"]:
                continue
            doc = self._document(summary["category"])
            if doc is not None:
                documents.append(doc.model_dump(mode="json"))
        return ServiceResult(
            ok=True, op="export_all", data={"count": len(documents), "documents": documents}
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    @traced
    @storage_guard("import_documents")
    def import_documents(self, documents: list[dict[str, Any] | ExportDocument]) -> ServiceResult:
        """Import each document atomically; collect per-document outcomes.

        The result is ok only when every document imported. Otherwise the
        error code is IMPORT_PARTIAL and ``data`` still lists both the
        successes and the errors.
        """
        op = "import_documents"
        successes: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []

        for index, raw in enumerate(documents):
            with trace_span(f"import[{index}]"):
                outcome = self._import_one(index, raw)
            (errors if "code" in outcome else successes).append(outcome)

        data = dump_validated(ImportResultData, {"successes": successes, "errors": errors})
        if errors:
            return failure(
                op,
                ErrorCode.IMPORT_PARTIAL,
                f"{len(errors)} of {len(documents)} document(s) failed to import",
                data=data,
                imported=len(successes),
                failed=len(errors),
            )
        return ServiceResult(ok=True, op=op, data=data)

    def _import_one(self, index: int, raw: dict[str, Any] | ExportDocument) -> dict[str, Any]:
        if isinstance(raw, ExportDocument):
            raw_category: Any = raw.category
        else:
            raw_category = raw.get("category") if isinstance(raw, dict) else None
        category = normalize_category(raw_category) if isinstance(raw_category, str) else None

        def rejected(code: ErrorCode, message: str) -> dict[str, Any]:
            return {"index": index, "category": category, "code": str(code), "message": message}

        try:
            doc = raw if isinstance(raw, ExportDocument) else ExportDocument.model_validate(raw)
        except ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(p) for p in first["loc"]) or "document"
            return rejected(ErrorCode.VALIDATION_FAILED, f"Malformed document at {where}: {first['msg']}")

        supported = self._store.settings.transfer.supported_versions
        if not is_supported_version(doc.version, frozenset(supported)):
            return rejected(
                ErrorCode.VALIDATION_FAILED,
                f"Unsupported document version {doc.version!r}; supported: {', '.join(supported)}",
            )
        category = normalize_category(doc.category)
        if not validate_category(category):
            return rejected(ErrorCode.VALIDATION_FAILED, f"Invalid category {doc.category!r}")
        if not doc.nodes:
            return rejected(ErrorCode.VALIDATION_FAILED, "Document contains no nodes")

        try:
            with self._store.transaction() as txn:
                counts = self._write_document(txn, category, doc)
        except _DocumentRejected as exc:
            return rejected(exc.code, exc.message)
        return {"index": index, "category": category, **counts}

    def _write_document(
        self, txn: StoreTransaction, category: str, doc: ExportDocument
    ) -> dict[str, int]:
        if self._store.queries.count_category_nodes(category, conn=txn.conn):
            raise _DocumentRejected(ErrorCode.CONFLICT, f"Category '{category}' already exists")

        # Keep the document's node order when it carries no timestamps.
        base = datetime.now(UTC)
        now = base.isoformat()
        id_map: dict[str, str] = {}
        kinds: dict[str, NodeType] = {}
        node_values: list[dict[str, Any]] = []
        for i, node in enumerate(doc.nodes):
            text = clean_text(node.text)
            if text is None:
                raise _DocumentRejected(ErrorCode.VALIDATION_FAILED, f"Node {node.id} has empty text")
            if node.id in id_map:
                raise _DocumentRejected(ErrorCode.VALIDATION_FAILED, f"Duplicate node id {node.id}")
            id_map[node.id] = new_id()
            kinds[node.id] = node.node_type
            node_values.append(
                {
                    "id": id_map[node.id],
                    "category": category,
                    "node_type": str(node.node_type),
                    "text": text,
                    "semantic_id": clean_text(node.semantic_id),
                    "display_category": clean_text(node.display_category),
                    "position_x": node.position_x,
                    "position_y": node.position_y,
                    "is_active": 1,
                    "created_at": node.created_at or (base + timedelta(microseconds=i)).isoformat(),
                    "updated_at": now,
                }
            )

        conn_values: list[dict[str, Any]] = []
        edges: list[tuple[str, str]] = []
        for i, conn in enumerate(doc.connections):
            for ref in (conn.from_node_id, conn.to_node_id):
                if ref not in id_map:
                    raise _DocumentRejected(
                        ErrorCode.VALIDATION_FAILED,
                        f"Connection {i} references unknown node {ref}",
                    )
            if conn.from_node_id == conn.to_node_id:
                raise _DocumentRejected(
                    ErrorCode.VALIDATION_FAILED, f"Connection {i} points a node at itself"
                )
            if kinds[conn.from_node_id] == NodeType.CONCLUSION:
                raise _DocumentRejected(
                    ErrorCode.VALIDATION_FAILED, f"Connection {i} starts at a conclusion node"
                )
            label = clean_text(conn.label)
            if label is None:
                raise _DocumentRejected(
                    ErrorCode.VALIDATION_FAILED, f"Connection {i} has an empty label"
                )
            edges.append((conn.from_node_id, conn.to_node_id))
            conn_values.append(
                {
                    "id": new_id(),
                    "from_node_id": id_map[conn.from_node_id],
                    "to_node_id": id_map[conn.to_node_id],
                    "label": label,
                    "order_index": conn.order_index,
                    "is_active": 1,
                    "created_at": (base + timedelta(microseconds=i)).isoformat(),
                    "updated_at": now,
                }
            )

        if not self._store.settings.graph.allow_cycles and find_cycles(nx.DiGraph(edges), limit=1):
            raise _DocumentRejected(ErrorCode.VALIDATION_FAILED, "Document graph contains a cycle")

        txn.conn.execute(insert(nodes), node_values)
        if conn_values:
            txn.conn.execute(insert(connections), conn_values)
        txn.touch(category)
        return {"nodes": len(node_values), "connections": len(conn_values)}
