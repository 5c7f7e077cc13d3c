"""Tests for TransferService: export and per-document atomic import."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import networkx as nx
import pytest
from sqlalchemy import func, select

from faultpath.config.settings import FaultpathSettings
from faultpath.infrastructure.database.schema import connections, nodes
from faultpath.infrastructure.store import Store
from faultpath.services.graph import GraphService
from faultpath.services.issues import IssueService
from faultpath.services.result import ErrorCode
from faultpath.services.transfer import TransferService


def _doc(category: str, **overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "version": "1.0",
        "exported_at": "2025-01-01T00:00:00+00:00",
        "category": category,
        "nodes": [
            {"id": "q1", "node_type": "question", "text": "Is it on?"},
            {"id": "c1", "node_type": "conclusion", "text": "Check the plug"},
        ],
        "connections": [{"from_node_id": "q1", "to_node_id": "c1", "label": "No"}],
    }
    doc.update(overrides)
    return doc


def _row_count(store: Store) -> tuple[int, int]:
    with store.engine.connect() as conn:
        return (
            conn.execute(select(func.count()).select_from(nodes)).scalar_one(),
            conn.execute(select(func.count()).select_from(connections)).scalar_one(),
        )


def _shape(store: Store, category: str) -> nx.DiGraph:
    data = GraphService(store).get_graph(category).data
    texts = {n["id"]: (n["node_type"], n["text"]) for n in data["nodes"]}
    g = nx.DiGraph()
    for node_type, text in texts.values():
        g.add_node(text, node_type=node_type)
    for c in data["connections"]:
        g.add_edge(texts[c["from_node_id"]][1], texts[c["to_node_id"]][1], label=c["label"])
    return g


class TestExport:
    def test_document_shape(self, store: Store, printer) -> None:
        result = TransferService(store).export("printer")
        assert result.ok
        doc = result.data["document"]
        assert doc["version"] == "1.0"
        assert doc["category"] == "printer"
        assert len(doc["nodes"]) == 5
        assert len(doc["connections"]) == 4
        assert {"id", "node_type", "text", "semantic_id", "created_at"} <= set(doc["nodes"][0])

    def test_missing(self, store: Store) -> None:
        assert TransferService(store).export("nope").error.code == ErrorCode.NOT_FOUND

    def test_cross_category_edges_dropped(self, store: Store, make_issue) -> None:
        a = make_issue("printer")
        b = make_issue("scanner")
        GraphService(store).create_connection(a.jam, b.root, "Scanner too", 2)
        doc = TransferService(store).export("printer").data["document"]
        assert len(doc["connections"]) == 4

    def test_export_all_skips_inactive(self, store: Store, make_issue) -> None:
        make_issue("printer")
        make_issue("scanner")
        IssueService(store).set_issue_active("scanner", False)
        data = TransferService(store).export_all().data
        assert data["count"] == 1
        assert data["documents"][0]["category"] == "printer"


class TestRoundTrip:
    def test_isomorphic_with_fresh_ids(self, store: Store, printer, tmp_path: Path) -> None:
        doc = TransferService(store).export("printer").data["document"]

        other_root = tmp_path / "other"
        other = Store(FaultpathSettings.from_cli(data_root=other_root))
        try:
            result = TransferService(other).import_documents([doc])
            assert result.ok
            assert result.data["successes"][0] == {
                "index": 0,
                "category": "printer",
                "nodes": 5,
                "connections": 4,
            }
            imported = GraphService(other).get_graph("printer").data
            assert not {n["id"] for n in imported["nodes"]} & {n["id"] for n in doc["nodes"]}
            assert nx.is_isomorphic(
                _shape(store, "printer"),
                _shape(other, "printer"),
                node_match=lambda a, b: a == b,
                edge_match=lambda a, b: a == b,
            )
            root = other.queries.list_nodes()[0]
            assert root["semantic_id"] == "printer_start"
        finally:
            other.close()

    def test_traversable_after_import(self, store: Store) -> None:
        from faultpath.services.traversal import TraversalService

        TransferService(store).import_documents([_doc("power")])
        started = TraversalService(store).start("power")
        assert started.data["node"]["text"] == "Is it on?"


class TestImport:
    def test_one_existing_category(self, store: Store, printer) -> None:
        result = TransferService(store).import_documents([_doc("power"), _doc("printer")])
        assert not result.ok
        assert result.error.code == ErrorCode.IMPORT_PARTIAL
        assert len(result.data["successes"]) == 1
        assert len(result.data["errors"]) == 1
        error = result.data["errors"][0]
        assert error["category"] == "printer"
        assert error["code"] == "CONFLICT"
        assert error["index"] == 1

    def test_unsupported_version(self, store: Store) -> None:
        result = TransferService(store).import_documents([_doc("power", version="2.0")])
        error = result.data["errors"][0]
        assert error["code"] == "VALIDATION_FAILED"
        assert "2.0" in error["message"]
        assert _row_count(store) == (0, 0)

    def test_malformed(self, store: Store) -> None:
        result = TransferService(store).import_documents([{"category": "power"}, "garbage"])  # type: ignore[list-item]
        assert [e["index"] for e in result.data["errors"]] == [0, 1]
        assert result.data["errors"][0]["category"] == "power"

    @pytest.mark.parametrize(
        ("connections", "fragment"),
        [
            ([{"from_node_id": "q1", "to_node_id": "ghost", "label": "No"}], "unknown node"),
            ([{"from_node_id": "q1", "to_node_id": "q1", "label": "No"}], "itself"),
            ([{"from_node_id": "c1", "to_node_id": "q1", "label": "Retry"}], "conclusion"),
            ([{"from_node_id": "q1", "to_node_id": "c1", "label": "  "}], "empty label"),
        ],
    )
    def test_structural_faults_roll_back(
        self, store: Store, connections: list[dict[str, Any]], fragment: str
    ) -> None:
        result = TransferService(store).import_documents([_doc("power", connections=connections)])
        assert result.error.code == ErrorCode.IMPORT_PARTIAL
        assert fragment in result.data["errors"][0]["message"]
        assert _row_count(store) == (0, 0)

    def test_duplicate_node_ids(self, store: Store) -> None:
        doc = _doc("power")
        doc["nodes"].append({"id": "q1", "node_type": "question", "text": "Again?"})
        result = TransferService(store).import_documents([doc])
        assert "Duplicate" in result.data["errors"][0]["message"]

    def test_no_nodes(self, store: Store) -> None:
        result = TransferService(store).import_documents([_doc("power", nodes=[], connections=[])])
        assert "no nodes" in result.data["errors"][0]["message"]

    def test_cycle_rejected_when_disabled(self, acyclic_store: Store) -> None:
        doc = _doc(
            "loop",
            nodes=[
                {"id": "a", "node_type": "question", "text": "A?"},
                {"id": "b", "node_type": "question", "text": "B?"},
            ],
            connections=[
                {"from_node_id": "a", "to_node_id": "b", "label": "next"},
                {"from_node_id": "b", "to_node_id": "a", "label": "back"},
            ],
        )
        result = TransferService(acyclic_store).import_documents([doc])
        assert "cycle" in result.data["errors"][0]["message"]
        assert _row_count(acyclic_store) == (0, 0)

    def test_preserves_node_order_without_timestamps(self, store: Store) -> None:
        TransferService(store).import_documents([_doc("power")])
        rows = store.queries.list_nodes()
        assert [r["text"] for r in rows] == ["Is it on?", "Check the plug"]

    def test_all_succeed(self, store: Store) -> None:
        result = TransferService(store).import_documents([_doc("power"), _doc("network")])
        assert result.ok
        assert result.error is None
        assert result.data["errors"] == []
