"""Tests for GraphService: node and connection CRUD, graph reads."""

from __future__ import annotations

import pytest
from sqlalchemy import Delete
from sqlalchemy.engine import Connection as DbConnection
from sqlalchemy.exc import OperationalError

from faultpath.domain.models import ConnectionUpdate, NodeUpdate
from faultpath.infrastructure.database.schema import nodes
from faultpath.infrastructure.repositories.query import NodeFilter
from faultpath.infrastructure.store import Store
from faultpath.services.graph import GraphService
from faultpath.services.result import ErrorCode


class TestCreateNode:
    def test_question(self, store: Store) -> None:
        result = GraphService(store).create_node(
            "printer", "question", "  Is it on?  ", display_category="Hardware"
        )
        assert result.ok
        node = result.data["node"]
        assert node["text"] == "Is it on?"
        assert node["node_type"] == "question"
        assert node["display_category"] == "Hardware"
        assert node["is_active"] is True

    def test_node_type_case_insensitive(self, store: Store) -> None:
        result = GraphService(store).create_node("printer", "CONCLUSION", "Replace toner")
        assert result.data["node"]["node_type"] == "conclusion"

    def test_empty_text(self, store: Store) -> None:
        result = GraphService(store).create_node("printer", "question", "   ")
        assert not result.ok
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert result.error.detail["field"] == "text"

    def test_unknown_type(self, store: Store) -> None:
        result = GraphService(store).create_node("printer", "answer", "Yes")
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_bad_category(self, store: Store) -> None:
        result = GraphService(store).create_node("  ", "question", "Is it on?")
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert result.error.detail["field"] == "category"


class TestReadNodes:
    def test_get_missing(self, store: Store) -> None:
        result = GraphService(store).get_node("nope")
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_with_connections(self, store: Store, printer) -> None:
        result = GraphService(store).get_node_with_connections(printer.root)
        assert result.ok
        conns = result.data["connections"]
        assert [c["label"] for c in conns] == ["No", "Yes"]
        assert conns[1]["target"]["id"] == printer.jam

    def test_list_excludes_inactive(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.update_node(printer.technician, NodeUpdate(is_active=False))
        active = svc.list_nodes(NodeFilter(category="printer"))
        everything = svc.list_nodes(NodeFilter(category="printer", active_only=False))
        assert active.data["count"] == 4
        assert everything.data["count"] == 5


class TestUpdateNode:
    def test_partial_update(self, store: Store, printer) -> None:
        result = GraphService(store).update_node(printer.jam, NodeUpdate(text="Paper jam?"))
        assert result.ok
        assert result.data["node"]["text"] == "Paper jam?"
        assert result.data["node"]["category"] == "printer"
        assert result.data["fields_changed"] == ["text"]

    def test_retype_to_conclusion_warns(self, store: Store, printer) -> None:
        result = GraphService(store).update_node(printer.jam, NodeUpdate(node_type="conclusion"))
        assert result.ok
        assert result.warnings and "2 outgoing" in result.warnings[0]

    def test_missing(self, store: Store) -> None:
        result = GraphService(store).update_node("nope", NodeUpdate(text="x"))
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_blank_text(self, store: Store, printer) -> None:
        result = GraphService(store).update_node(printer.jam, NodeUpdate(text=" "))
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_deactivation_refreshes_linking_category(self, store: Store, make_issue) -> None:
        a = make_issue("printer")
        b = make_issue("scanner")
        svc = GraphService(store)
        svc.create_connection(a.jam, b.root, "Scanner too", 2)
        assert len(svc.get_graph("printer").data["connections"]) == 5

        svc.update_node(b.root, NodeUpdate(is_active=False))
        assert len(svc.get_graph("printer").data["connections"]) == 4

    def test_rename_refreshes_linking_tree(self, store: Store, make_issue) -> None:
        a = make_issue("printer")
        b = make_issue("scanner")
        svc = GraphService(store)
        svc.create_connection(a.jam, b.root, "Scanner too", 2)
        svc.get_tree("printer")

        svc.update_node(b.root, NodeUpdate(text="Does the scanner power on?"))
        external = svc.get_tree("printer").data["tree"]["children"][1]["children"][2]
        assert external["text"] == "Does the scanner power on?"


class TestDeleteNode:
    def test_cascades_connections(self, store: Store, printer) -> None:
        svc = GraphService(store)
        result = svc.delete_node(printer.jam)
        assert result.ok
        assert result.data["deleted_connections"] == 3

        graph = svc.get_graph("printer").data
        referencing = [
            c for c in graph["connections"] if printer.jam in (c["from_node_id"], c["to_node_id"])
        ]
        assert referencing == []
        assert len(graph["connections"]) == 1

    def test_missing(self, store: Store) -> None:
        assert GraphService(store).delete_node("nope").error.code == ErrorCode.NOT_FOUND

    def test_refreshes_other_category_snapshot(self, store: Store, make_issue) -> None:
        a = make_issue("printer")
        b = make_issue("scanner")
        svc = GraphService(store)
        svc.create_connection(a.jam, b.root, "Scanner too", 2)
        assert len(svc.get_graph("printer").data["connections"]) == 5

        svc.delete_node(b.root)
        assert len(svc.get_graph("printer").data["connections"]) == 4

    def test_failed_node_delete_keeps_connections(
        self, store: Store, printer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        execute = DbConnection.execute

        def locked_on_node_delete(conn, statement, *args, **kwargs):
            if isinstance(statement, Delete) and statement.table is nodes:
                raise OperationalError("DELETE", {}, Exception("database is locked"))
            return execute(conn, statement, *args, **kwargs)

        monkeypatch.setattr(DbConnection, "execute", locked_on_node_delete)
        result = GraphService(store).delete_node(printer.jam)

        assert result.error.code == ErrorCode.STORAGE_ERROR
        assert result.error.detail["retryable"] is True
        assert store.queries.get_node(printer.jam) is not None
        assert len(store.queries.incident_connections(printer.jam)) == 3
        assert len(GraphService(store).get_graph("printer").data["connections"]) == 4


class TestCreateConnection:
    def test_self_loop(self, store: Store, printer) -> None:
        result = GraphService(store).create_connection(printer.jam, printer.jam, "Self", 0)
        assert not result.ok
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_from_conclusion(self, store: Store, printer) -> None:
        result = GraphService(store).create_connection(printer.power, printer.jam, "Retry", 0)
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert result.error.detail["field"] == "from_node_id"

    def test_missing_endpoints(self, store: Store, printer) -> None:
        svc = GraphService(store)
        assert svc.create_connection("nope", printer.jam, "x").error.code == ErrorCode.NOT_FOUND
        assert svc.create_connection(printer.jam, "nope", "x").error.code == ErrorCode.NOT_FOUND

    def test_empty_label(self, store: Store, printer) -> None:
        result = GraphService(store).create_connection(printer.jam, printer.power, "  ")
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_cycles_allowed_by_default(self, store: Store, printer) -> None:
        result = GraphService(store).create_connection(printer.jam, printer.root, "Start over", 2)
        assert result.ok

    def test_cycles_rejected_when_disabled(self, acyclic_store: Store) -> None:
        svc = GraphService(acyclic_store)
        a = svc.create_node("loop", "question", "A?").data["node"]["id"]
        b = svc.create_node("loop", "question", "B?").data["node"]["id"]
        assert svc.create_connection(a, b, "next").ok
        result = svc.create_connection(b, a, "back")
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert "cycle" in result.error.message


class TestUpdateConnection:
    def test_relabel(self, store: Store, printer) -> None:
        result = GraphService(store).update_connection(
            printer.connections["root_no"], ConnectionUpdate(label="Nope", order_index=5)
        )
        assert result.ok
        assert result.data["connection"]["label"] == "Nope"
        assert result.data["fields_changed"] == ["label", "order_index"]

    def test_retarget_to_self(self, store: Store, printer) -> None:
        result = GraphService(store).update_connection(
            printer.connections["root_no"], ConnectionUpdate(to_node_id=printer.root)
        )
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_retarget_missing(self, store: Store, printer) -> None:
        result = GraphService(store).update_connection(
            printer.connections["root_no"], ConnectionUpdate(to_node_id="nope")
        )
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_retarget_cycle_disabled(self, acyclic_store: Store) -> None:
        svc = GraphService(acyclic_store)
        a = svc.create_node("loop", "question", "A?").data["node"]["id"]
        b = svc.create_node("loop", "question", "B?").data["node"]["id"]
        c = svc.create_node("loop", "conclusion", "Done").data["node"]["id"]
        svc.create_connection(a, b, "next")
        back = svc.create_connection(b, c, "finish").data["connection"]["id"]
        result = svc.update_connection(back, ConnectionUpdate(to_node_id=a))
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_delete(self, store: Store, printer) -> None:
        svc = GraphService(store)
        assert svc.delete_connection(printer.connections["jam_no"]).ok
        assert svc.get_connection(printer.connections["jam_no"]).error.code == ErrorCode.NOT_FOUND


class TestGetGraph:
    def test_graph(self, store: Store, printer) -> None:
        data = GraphService(store).get_graph("printer").data
        assert len(data["nodes"]) == 5
        assert len(data["connections"]) == 4

    def test_empty_category_not_found(self, store: Store) -> None:
        result = GraphService(store).get_graph("nothing-here")
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_served_from_cache(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.get_graph("printer")
        before = store.graph_cache.stats().hits
        svc.get_graph("printer")
        assert store.graph_cache.stats().hits == before + 1

    def test_write_visible_immediately(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.get_graph("printer")
        svc.create_node("printer", "conclusion", "Update the driver")
        assert len(svc.get_graph("printer").data["nodes"]) == 6


class TestGetTree:
    def test_nested_in_option_order(self, store: Store, printer) -> None:
        tree = GraphService(store).get_tree("printer").data["tree"]
        assert tree["id"] == printer.root
        assert [c["via"] for c in tree["children"]] == ["No", "Yes"]
        jam = tree["children"][1]
        assert [c["text"] for c in jam["children"]] == ["Clear the paper path", "Call a technician"]

    def test_cycle_rendered_as_reference(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.create_connection(printer.jam, printer.root, "Start over", 2)
        jam = svc.get_tree("printer").data["tree"]["children"][1]
        back = jam["children"][2]
        assert back["id"] == printer.root
        assert back["ref"] is True
        assert back["children"] == []

    def test_cached_and_invalidated(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.get_tree("printer")
        assert "printer" in store.tree_cache
        svc.update_node(printer.jam, NodeUpdate(text="Jammed?"))
        assert "printer" not in store.tree_cache
        jam = svc.get_tree("printer").data["tree"]["children"][1]
        assert jam["text"] == "Jammed?"

    def test_external_target(self, store: Store, make_issue) -> None:
        a = make_issue("printer")
        b = make_issue("scanner")
        svc = GraphService(store)
        svc.create_connection(a.jam, b.root, "Scanner too", 2)
        jam = svc.get_tree("printer").data["tree"]["children"][1]
        assert jam["children"][2]["external"] == "scanner"

    def test_cached_tree_not_shared(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.get_tree("printer").data["tree"]["children"].clear()
        assert len(svc.get_tree("printer").data["tree"]["children"]) == 2
        svc.get_tree("printer").data["tree"]["text"] = "Edited"
        assert svc.get_tree("printer").data["tree"]["text"] == "Does it power on?"


class TestIsComplete:
    def test_complete(self, store: Store, printer) -> None:
        data = GraphService(store).is_complete("printer").data
        assert data["complete"] is True
        assert data["incomplete_nodes"] == []
        assert data["unreachable_nodes"] == []
        assert data["cycles"] == []

    def test_unanswered_question(self, store: Store, printer) -> None:
        svc = GraphService(store)
        dangling = svc.create_node("printer", "question", "Is the tray empty?").data["node"]["id"]
        data = svc.is_complete("printer").data
        assert data["complete"] is False
        assert data["incomplete_nodes"] == [dangling]
        assert data["unreachable_nodes"] == [dangling]

    def test_reports_cycles(self, store: Store, printer) -> None:
        svc = GraphService(store)
        svc.create_connection(printer.jam, printer.root, "Start over", 2)
        data = svc.is_complete("printer").data
        assert data["complete"] is True
        assert len(data["cycles"]) == 1

    def test_missing_category(self, store: Store) -> None:
        assert GraphService(store).is_complete("nope").error.code == ErrorCode.NOT_FOUND
