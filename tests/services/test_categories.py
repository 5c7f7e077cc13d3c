"""Tests for CategoryService: display-category relabelling."""

from __future__ import annotations

from faultpath.infrastructure.store import Store
from faultpath.services.categories import CategoryService
from faultpath.services.graph import GraphService
from faultpath.services.result import ErrorCode


def _labelled(store: Store) -> None:
    graph = GraphService(store)
    graph.create_node("printer", "question", "Is it on?", display_category="Hardware")
    graph.create_node("printer", "conclusion", "Replace fuse", display_category="Hardware")
    graph.create_node("vpn", "question", "Can you ping?", display_category="Network")
    graph.create_node("vpn", "conclusion", "Restart router")


class TestListCategories:
    def test_counts_sorted(self, store: Store) -> None:
        _labelled(store)
        data = CategoryService(store).list_categories().data
        assert data["items"] == [
            {"name": "Hardware", "node_count": 2},
            {"name": "Network", "node_count": 1},
        ]


class TestRename:
    def test_rename(self, store: Store) -> None:
        _labelled(store)
        svc = CategoryService(store)
        result = svc.rename("Hardware", "Printers")
        assert result.ok
        assert result.data == {"old_name": "Hardware", "new_name": "Printers", "updated": 2}
        names = [i["name"] for i in svc.list_categories().data["items"]]
        assert names == ["Network", "Printers"]

    def test_idempotent(self, store: Store) -> None:
        _labelled(store)
        svc = CategoryService(store)
        svc.rename("Hardware", "Printers")
        again = svc.rename("Hardware", "Printers")
        assert again.ok
        assert again.data["updated"] == 0

    def test_same_name_is_noop(self, store: Store) -> None:
        _labelled(store)
        assert CategoryService(store).rename("Hardware", "Hardware").data["updated"] == 0

    def test_blank(self, store: Store) -> None:
        result = CategoryService(store).rename("Hardware", "  ")
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_graph_snapshot_refreshed(self, store: Store) -> None:
        _labelled(store)
        graph = GraphService(store)
        graph.get_graph("printer")
        CategoryService(store).rename("Hardware", "Printers")
        labels = {n["display_category"] for n in graph.get_graph("printer").data["nodes"]}
        assert labels == {"Printers"}


class TestDelete:
    def test_clears_label_keeps_nodes(self, store: Store) -> None:
        _labelled(store)
        result = CategoryService(store).delete("Network")
        assert result.data == {"name": "Network", "updated": 1}
        assert store.queries.count_category_nodes("vpn") == 2

    def test_blank(self, store: Store) -> None:
        assert CategoryService(store).delete("").error.code == ErrorCode.VALIDATION_FAILED
