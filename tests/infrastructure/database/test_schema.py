"""Tests for database schema definitions."""

import pytest
from sqlalchemy import create_engine, insert, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from faultpath.infrastructure.database.schema import connections, metadata, nodes


def _in_memory_engine() -> Engine:
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:")
    metadata.create_all(engine)
    return engine


def _node(node_id: str) -> dict[str, object]:
    return {
        "id": node_id,
        "category": "printer",
        "node_type": "question",
        "text": "t",
        "created_at": "x",
        "updated_at": "x",
    }


class TestSchemaCreation:
    def test_all_tables_created(self) -> None:
        inspector = inspect(_in_memory_engine())
        assert set(inspector.get_table_names()) == {
            "nodes",
            "connections",
            "sessions",
            "session_steps",
        }

    def test_create_all_is_idempotent(self) -> None:
        engine = _in_memory_engine()
        metadata.create_all(engine)
        assert "nodes" in inspect(engine).get_table_names()

    def test_indexes(self) -> None:
        inspector = inspect(_in_memory_engine())
        names = {ix["name"] for ix in inspector.get_indexes("connections")}
        assert "ix_connections_from_active_order" in names


class TestConstraints:
    def test_self_loop_rejected(self) -> None:
        engine = _in_memory_engine()
        with engine.begin() as conn:
            conn.execute(insert(nodes).values(**_node("a")))
        with pytest.raises(IntegrityError), engine.begin() as conn:
            conn.execute(
                insert(connections).values(
                    id="c1",
                    from_node_id="a",
                    to_node_id="a",
                    label="Self",
                    created_at="x",
                    updated_at="x",
                )
            )

    def test_defaults(self) -> None:
        engine = _in_memory_engine()
        with engine.begin() as conn:
            conn.execute(insert(nodes).values(**_node("a")))
            row = conn.execute(nodes.select()).mappings().one()
        assert row["is_active"] == 1

    def test_step_positions_unique(self) -> None:
        constraints = inspect(_in_memory_engine()).get_unique_constraints("session_steps")
        assert [sorted(c["column_names"]) for c in constraints] == [["position", "session_id"]]
