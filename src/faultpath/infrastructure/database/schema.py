"""SQLAlchemy Core table definitions for the faultpath database.

Foreign keys are declared without ON DELETE actions: the service layer
deletes dependent connections explicitly before removing a node, and the
enforced constraint catches any path that forgets to.
"""

from __future__ import annotations

from sqlalchemy import (
    REAL,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

nodes = Table(
    "nodes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("category", Text, nullable=False),
    Column("node_type", Text, nullable=False),  # question | conclusion
    Column("text", Text, nullable=False),
    Column("semantic_id", Text),  # internal tag, never shown to end users
    Column("display_category", Text),  # UI grouping label
    Column("position_x", REAL),
    Column("position_y", REAL),
    Column("is_active", Integer, nullable=False, default=1, server_default="1"),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
)

connections = Table(
    "connections",
    metadata,
    Column("id", Text, primary_key=True),
    Column("from_node_id", Text, ForeignKey("nodes.id"), nullable=False),
    Column("to_node_id", Text, ForeignKey("nodes.id"), nullable=False),
    Column("label", Text, nullable=False),
    Column("order_index", Integer, nullable=False, default=0, server_default="0"),
    Column("is_active", Integer, nullable=False, default=1, server_default="1"),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    CheckConstraint("from_node_id <> to_node_id", name="ck_connections_no_self_loop"),
)

sessions = Table(
    "sessions",
    metadata,
    Column("session_id", Text, primary_key=True),
    Column("category", Text, nullable=False),
    Column("root_node_id", Text, nullable=False),
    Column("current_node_id", Text, nullable=False),
    Column("state", Text, nullable=False),  # active | concluded | abandoned
    Column("version", Integer, nullable=False, default=0, server_default="0"),
    Column("started_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    Column("completed_at", Text),
    Column("final_conclusion", Text),
    Column("tech_identifier", Text),
    Column("client_site", Text),
)

session_steps = Table(
    "session_steps",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("session_id", Text, ForeignKey("sessions.session_id"), nullable=False),
    Column("position", Integer, nullable=False),
    # Node and connection references are snapshots: the graph may change
    # after the step was taken, so the texts are copied alongside the ids.
    Column("from_node_id", Text, nullable=False),
    Column("from_node_text", Text, nullable=False),
    Column("connection_id", Text, nullable=False),
    Column("connection_label", Text, nullable=False),
    Column("to_node_id", Text, nullable=False),
    Column("to_node_text", Text, nullable=False),
    Column("timestamp", Text, nullable=False),
    UniqueConstraint("session_id", "position"),
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_nodes_category_active", nodes.c.category, nodes.c.is_active)
Index("ix_nodes_semantic_id", nodes.c.semantic_id)
Index("ix_nodes_display_category", nodes.c.display_category)
Index(
    "ix_connections_from_active_order",
    connections.c.from_node_id,
    connections.c.is_active,
    connections.c.order_index,
)
Index("ix_connections_to", connections.c.to_node_id)
Index("ix_sessions_state", sessions.c.state)
Index("ix_sessions_category", sessions.c.category)
