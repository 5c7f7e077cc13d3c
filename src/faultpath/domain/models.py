"""Pydantic models for graph entities, partial updates, and sessions.

Rows come out of SQLAlchemy as mappings; ``model_validate`` coerces the
integer ``is_active`` flags into booleans. All models are frozen so cached
snapshots can be shared between readers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from faultpath.domain.types import NodeType, SessionState


class Node(BaseModel):
    """A question or conclusion vertex."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    node_type: NodeType
    text: str
    semantic_id: str | None = None
    display_category: str | None = None
    position_x: float | None = None
    position_y: float | None = None
    is_active: bool = True
    created_at: str
    updated_at: str

    @property
    def is_conclusion(self) -> bool:
        return self.node_type == NodeType.CONCLUSION


class Connection(BaseModel):
    """A labelled, directed answer edge."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_node_id: str
    to_node_id: str
    label: str
    order_index: int = 0
    is_active: bool = True
    created_at: str
    updated_at: str


class NodeUpdate(BaseModel):
    """Partial update for a node. Only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    text: str | None = None
    semantic_id: str | None = None
    node_type: NodeType | None = None
    display_category: str | None = None
    position_x: float | None = None
    position_y: float | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, Any]:
        """Return the explicitly-set fields as column values."""
        return self.model_dump(exclude_unset=True, mode="json")


class ConnectionUpdate(BaseModel):
    """Partial update for a connection."""

    model_config = ConfigDict(extra="forbid")

    to_node_id: str | None = None
    label: str | None = None
    order_index: int | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, mode="json")


def sort_key(conn: Connection) -> tuple[int, str, str]:
    """Deterministic option order: ``order_index``, then creation time, then id."""
    return (conn.order_index, conn.created_at, conn.id)


class GraphSnapshot(BaseModel):
    """All active nodes and their outgoing active connections for one category."""

    model_config = ConfigDict(frozen=True)

    category: str
    nodes: list[Node]
    connections: list[Connection]

    def node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def connection(self, connection_id: str) -> Connection | None:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def outgoing(self, node_id: str) -> list[Connection]:
        """Active outgoing connections of *node_id* in option order."""
        return sorted(
            (c for c in self.connections if c.from_node_id == node_id),
            key=sort_key,
        )

    def questions(self) -> list[Node]:
        return [n for n in self.nodes if n.node_type == NodeType.QUESTION]

    def root(self, root_semantic_id: str) -> Node | None:
        """The entry question: tagged with *root_semantic_id*, else the earliest created."""
        questions = self.questions()
        for node in questions:
            if node.semantic_id == root_semantic_id:
                return node
        return min(questions, key=lambda n: (n.created_at, n.id), default=None)


class NavigationOption(BaseModel):
    """One selectable answer presented to the user."""

    model_config = ConfigDict(frozen=True)

    connection_id: str
    label: str
    order_index: int
    target_node_id: str
    target_category: str
    display_category: str | None = None


class SessionStep(BaseModel):
    """One answered question in a session's history."""

    model_config = ConfigDict(frozen=True)

    position: int
    from_node_id: str
    from_node_text: str
    connection_id: str
    connection_label: str
    to_node_id: str
    to_node_text: str
    timestamp: str


class Session(BaseModel):
    """Persisted traversal state."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    category: str
    root_node_id: str
    current_node_id: str
    state: SessionState
    version: int = 0
    started_at: str
    updated_at: str
    completed_at: str | None = None
    final_conclusion: str | None = None
    tech_identifier: str | None = None
    client_site: str | None = None
    history: list[SessionStep] = Field(default_factory=list)
