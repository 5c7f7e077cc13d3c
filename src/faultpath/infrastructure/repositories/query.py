"""Read-oriented repository and typed query filters.

Filters are frozen dataclasses that turn into SQLAlchemy predicates, so
every list/search query is parameterised; nothing is assembled from
strings. Methods accept an optional ``Connection`` so callers inside a
transaction read their own uncommitted writes.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, or_, select

from faultpath.domain.types import NodeType, SessionState
from faultpath.infrastructure.database.schema import (
    connections,
    nodes,
    session_steps,
    sessions,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import ColumnElement, Connection
    from sqlalchemy.engine import Engine


# ---------------------------------------------------------------------------
# Typed filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NodeFilter:
    """Optional constraints for node listings."""

    category: str | None = None
    node_type: NodeType | None = None
    display_category: str | None = None
    semantic_id: str | None = None
    active_only: bool = True

    def predicates(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.active_only:
            clauses.append(nodes.c.is_active == 1)
        if self.category is not None:
            clauses.append(nodes.c.category == self.category)
        if self.node_type is not None:
            clauses.append(nodes.c.node_type == str(self.node_type))
        if self.display_category is not None:
            clauses.append(nodes.c.display_category == self.display_category)
        if self.semantic_id is not None:
            clauses.append(nodes.c.semantic_id == self.semantic_id)
        return clauses


@dataclass(frozen=True)
class ConnectionFilter:
    """Optional constraints for connection listings."""

    from_node_id: str | None = None
    to_node_id: str | None = None
    category: str | None = None  # category of the source node
    active_only: bool = True

    def predicates(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.active_only:
            clauses.append(connections.c.is_active == 1)
        if self.from_node_id is not None:
            clauses.append(connections.c.from_node_id == self.from_node_id)
        if self.to_node_id is not None:
            clauses.append(connections.c.to_node_id == self.to_node_id)
        if self.category is not None:
            clauses.append(
                connections.c.from_node_id.in_(
                    select(nodes.c.id).where(nodes.c.category == self.category)
                )
            )
        return clauses


@dataclass(frozen=True)
class SessionFilter:
    """Optional constraints for session listings and bulk deletes."""

    state: SessionState | None = None
    category: str | None = None
    started_after: str | None = None
    started_before: str | None = None
    tech_identifier: str | None = None
    search: str | None = None  # substring of the final conclusion

    def predicates(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.state is not None:
            clauses.append(sessions.c.state == str(self.state))
        if self.category is not None:
            clauses.append(sessions.c.category == self.category)
        if self.started_after is not None:
            clauses.append(sessions.c.started_at >= self.started_after)
        if self.started_before is not None:
            clauses.append(sessions.c.started_at < self.started_before)
        if self.tech_identifier is not None:
            clauses.append(sessions.c.tech_identifier == self.tech_identifier)
        if self.search:
            clauses.append(sessions.c.final_conclusion.contains(self.search, autoescape=True))
        return clauses

    def to_dict(self) -> dict[str, str]:
        """Return a normalized user-facing payload for applied filters."""
        data: dict[str, str] = {}
        for key in (
            "state",
            "category",
            "started_after",
            "started_before",
            "tech_identifier",
            "search",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = str(value)
        return data


_NODE_ORDER = (nodes.c.created_at, nodes.c.id)
_CONNECTION_ORDER = (connections.c.order_index, connections.c.created_at, connections.c.id)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class QueryRepository:
    """Encapsulates SQL for read-side graph and session queries."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @contextmanager
    def _conn(self, conn: Connection | None) -> Iterator[Connection]:
        if conn is not None:
            yield conn
            return
        with self._engine.connect() as fresh:
            yield fresh

    # -- nodes ---------------------------------------------------------

    def get_node(self, node_id: str, *, conn: Connection | None = None) -> dict[str, Any] | None:
        """Fetch one node row by id (active or not)."""
        with self._conn(conn) as c:
            row = c.execute(select(nodes).where(nodes.c.id == node_id)).mappings().first()
        return dict(row) if row is not None else None

    def list_nodes(
        self,
        node_filter: NodeFilter | None = None,
        *,
        conn: Connection | None = None,
    ) -> list[dict[str, Any]]:
        """List node rows in creation order."""
        stmt = select(nodes).where(*(node_filter or NodeFilter()).predicates())
        stmt = stmt.order_by(*_NODE_ORDER)
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def count_category_nodes(self, category: str, *, conn: Connection | None = None) -> int:
        """Count every node of *category*, active or not."""
        stmt = select(func.count(nodes.c.id)).where(nodes.c.category == category)
        with self._conn(conn) as c:
            return int(c.execute(stmt).scalar_one() or 0)

    def category_summaries(self, *, conn: Connection | None = None) -> list[dict[str, Any]]:
        """Per-category node counts, active counts, and first-created timestamp."""
        stmt = (
            select(
                nodes.c.category,
                func.count(nodes.c.id).label("node_count"),
                func.sum(nodes.c.is_active).label("active_count"),
                func.min(nodes.c.created_at).label("created_at"),
                func.max(nodes.c.updated_at).label("updated_at"),
                func.max(nodes.c.display_category).label("display_category"),
            )
            .group_by(nodes.c.category)
            .order_by(nodes.c.category)
        )
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def display_categories(self, *, conn: Connection | None = None) -> list[dict[str, Any]]:
        """Distinct non-null display categories with node counts."""
        stmt = (
            select(nodes.c.display_category, func.count(nodes.c.id).label("node_count"))
            .where(nodes.c.display_category.is_not(None))
            .group_by(nodes.c.display_category)
            .order_by(nodes.c.display_category)
        )
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    # -- connections ---------------------------------------------------

    def get_connection(
        self, connection_id: str, *, conn: Connection | None = None
    ) -> dict[str, Any] | None:
        """Fetch one connection row by id (active or not)."""
        stmt = select(connections).where(connections.c.id == connection_id)
        with self._conn(conn) as c:
            row = c.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def list_connections(
        self,
        connection_filter: ConnectionFilter | None = None,
        *,
        conn: Connection | None = None,
    ) -> list[dict[str, Any]]:
        """List connection rows in option order."""
        stmt = select(connections).where(*(connection_filter or ConnectionFilter()).predicates())
        stmt = stmt.order_by(*_CONNECTION_ORDER)
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def incident_connections(
        self, node_id: str, *, conn: Connection | None = None
    ) -> list[dict[str, Any]]:
        """Every connection where *node_id* is source or target, active or not."""
        stmt = select(connections).where(
            or_(connections.c.from_node_id == node_id, connections.c.to_node_id == node_id)
        )
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def category_graph_rows(
        self, category: str, *, conn: Connection | None = None
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Active nodes of *category* and the active connections leaving them."""
        node_rows = self.list_nodes(NodeFilter(category=category), conn=conn)
        if not node_rows:
            return [], []
        node_ids = [row["id"] for row in node_rows]
        stmt = (
            select(connections)
            .join(nodes, nodes.c.id == connections.c.to_node_id)
            .where(
                connections.c.from_node_id.in_(node_ids),
                connections.c.is_active == 1,
                nodes.c.is_active == 1,
            )
            .order_by(*_CONNECTION_ORDER)
        )
        with self._conn(conn) as c:
            conn_rows = c.execute(stmt).mappings().all()
        return node_rows, [dict(row) for row in conn_rows]

    # -- sessions ------------------------------------------------------

    def get_session(self, session_id: str, *, conn: Connection | None = None) -> dict[str, Any] | None:
        stmt = select(sessions).where(sessions.c.session_id == session_id)
        with self._conn(conn) as c:
            row = c.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def session_steps(self, session_id: str, *, conn: Connection | None = None) -> list[dict[str, Any]]:
        stmt = (
            select(session_steps)
            .where(session_steps.c.session_id == session_id)
            .order_by(session_steps.c.position)
        )
        with self._conn(conn) as c:
            rows = c.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def list_sessions(
        self,
        session_filter: SessionFilter | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[int, list[dict[str, Any]]]:
        """Return ``(total, page)`` for sessions matching the filter, newest first."""
        clauses = (session_filter or SessionFilter()).predicates()
        where = and_(*clauses) if clauses else None

        step_count = (
            select(func.count(session_steps.c.id))
            .where(session_steps.c.session_id == sessions.c.session_id)
            .scalar_subquery()
            .label("step_count")
        )
        page_stmt = select(sessions, step_count)
        count_stmt = select(func.count(sessions.c.session_id))
        if where is not None:
            page_stmt = page_stmt.where(where)
            count_stmt = count_stmt.where(where)
        page_stmt = (
            page_stmt.order_by(sessions.c.started_at.desc(), sessions.c.session_id)
            .limit(limit)
            .offset(offset)
        )

        with self._engine.connect() as c:
            total = int(c.execute(count_stmt).scalar_one() or 0)
            rows = c.execute(page_stmt).mappings().all()
        return total, [dict(row) for row in rows]

    def session_state_counts(self) -> dict[str, int]:
        stmt = select(sessions.c.state, func.count(sessions.c.session_id)).group_by(
            sessions.c.state
        )
        with self._engine.connect() as c:
            return {str(state): int(count) for state, count in c.execute(stmt).all()}

    def average_steps_to_conclusion(self) -> float:
        per_session = (
            select(func.count(session_steps.c.id).label("steps"))
            .join(sessions, sessions.c.session_id == session_steps.c.session_id)
            .where(sessions.c.state == str(SessionState.CONCLUDED))
            .group_by(session_steps.c.session_id)
            .subquery()
        )
        stmt = select(func.avg(per_session.c.steps))
        with self._engine.connect() as c:
            value = c.execute(stmt).scalar_one()
        return round(float(value), 2) if value is not None else 0.0

    def top_conclusions(self, *, limit: int = 10) -> list[dict[str, Any]]:
        stmt = (
            select(sessions.c.final_conclusion, func.count(sessions.c.session_id).label("count"))
            .where(sessions.c.final_conclusion.is_not(None))
            .group_by(sessions.c.final_conclusion)
            .order_by(func.count(sessions.c.session_id).desc(), sessions.c.final_conclusion)
            .limit(limit)
        )
        with self._engine.connect() as c:
            rows = c.execute(stmt).all()
        return [{"conclusion": str(text), "count": int(count)} for text, count in rows]

    def sessions_by_category(self) -> list[dict[str, Any]]:
        stmt = (
            select(sessions.c.category, func.count(sessions.c.session_id).label("count"))
            .group_by(sessions.c.category)
            .order_by(func.count(sessions.c.session_id).desc(), sessions.c.category)
        )
        with self._engine.connect() as c:
            rows = c.execute(stmt).all()
        return [{"category": str(cat), "count": int(count)} for cat, count in rows]
