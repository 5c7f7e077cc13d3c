"""TraversalService — the session state machine.

A session walks one category's graph from its root question, one answer
at a time, until it reaches a conclusion or is abandoned::

    active ──answer(→ question)──▶ active
    active ──answer(→ conclusion)─▶ concluded   (terminal)
    active ──abandon()───────────▶ abandoned   (terminal)

Every write is a compare-and-set on ``sessions.version``: two callers
answering the same session concurrently cannot both succeed, and the loser
gets INVALID_TRANSITION with history unchanged. Graph reads go through
:meth:`GraphService.snapshot` and therefore the graph cache.
"""

from __future__ import annotations

import copy
from typing import Any

from sqlalchemy import func, insert, select, update

from faultpath.domain.ids import new_id, normalize_category
from faultpath.domain.lifecycle import is_terminal, is_valid_transition
from faultpath.domain.models import (
    GraphSnapshot,
    NavigationOption,
    Node,
    Session,
    SessionStep,
)
from faultpath.domain.types import SessionState
from faultpath.infrastructure.database.schema import session_steps, sessions
from faultpath.infrastructure.repositories.query import SessionFilter
from faultpath.services._helpers import clean_text, now_iso
from faultpath.services.base import BaseService, storage_guard
from faultpath.services.contracts import NavigationData, SessionStatsData, dump_validated
from faultpath.services.graph import GraphService
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import traced

_STATS_KEY = "session_stats"


class TraversalService(BaseService):
    """Start, advance, abandon and inspect troubleshooting sessions."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @property
    def _graph(self) -> GraphService:
        return GraphService(self._store)

    def _resolve(self, node_id: str, category: str) -> tuple[Node, GraphSnapshot] | None:
        """Find an active node, looking in *category* first, then in its own."""
        graph = self._graph
        snap = graph.snapshot(category)
        node = snap.node(node_id) if snap else None
        if node is not None and snap is not None:
            return node, snap
        row = self._store.queries.get_node(node_id)
        if row is None or not row["is_active"]:
            return None
        snap = graph.snapshot(row["category"])
        node = snap.node(node_id) if snap else None
        if node is None or snap is None:
            return None
        return node, snap

    def _options(self, node: Node, snap: GraphSnapshot) -> list[NavigationOption]:
        """Answers offered at *node*; a conclusion offers none."""
        if node.is_conclusion:
            return []
        options: list[NavigationOption] = []
        for conn in snap.outgoing(node.id):
            target = snap.node(conn.to_node_id)
            if target is None:
                resolved = self._resolve(conn.to_node_id, snap.category)
                if resolved is None:
                    continue
                target = resolved[0]
            options.append(
                NavigationOption(
                    connection_id=conn.id,
                    label=conn.label,
                    order_index=conn.order_index,
                    target_node_id=target.id,
                    target_category=target.category,
                    display_category=target.display_category,
                )
            )
        return options

    def _steps(self, session_id: str) -> list[SessionStep]:
        return [SessionStep.model_validate(row) for row in self._store.queries.session_steps(session_id)]

    def _navigation(
        self,
        session: dict[str, Any],
        node: Node,
        snap: GraphSnapshot,
        *,
        history: list[SessionStep] | None = None,
    ) -> dict[str, Any]:
        concluded = session["state"] == SessionState.CONCLUDED
        return dump_validated(
            NavigationData,
            {
                "session_id": session["session_id"],
                "category": session["category"],
                "state": session["state"],
                "version": session["version"],
                "node": node.model_dump(mode="json"),
                "is_conclusion": node.is_conclusion,
                "options": [o.model_dump() for o in self._options(node, snap)]
                if session["state"] == SessionState.ACTIVE
                else [],
                "conclusion": session.get("final_conclusion") if concluded else None,
                "history": [s.model_dump() for s in history or []],
            },
        )

    def _load(self, op: str, session_id: str) -> dict[str, Any] | ServiceResult:
        row = self._store.queries.get_session(session_id)
        if row is None:
            return failure(op, ErrorCode.NOT_FOUND, f"No session found with ID: {session_id}")
        return row

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @traced
    @storage_guard("start")
    def start(
        self,
        category: str,
        *,
        tech_identifier: str | None = None,
        client_site: str | None = None,
    ) -> ServiceResult:
        """Open a session at the root question of *category*."""
        op = "start"
        category = normalize_category(category or "")
        graph = self._graph
        snap = graph.snapshot(category)
        root = snap.root(graph.root_semantic_id(category)) if snap else None
        if snap is None or root is None:
            return failure(
                op, ErrorCode.NOT_FOUND, f"No root question found for category '{category}'"
            )

        now = now_iso()
        values: dict[str, Any] = {
            "session_id": new_id(),
            "category": category,
            "root_node_id": root.id,
            "current_node_id": root.id,
            "state": str(SessionState.ACTIVE),
            "version": 0,
            "started_at": now,
            "updated_at": now,
            "completed_at": None,
            "final_conclusion": None,
            "tech_identifier": clean_text(tech_identifier),
            "client_site": clean_text(client_site),
        }
        with self._store.transaction() as txn:
            txn.conn.execute(insert(sessions).values(**values))

        return ServiceResult(ok=True, op=op, data=self._navigation(values, root, snap))

    @traced
    @storage_guard("answer")
    def answer(self, session_id: str, connection_id: str) -> ServiceResult:
        """Follow *connection_id* from the session's current question."""
        op = "answer"
        loaded = self._load(op, session_id)
        if isinstance(loaded, ServiceResult):
            return loaded
        row = loaded

        if row["state"] != SessionState.ACTIVE:
            return failure(
                op,
                ErrorCode.INVALID_STATE,
                f"Session is {row['state']}; no further answers are accepted",
                state=row["state"],
            )

        current = self._resolve(row["current_node_id"], row["category"])
        if current is None:
            return failure(
                op,
                ErrorCode.INVALID_STATE,
                "The session's current question no longer exists; start a new session",
            )
        node, snap = current

        conn = snap.connection(connection_id)
        if node.is_conclusion or conn is None or conn.from_node_id != node.id:
            return failure(
                op,
                ErrorCode.INVALID_TRANSITION,
                f"Connection {connection_id} is not an answer to the current question",
                current_node_id=node.id,
            )

        resolved = self._resolve(conn.to_node_id, snap.category)
        if resolved is None:
            return failure(
                op,
                ErrorCode.INVALID_TRANSITION,
                f"Connection {connection_id} leads to a node that no longer exists",
            )
        target, target_snap = resolved

        concluded = target.is_conclusion
        new_state = SessionState.CONCLUDED if concluded else SessionState.ACTIVE
        now = now_iso()
        changes: dict[str, Any] = {
            "current_node_id": target.id,
            "state": str(new_state),
            "version": row["version"] + 1,
            "updated_at": now,
        }
        if concluded:
            changes["completed_at"] = now
            changes["final_conclusion"] = target.text

        with self._store.transaction() as txn:
            swapped = txn.conn.execute(
                update(sessions)
                .where(
                    sessions.c.session_id == session_id,
                    sessions.c.version == row["version"],
                    sessions.c.state == str(SessionState.ACTIVE),
                )
                .values(**changes)
            ).rowcount
            if swapped != 1:
                return _stale(op, session_id)

            position = txn.conn.execute(
                select(func.coalesce(func.max(session_steps.c.position), 0) + 1).where(
                    session_steps.c.session_id == session_id
                )
            ).scalar_one()
            txn.conn.execute(
                insert(session_steps).values(
                    session_id=session_id,
                    position=position,
                    from_node_id=node.id,
                    from_node_text=node.text,
                    connection_id=conn.id,
                    connection_label=conn.label,
                    to_node_id=target.id,
                    to_node_text=target.text,
                    timestamp=now,
                )
            )

        session = {**row, **changes}
        history = self._steps(session_id) if concluded else None
        return ServiceResult(
            ok=True, op=op, data=self._navigation(session, target, target_snap, history=history)
        )

    @traced
    @storage_guard("abandon")
    def abandon(self, session_id: str) -> ServiceResult:
        """Move an active session to ``abandoned``."""
        op = "abandon"
        loaded = self._load(op, session_id)
        if isinstance(loaded, ServiceResult):
            return loaded
        row = loaded

        if not is_valid_transition(row["state"], SessionState.ABANDONED):
            return failure(
                op,
                ErrorCode.INVALID_STATE,
                f"Session is already {row['state']}",
                state=row["state"],
            )

        now = now_iso()
        with self._store.transaction() as txn:
            swapped = txn.conn.execute(
                update(sessions)
                .where(
                    sessions.c.session_id == session_id,
                    sessions.c.version == row["version"],
                    sessions.c.state == str(SessionState.ACTIVE),
                )
                .values(
                    state=str(SessionState.ABANDONED),
                    version=row["version"] + 1,
                    updated_at=now,
                    completed_at=now,
                )
            ).rowcount
            if swapped != 1:
                return _stale(op, session_id)

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "session_id": session_id,
                "state": str(SessionState.ABANDONED),
                "version": row["version"] + 1,
                "completed_at": now,
            },
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @traced
    @storage_guard("get_session")
    def get_session(self, session_id: str) -> ServiceResult:
        """Current node with its options (or conclusion) and full history."""
        op = "get_session"
        loaded = self._load(op, session_id)
        if isinstance(loaded, ServiceResult):
            return loaded
        row = loaded

        history = self._steps(session_id)
        current = self._resolve(row["current_node_id"], row["category"])
        if current is None:
            return failure(
                op,
                ErrorCode.NOT_FOUND,
                f"Node {row['current_node_id']} of session {session_id} no longer exists",
            )
        node, snap = current
        return ServiceResult(
            ok=True, op=op, data=self._navigation(row, node, snap, history=history)
        )

    @traced
    @storage_guard("history")
    def history(self, session_id: str) -> ServiceResult:
        """Ordered steps, state and final conclusion of a session."""
        op = "history"
        loaded = self._load(op, session_id)
        if isinstance(loaded, ServiceResult):
            return loaded
        session = Session.model_validate({**loaded, "history": self._steps(session_id)})
        data = session.model_dump(mode="json")
        data["terminal"] = is_terminal(session.state)
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    @storage_guard("list_sessions")
    def list_sessions(
        self,
        session_filter: SessionFilter | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> ServiceResult:
        """Page through sessions, newest first."""
        cfg = self._store.settings.traversal
        page = cfg.default_page_size if limit is None else max(1, min(limit, cfg.max_page_size))
        offset = max(0, offset)
        session_filter = session_filter or SessionFilter()

        total, rows = self._store.queries.list_sessions(session_filter, limit=page, offset=offset)
        items = []
        for row in rows:
            step_count = row.pop("step_count", 0)
            item = Session.model_validate(row).model_dump(mode="json", exclude={"history"})
            item["step_count"] = int(step_count or 0)
            items.append(item)

        return ServiceResult(
            ok=True,
            op="list_sessions",
            data={
                "total": total,
                "count": len(items),
                "limit": page,
                "offset": offset,
                "filters": session_filter.to_dict(),
                "items": items,
            },
        )

    @traced
    @storage_guard("stats")
    def stats(self) -> ServiceResult:
        """Aggregate session statistics, served from the aggregate cache."""
        cache = self._store.aggregate_cache
        data = cache.get(_STATS_KEY)
        if data is None:
            queries = self._store.queries
            counts = queries.session_state_counts()
            data = dump_validated(
                SessionStatsData,
                {
                    "total_sessions": sum(counts.values()),
                    "active": counts.get(SessionState.ACTIVE, 0),
                    "concluded": counts.get(SessionState.CONCLUDED, 0),
                    "abandoned": counts.get(SessionState.ABANDONED, 0),
                    "average_steps_to_conclusion": queries.average_steps_to_conclusion(),
                    "top_conclusions": queries.top_conclusions(
                        limit=self._store.settings.traversal.top_conclusions
                    ),
                    "by_category": queries.sessions_by_category(),
                },
            )
            cache.set(_STATS_KEY, data)
        return ServiceResult(ok=True, op="stats", data=copy.deepcopy(data))


def _stale(op: str, session_id: str) -> ServiceResult:
    return failure(
        op,
        ErrorCode.INVALID_TRANSITION,
        f"Session {session_id} was modified concurrently; reload it and retry",
        session_id=session_id,
    )
