"""Session lifecycle model.

A session starts ``active`` and ends in exactly one terminal state.
History only grows; there is no transition back to ``active``.
"""

from __future__ import annotations

from faultpath.domain.types import SessionState

SESSION_TRANSITIONS: dict[str, list[str]] = {
    SessionState.ACTIVE: [SessionState.CONCLUDED, SessionState.ABANDONED],
    SessionState.CONCLUDED: [],
    SessionState.ABANDONED: [],
}

TERMINAL_STATES = frozenset({SessionState.CONCLUDED, SessionState.ABANDONED})


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = SESSION_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed


def is_terminal(state: str) -> bool:
    """Whether *state* accepts no further answers."""
    return state in TERMINAL_STATES
