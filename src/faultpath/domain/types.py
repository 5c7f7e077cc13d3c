"""Node types and traversal states.

These enums define the two node kinds of a troubleshooting graph and the
three states a traversal session moves through.
"""

from __future__ import annotations

from enum import StrEnum


class NodeType(StrEnum):
    """Kinds of graph vertex."""

    QUESTION = "question"
    CONCLUSION = "conclusion"


class SessionState(StrEnum):
    """Traversal session states."""

    ACTIVE = "active"
    CONCLUDED = "concluded"
    ABANDONED = "abandoned"


def parse_node_type(value: str) -> NodeType | None:
    """Return the :class:`NodeType` for *value* (case-insensitive), or None."""
    try:
        return NodeType(value.strip().lower())
    except ValueError:
        return None
