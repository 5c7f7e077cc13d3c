"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (for row timestamps, session logs)."""
    return datetime.now(UTC).isoformat()


def clean_text(value: str | None) -> str | None:
    """Strip *value*; blank strings become None.

    Examples:
        >>> clean_text("  Is it plugged in? ")
        'Is it plugged in?'
        >>> clean_text("   ") is None
        True
    """
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
