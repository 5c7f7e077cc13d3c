"""Rich Console factory and theme for faultpath output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

FAULTPATH_THEME = Theme(
    {
        "fp.ok": "bold green",
        "fp.error": "bold red",
        "fp.warning": "bold yellow",
        "fp.op": "bold cyan",
        "fp.key": "dim",
        "fp.id": "bold blue",
        "fp.text": "bold",
        "fp.label": "magenta",
        "fp.type.question": "cyan",
        "fp.type.conclusion": "green",
        "fp.state.active": "yellow",
        "fp.state.concluded": "green",
        "fp.state.abandoned": "dim",
    }
)

_TYPE_STYLES: dict[str, str] = {
    "question": "fp.type.question",
    "conclusion": "fp.type.conclusion",
}

_STATE_STYLES: dict[str, str] = {
    "active": "fp.state.active",
    "concluded": "fp.state.concluded",
    "abandoned": "fp.state.abandoned",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=FAULTPATH_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_type(node_type: str) -> str:
    """Return the Rich style name for a node type."""
    return _TYPE_STYLES.get(node_type, "")


def style_for_state(state: str) -> str:
    """Return the Rich style name for a session state."""
    return _STATE_STYLES.get(state, "")
