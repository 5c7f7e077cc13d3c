"""Identifier generation and category-key validation.

Node, connection and session ids are opaque uuid4 hex strings generated by
the application, so they are stable across storage engines.

INVARIANT: IDs are permanent. Once generated, an ID never changes.
Imports generate fresh ids instead of reusing exported ones.
"""

from __future__ import annotations

import re
import uuid

CATEGORY_PATTERN = re.compile(r"^[\w][\w .\-/]{0,99}$")

DEFAULT_ROOT_SUFFIX = "_start"


def new_id() -> str:
    """Generate a new opaque identifier."""
    return uuid.uuid4().hex


def normalize_category(category: str) -> str:
    """Strip surrounding whitespace from a category key."""
    return category.strip()


def validate_category(category: str) -> bool:
    """Check whether *category* is a well-formed category key.

    Examples:
        >>> validate_category("coffee-machine")
        True
        >>> validate_category("  ")
        False
    """
    return CATEGORY_PATTERN.match(category) is not None


def root_semantic_id(category: str, suffix: str = DEFAULT_ROOT_SUFFIX) -> str:
    """Reserved semantic id marking the root question of *category*."""
    return f"{category}{suffix}"
