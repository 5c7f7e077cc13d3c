"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, faultpath.toml only contains
overrides. A fresh workspace needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

# --- faultpath.toml sections ---


class DatabaseConfig(BaseModel):
    """[database] section.

    ``url`` overrides the default ``{root}/.faultpath/faultpath.db`` file
    (any SQLAlchemy URL, e.g. ``sqlite:///:memory:``).
    """

    model_config = {"frozen": True}

    url: str | None = None
    echo: bool = False


class CacheSpec(BaseModel):
    """TTL and capacity of one cache instance."""

    model_config = {"frozen": True}

    ttl_seconds: PositiveFloat = 600
    max_size: PositiveInt = 50


class AggregateCacheSpec(CacheSpec):
    """Shorter-lived, smaller cache for list and statistics reads."""

    ttl_seconds: PositiveFloat = 300
    max_size: PositiveInt = 10


class CacheConfig(BaseModel):
    """[cache] section — one entry per cache instance."""

    model_config = {"frozen": True}

    graph: CacheSpec = Field(default_factory=CacheSpec)
    tree: CacheSpec = Field(default_factory=CacheSpec)
    aggregate: AggregateCacheSpec = Field(default_factory=AggregateCacheSpec)


class GraphConfig(BaseModel):
    """[graph] section."""

    model_config = {"frozen": True}

    allow_cycles: bool = True
    root_suffix: str = "_start"


class TraversalConfig(BaseModel):
    """[traversal] section."""

    model_config = {"frozen": True}

    default_page_size: PositiveInt = 50
    max_page_size: PositiveInt = 500
    top_conclusions: PositiveInt = 10


class TransferConfig(BaseModel):
    """[transfer] section."""

    model_config = {"frozen": True}

    supported_versions: tuple[str, ...] = ("1.0",)
