"""Store — repository pattern with transaction-scoped cache invalidation.

The Store is the single dependency injected into every service. It owns
the database engine, the read repository, the graph engine and the three
TTL caches. The :meth:`transaction` context manager coordinates DB writes
with cache consistency:

- **DB**: Native SQLAlchemy ``engine.begin()`` with auto-commit/rollback.
- **Caches**: Every category touched inside the transaction has its
  ``graph`` and ``tree`` entries dropped, and the ``aggregate`` cache is
  cleared, when the transaction ends (success or failure).
- **Graph**: The NetworkX graph is invalidated on transaction end and
  lazy-rebuilt from the DB on next access.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from faultpath.infrastructure.cache import CacheStats, TTLCache
from faultpath.infrastructure.database.engine import init_database
from faultpath.infrastructure.graph.engine import GraphEngine
from faultpath.infrastructure.repositories.query import QueryRepository

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

    from faultpath.config.settings import FaultpathSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# StoreTransaction: yielded to callers within transaction()
# ---------------------------------------------------------------------------


@dataclass
class StoreTransaction:
    """Active transaction context with a DB connection.

    Writers call :meth:`touch` for every category whose graph they modify
    so the Store can drop the matching cache entries afterwards.
    """

    conn: Connection
    _touched: set[str] = field(default_factory=set, repr=False)

    def touch(self, *categories: str | None) -> None:
        """Record categories modified by this transaction."""
        self._touched.update(c for c in categories if c)

    @property
    def touched(self) -> frozenset[str]:
        return frozenset(self._touched)


# ---------------------------------------------------------------------------
# Store: the repository
# ---------------------------------------------------------------------------


class Store:
    """Repository encapsulating database, cache, and graph access.

    Constructed once per process (or per CLI invocation) from
    :class:`FaultpathSettings`. Services receive the Store via their
    :class:`BaseService` constructor.
    """

    def __init__(self, settings: FaultpathSettings) -> None:
        self._settings = settings
        self._engine: Engine = init_database(
            self.root,
            url=settings.database.url,
            echo=settings.database.echo,
        )
        self._queries = QueryRepository(self._engine)
        self._graph = GraphEngine(self._engine)

        cache_cfg = settings.cache
        self.graph_cache: TTLCache[str, Any] = TTLCache(
            cache_cfg.graph.ttl_seconds, cache_cfg.graph.max_size, name="graph"
        )
        self.tree_cache: TTLCache[str, Any] = TTLCache(
            cache_cfg.tree.ttl_seconds, cache_cfg.tree.max_size, name="tree"
        )
        self.aggregate_cache: TTLCache[str, Any] = TTLCache(
            cache_cfg.aggregate.ttl_seconds, cache_cfg.aggregate.max_size, name="aggregate"
        )

    @property
    def root(self) -> Path:
        """The data root directory."""
        return self._settings.data_root

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def queries(self) -> QueryRepository:
        """Read-side repository."""
        return self._queries

    @property
    def graph(self) -> GraphEngine:
        """The graph engine (lazy-built from active connections)."""
        return self._graph

    @property
    def settings(self) -> FaultpathSettings:
        """The resolved settings for this store."""
        return self._settings

    def caches(self) -> list[TTLCache[str, Any]]:
        return [self.graph_cache, self.tree_cache, self.aggregate_cache]

    def cache_stats(self) -> list[CacheStats]:
        """Point-in-time stats for every cache instance."""
        return [cache.stats() for cache in self.caches()]

    def invalidate_categories(self, categories: set[str] | frozenset[str]) -> None:
        """Drop cached reads for *categories* and every aggregate."""
        for category in categories:
            self.graph_cache.invalidate(category)
            self.tree_cache.invalidate(category)
        self.aggregate_cache.clear()
        self._graph.invalidate()

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """DB transaction with cache invalidation on exit.

        - DB writes use native SQLAlchemy transaction (auto-commit on
          success, auto-rollback on exception).
        - Categories recorded via :meth:`StoreTransaction.touch` are
          invalidated on transaction end (success or failure), so the next
          read rebuilds from committed DB state.

        **Warning:** Do not read through the caches or ``store.graph``
        within a transaction block; both reflect committed state only.

        Usage::

            with store.transaction() as txn:
                txn.conn.execute(insert(nodes).values(...))
                txn.touch(category)
        """
        touched: set[str] = set()
        try:
            with self._engine.begin() as conn:
                yield StoreTransaction(conn=conn, _touched=touched)
        finally:
            # After commit/rollback, so no reader can re-cache pre-commit rows.
            if touched:
                logger.debug("Invalidating cached reads for %s", sorted(touched))
            self.invalidate_categories(touched)
