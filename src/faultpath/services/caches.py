"""CacheService — inspection and maintenance of the Store's TTL caches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from faultpath.services.base import BaseService
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import traced

if TYPE_CHECKING:
    from faultpath.infrastructure.cache import TTLCache


class CacheService(BaseService):
    """Report on, prune and flush the graph, tree and aggregate caches."""

    def _select(self, name: str | None) -> list[TTLCache[str, Any]] | None:
        caches = self._store.caches()
        if name is None:
            return caches
        chosen = [c for c in caches if c.name == name]
        return chosen or None

    @traced
    def stats(self) -> ServiceResult:
        return ServiceResult(
            ok=True,
            op="cache_stats",
            data={"caches": [s.to_dict() for s in self._store.cache_stats()]},
        )

    @traced
    def cleanup(self) -> ServiceResult:
        """Drop expired entries from every cache."""
        removed = {cache.name: cache.cleanup() for cache in self._store.caches()}
        return ServiceResult(
            ok=True, op="cache_cleanup", data={"removed": removed, "total": sum(removed.values())}
        )

    @traced
    def clear(self, name: str | None = None) -> ServiceResult:
        """Drop every entry of one cache (by name) or of all caches."""
        caches = self._select(name)
        if caches is None:
            known = ", ".join(c.name for c in self._store.caches())
            return failure("cache_clear", ErrorCode.NOT_FOUND, f"Unknown cache {name!r}; known: {known}")
        removed = {cache.name: cache.clear() for cache in caches}
        return ServiceResult(
            ok=True, op="cache_clear", data={"removed": removed, "total": sum(removed.values())}
        )
