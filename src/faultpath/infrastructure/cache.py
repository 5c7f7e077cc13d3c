"""TTLCache — generic size-bounded cache with one fixed TTL per instance.

One class serves every cached read (graph snapshots, rendered trees,
aggregates); instances differ only in TTL and capacity. Entries are kept in
insertion order and eviction drops the oldest-inserted entry, not the
least-recently-read one. Reads never reorder entries; ``set`` on an
existing key moves it to the newest position.

The map is guarded by a ``threading.Lock`` so concurrent sessions reading
the same category can share one instance.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time counters for one cache instance."""

    name: str
    total_entries: int
    active_entries: int
    expired_entries: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "total_entries": self.total_entries,
            "active_entries": self.active_entries,
            "expired_entries": self.expired_entries,
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }


@dataclass
class _Entry[V]:
    value: V
    inserted_at: float
    expires_at: float


class TTLCache[K: Hashable, V]:
    """Thread-safe TTL cache with oldest-inserted-first eviction.

    Args:
        ttl_seconds: Lifetime of every entry, measured from its last ``set``.
        max_size: Maximum population; inserting beyond it evicts the oldest.
        name: Label used in logs and stats.
        clock: Monotonic time source. Tests inject a fake clock.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            msg = f"ttl_seconds must be positive, got {ttl_seconds}"
            raise ValueError(msg)
        if max_size < 1:
            msg = f"max_size must be at least 1, got {max_size}"
            raise ValueError(msg)
        self._ttl = float(ttl_seconds)
        self._max_size = max_size
        self._name = name
        self._clock = clock
        self._store: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._store.get(key)  # type: ignore[call-overload]
            return entry is not None and self._clock() < entry.expires_at

    def get(self, key: K) -> V | None:
        """Return the cached value, or None when absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if now >= entry.expires_at:
                del self._store[key]
                self._misses += 1
                log.debug("cache.expired", cache=self._name, key=str(key))
                return None
            self._hits += 1
            return entry.value

    def set(self, key: K, value: V) -> None:
        """Store *value* under *key* with a fresh expiry."""
        now = self._clock()
        with self._lock:
            if key in self._store:
                del self._store[key]
            self._store[key] = _Entry(value=value, inserted_at=now, expires_at=now + self._ttl)
            while len(self._store) > self._max_size:
                evicted, _ = self._store.popitem(last=False)
                log.debug("cache.evicted", cache=self._name, key=str(evicted))

    def get_or_set(self, key: K, factory: Callable[[], V]) -> V:
        """Return the cached value, computing and storing it on a miss.

        *factory* runs outside the lock; two concurrent misses may both
        compute, and the later ``set`` wins.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        self.set(key, value)
        return value

    def invalidate(self, key: K) -> bool:
        """Remove *key* immediately. Returns True if an entry was removed."""
        with self._lock:
            removed = self._store.pop(key, None) is not None
        if removed:
            log.debug("cache.invalidated", cache=self._name, key=str(key))
        return removed

    def clear(self) -> int:
        """Drop every entry. Returns the number removed."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
        return count

    def cleanup(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._store.items() if now >= e.expires_at]
            for key in expired:
                del self._store[key]
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            total = len(self._store)
            active = sum(1 for e in self._store.values() if now < e.expires_at)
            return CacheStats(
                name=self._name,
                total_entries=total,
                active_entries=active,
                expired_entries=total - active,
                max_size=self._max_size,
                ttl_seconds=self._ttl,
                hits=self._hits,
                misses=self._misses,
            )
