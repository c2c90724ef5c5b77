"""In-memory TTL cache backend.

Notes:
- Per-process only: running multiple workers gives each worker its own
  identity cache and its own quota counters.
- Every operation runs without awaiting, so it is atomic with respect to
  other coroutines on the same event loop; a lock guards cross-thread use.
- LRU eviction skips live keys under ``pinned_prefixes`` (quota counters);
  they leave only by expiry, so the store may exceed ``max_entries`` when
  nothing else is left to evict.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable

from gateway.adapters.cache.base import AbstractCache

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at: float | None


class InMemoryCache(AbstractCache):
    """Thread-safe key/value store with TTL and LRU eviction."""

    def __init__(
        self,
        *,
        max_entries: int | None = 100_000,
        pinned_prefixes: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._max_entries = max_entries
        self._pinned_prefixes = tuple(pinned_prefixes)
        self._clock = clock
        self._store: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.RLock()
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryCache(max_entries={self._max_entries}, "
            f"size={len(self._store)}, evictions={self._evictions})"
        )

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            self._store.pop(key, None)
            return None
        return entry

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        return self._clock() + ttl_seconds

    def _store_locked(self, key: str, entry: _Entry) -> None:
        self._store[key] = entry
        self._store.move_to_end(key)
        if self._max_entries is None:
            return
        while len(self._store) > self._max_entries:
            victim = self._eviction_candidate_locked()
            if victim is None:
                return
            del self._store[victim]
            self._evictions += 1

    def _eviction_candidate_locked(self) -> str | None:
        """Least recently used key that is expired or not pinned."""

        now = self._clock()
        for key, entry in self._store.items():
            if entry.expires_at is not None and entry.expires_at <= now:
                return key
            if not key.startswith(self._pinned_prefixes):
                return key
        return None

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            self._store.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._store_locked(key, _Entry(value=value, expires_at=self._expiry(ttl_seconds)))

    async def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry_locked(key) is not None

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            current = int(entry.value) if entry is not None else 0
            expires_at = self._expiry(ttl_seconds) if ttl_seconds is not None else (
                entry.expires_at if entry is not None else None
            )
            self._store_locked(key, _Entry(value=str(current + 1), expires_at=expires_at))
            return current + 1

    async def decr(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            current = int(entry.value) if entry is not None else 0
            expires_at = entry.expires_at if entry is not None else None
            self._store_locked(key, _Entry(value=str(current - 1), expires_at=expires_at))
            return current - 1

    async def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> float | None:
        """Remaining lifetime of ``key`` in seconds (None if absent or persistent)."""

        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "evictions": self._evictions,
            }
