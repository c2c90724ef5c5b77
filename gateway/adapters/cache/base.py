"""Cache interface.

Services depend on this abstraction (not a concrete client) so the storage
backend can be swapped without touching the credential or quota logic.

Every operation that cannot reach the store raises
``DependencyUnavailableError(dependency="cache")``; callers decide whether
that is fatal (it never is for the quota controller).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCache(ABC):
    """String key/value store with optional per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl_seconds`` when given."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if ``key`` holds a live value."""
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        """Atomically increment the integer at ``key`` and return the new value.

        A missing key counts as 0. When ``ttl_seconds`` is given the key's
        expiry is (re)set to that many seconds as part of the same operation.
        """
        raise NotImplementedError

    @abstractmethod
    async def decr(self, key: str) -> int:
        """Atomically decrement the integer at ``key`` and return the new value."""
        raise NotImplementedError

    async def connect(self) -> None:
        """Open connections eagerly. Backends without connections do nothing."""
        return None

    async def ping(self) -> bool:
        """Return True when the store answers. Must not raise."""
        try:
            await self.exists("__ping__")
        except Exception:
            return False
        return True

    async def close(self) -> None:
        """Release connections. Safe to call more than once."""
        return None
