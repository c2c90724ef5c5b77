"""Fast lookup cache adapters.

The identity cache and the hourly quota counters both live in a key/value
store with per-key expiry. Services depend on ``AbstractCache`` so the store
can be Redis in shared deployments or an in-process map for a single worker.
"""

from gateway.adapters.cache.base import AbstractCache
from gateway.adapters.cache.factory import create_cache
from gateway.adapters.cache.in_memory import InMemoryCache
from gateway.adapters.cache.redis_cache import RedisCache

__all__ = [
    "AbstractCache",
    "InMemoryCache",
    "RedisCache",
    "create_cache",
]
