"""Factory for cache backends."""

from gateway.adapters.cache.base import AbstractCache
from gateway.adapters.cache.in_memory import InMemoryCache
from gateway.adapters.cache.redis_cache import RedisCache
from gateway.core.config import CacheSettings
from gateway.core.errors import ValidationAppError


def create_cache(cache_settings: CacheSettings) -> AbstractCache:
    """Instantiate the configured cache backend.

    Args:
        cache_settings: Resolved ``CACHE_*`` settings.

    Returns:
        AbstractCache: Unconnected cache instance (connections are lazy).

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = cache_settings.backend.lower()

    if backend == "redis":
        return RedisCache(
            cache_settings.redis_url,
            password=cache_settings.password,
            connect_timeout_seconds=cache_settings.connect_timeout_seconds,
            socket_timeout_seconds=cache_settings.socket_timeout_seconds,
        )

    if backend == "memory":
        return InMemoryCache(
            max_entries=cache_settings.memory_max_entries,
            pinned_prefixes=cache_settings.memory_pinned_prefixes,
        )

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=f"Unknown cache backend: '{backend}'. Supported backends: redis, memory",
    )
