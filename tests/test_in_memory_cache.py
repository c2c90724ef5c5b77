"""Unit tests for the in-memory cache backend."""

import pytest

from gateway.adapters.cache import InMemoryCache, create_cache
from gateway.adapters.cache.redis_cache import RedisCache
from gateway.core.config import CacheSettings
from gateway.services.quota_controller import QUOTA_KEY_PREFIX


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.mark.asyncio
async def test_set_get_delete_exists() -> None:
    cache = InMemoryCache()

    assert await cache.get("missing") is None
    await cache.set("k", "v")
    assert await cache.get("k") == "v"
    assert await cache.exists("k") is True

    await cache.delete("k")
    assert await cache.exists("k") is False
    await cache.delete("k")


@pytest.mark.asyncio
async def test_entries_expire_after_ttl() -> None:
    clock = FakeTime()
    cache = InMemoryCache(clock=clock)
    await cache.set("k", "v", ttl_seconds=300)

    clock.advance(299)
    assert await cache.get("k") == "v"
    assert cache.ttl("k") == pytest.approx(1)

    clock.advance(1)
    assert await cache.get("k") is None
    assert cache.ttl("k") is None


@pytest.mark.asyncio
async def test_incr_starts_from_zero_and_sets_ttl() -> None:
    clock = FakeTime()
    cache = InMemoryCache(clock=clock)

    assert await cache.incr("counter", ttl_seconds=3600) == 1
    assert await cache.incr("counter", ttl_seconds=3600) == 2
    assert await cache.get("counter") == "2"
    assert cache.ttl("counter") == pytest.approx(3600)


@pytest.mark.asyncio
async def test_incr_without_ttl_keeps_existing_expiry() -> None:
    clock = FakeTime()
    cache = InMemoryCache(clock=clock)
    await cache.incr("counter", ttl_seconds=60)

    clock.advance(30)
    await cache.incr("counter")

    assert cache.ttl("counter") == pytest.approx(30)


@pytest.mark.asyncio
async def test_incr_restarts_after_expiry() -> None:
    clock = FakeTime()
    cache = InMemoryCache(clock=clock)
    await cache.incr("counter", ttl_seconds=10)
    await cache.incr("counter", ttl_seconds=10)

    clock.advance(10)

    assert await cache.incr("counter", ttl_seconds=10) == 1


@pytest.mark.asyncio
async def test_decr() -> None:
    cache = InMemoryCache()
    await cache.incr("counter")
    await cache.incr("counter")

    assert await cache.decr("counter") == 1
    assert await cache.get("counter") == "1"


@pytest.mark.asyncio
async def test_lru_eviction_when_full() -> None:
    cache = InMemoryCache(max_entries=2)
    await cache.set("a", "1")
    await cache.set("b", "2")
    await cache.get("a")
    await cache.set("c", "3")

    assert await cache.exists("a") is True
    assert await cache.exists("b") is False
    assert await cache.exists("c") is True
    assert cache.stats()["evictions"] == 1


@pytest.mark.asyncio
async def test_live_pinned_keys_are_never_evicted() -> None:
    cache = InMemoryCache(max_entries=2, pinned_prefixes=("rate_limit:",), clock=FakeTime())
    counter = "rate_limit:7:2024-05-01T10"
    await cache.incr(counter, ttl_seconds=3600)
    await cache.incr(counter, ttl_seconds=3600)

    for key in ("api_key:a", "api_key:b", "api_key:c"):
        await cache.set(key, "{}", ttl_seconds=300)

    assert await cache.get(counter) == "2"
    assert await cache.exists("api_key:a") is False
    assert await cache.exists("api_key:b") is False
    assert await cache.exists("api_key:c") is True
    assert cache.stats()["evictions"] == 2


@pytest.mark.asyncio
async def test_store_grows_past_bound_when_only_pinned_keys_remain() -> None:
    cache = InMemoryCache(max_entries=2, pinned_prefixes=("rate_limit:",))

    for account_id in (1, 2, 3):
        await cache.incr(f"rate_limit:{account_id}:2024-05-01T10", ttl_seconds=3600)

    assert cache.stats()["entries"] == 3
    assert cache.stats()["evictions"] == 0


@pytest.mark.asyncio
async def test_expired_pinned_keys_are_evicted_first() -> None:
    clock = FakeTime()
    cache = InMemoryCache(max_entries=2, pinned_prefixes=("rate_limit:",), clock=clock)
    await cache.incr("rate_limit:7:2024-05-01T10", ttl_seconds=10)
    clock.advance(20)

    await cache.set("a", "1")
    await cache.set("b", "2")

    assert cache.stats()["entries"] == 2
    assert await cache.exists("a") is True
    assert await cache.exists("b") is True


@pytest.mark.asyncio
async def test_ping_and_clear() -> None:
    cache = InMemoryCache()
    await cache.set("a", "1")

    assert await cache.ping() is True
    cache.clear()
    assert await cache.get("a") is None


@pytest.mark.parametrize("kwargs", [{"max_entries": 0}])
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryCache(**kwargs)


@pytest.mark.asyncio
async def test_invalid_ttl_rejected() -> None:
    with pytest.raises(ValueError):
        await InMemoryCache().set("k", "v", ttl_seconds=0)


def test_factory_selects_backend() -> None:
    assert isinstance(create_cache(CacheSettings(backend="memory")), InMemoryCache)
    assert isinstance(create_cache(CacheSettings(backend="redis", redis_url="redis://cache:6379/1")), RedisCache)


def test_memory_backend_pins_quota_counters_by_default() -> None:
    cache = create_cache(CacheSettings(backend="memory"))

    assert QUOTA_KEY_PREFIX in cache._pinned_prefixes
