"""Redis cache backend (``redis.asyncio``).

The client is created lazily on first use and recreated if it was closed,
so a torn-down connection is re-established on demand. Timeouts are
applied at the connection level; no per-request deadline is propagated.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from gateway.adapters.cache.base import AbstractCache
from gateway.core.errors import DependencyUnavailableError

logger = logging.getLogger(__name__)


class RedisCache(AbstractCache):
    """``AbstractCache`` backed by a Redis server."""

    def __init__(
        self,
        url: str,
        *,
        password: str | None = None,
        connect_timeout_seconds: float = 5.0,
        socket_timeout_seconds: float = 5.0,
    ) -> None:
        self._url = url
        self._password = password or None
        self._connect_timeout = connect_timeout_seconds
        self._socket_timeout = socket_timeout_seconds
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                password=self._password,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self._connect_timeout,
                socket_timeout=self._socket_timeout,
                health_check_interval=30,
            )
        return self._client

    async def connect(self) -> None:
        """Create the client and verify the server answers."""

        try:
            await self._get_client().ping()
        except RedisError as exc:
            logger.error("cache.connect_failed", extra={"error": str(exc)})
            raise DependencyUnavailableError("cache", "Redis server refused the connection") from exc
        logger.info("cache.connected", extra={"backend": "redis"})

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
            logger.info("cache.closed", extra={"backend": "redis"})

    @staticmethod
    def _unavailable(operation: str, exc: Exception) -> DependencyUnavailableError:
        # Not logged here; the caller that absorbs the failure logs it once
        return DependencyUnavailableError("cache", f"Redis {operation} failed ({type(exc).__name__})")

    async def get(self, key: str) -> str | None:
        try:
            return await self._get_client().get(key)
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._get_client().set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise self._unavailable("set", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._get_client().exists(key))
        except RedisError as exc:
            raise self._unavailable("exists", exc) from exc

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        try:
            if ttl_seconds is None:
                return int(await self._get_client().incr(key))
            async with self._get_client().pipeline(transaction=True) as pipe:
                value, _ = await pipe.incr(key).expire(key, ttl_seconds).execute()
            return int(value)
        except RedisError as exc:
            raise self._unavailable("incr", exc) from exc

    async def decr(self, key: str) -> int:
        try:
            return int(await self._get_client().decr(key))
        except RedisError as exc:
            raise self._unavailable("decr", exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._get_client().ping())
        except RedisError:
            return False
