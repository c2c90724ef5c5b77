"""Hourly request quota admission.

Each authenticated request increments a per-account counter stored in the
cache under ``rate_limit:<account_id>:<YYYY-MM-DDTHH>`` (UTC wall-clock hour).
A request is rejected with ``QuotaExceededError`` once the counter has
reached the account's hourly quota (default 100). Counters expire after
3600 s so stale buckets clean themselves up.

Buckets are fixed, not rolling: a caller can spend a full quota at 10:59 and
another at 11:00.

Strategies:
- ``atomic`` (default): ``INCR`` first, compare after, roll back with
  ``DECR`` on rejection. Concurrent requests never overshoot the quota.
- ``read_then_write``: ``GET``, compare, ``SET count+1``. N concurrent
  requests racing on the same counter can overshoot by up to N-1.

If the cache is unreachable the controller fails open: the request is
admitted, a single warning is logged, and the audit event is still recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal

from gateway.adapters.cache.base import AbstractCache
from gateway.core.errors import DependencyUnavailableError, QuotaExceededError
from gateway.schemas.audit import AuditEvent, utcnow
from gateway.schemas.identity import DEFAULT_HOURLY_QUOTA, ResolvedIdentity
from gateway.services.audit_recorder import AuditRecorder

logger = logging.getLogger(__name__)

QuotaStrategy = Literal["atomic", "read_then_write"]

QUOTA_KEY_PREFIX = "rate_limit:"


def hour_bucket(now: datetime) -> str:
    """Return the UTC hour bucket label, e.g. ``2024-05-01T13``."""

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H")


def quota_counter_key(account_id: int, now: datetime) -> str:
    return f"{QUOTA_KEY_PREFIX}{account_id}:{hour_bucket(now)}"


def next_bucket_start(now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
    return start + timedelta(hours=1)


@dataclass(frozen=True)
class QuotaDecision:
    """Result of an admitted request.

    ``used`` and ``remaining`` are None when the counter could not be read
    (fail-open).
    """

    limit: int
    used: int | None
    remaining: int | None
    reset_at: datetime
    fail_open: bool = False


class QuotaAdmissionController:
    """Admits or rejects authenticated requests against an hourly quota."""

    def __init__(
        self,
        cache: AbstractCache,
        audit_recorder: AuditRecorder,
        *,
        default_quota: int = DEFAULT_HOURLY_QUOTA,
        retry_after_seconds: int = 3600,
        counter_ttl_seconds: int = 3600,
        strategy: QuotaStrategy = "atomic",
        enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if strategy not in ("atomic", "read_then_write"):
            raise ValueError(f"unknown quota strategy: {strategy!r}")
        self._cache = cache
        self._audit = audit_recorder
        self._default_quota = default_quota
        self._retry_after = retry_after_seconds
        self._counter_ttl = counter_ttl_seconds
        self._strategy = strategy
        self._enabled = enabled
        self._clock = clock

    @property
    def strategy(self) -> QuotaStrategy:
        return self._strategy

    def limit_for(self, identity: ResolvedIdentity) -> int:
        return identity.hourly_quota or self._default_quota

    async def admit(
        self,
        identity: ResolvedIdentity,
        *,
        endpoint: str,
        method: str,
        source_address: str | None = None,
        user_agent: str | None = None,
    ) -> QuotaDecision:
        """Count the request against the caller's quota and record it.

        Raises:
            QuotaExceededError: The quota for the current hour is exhausted.
                Nothing is recorded and the counter is left unchanged.
        """
        now = self._clock()
        limit = self.limit_for(identity)
        decision = await self._check(identity.account_id, limit, now)

        self._audit.record(
            AuditEvent(
                account_id=identity.account_id,
                action="api_request",
                timestamp=now,
                endpoint=endpoint,
                method=method,
                source_address=source_address,
                user_agent=user_agent,
            )
        )
        return decision

    async def current_usage(self, account_id: int) -> int | None:
        """Requests counted in the current hour bucket, None if the cache is down."""

        key = quota_counter_key(account_id, self._clock())
        try:
            raw = await self._cache.get(key)
        except DependencyUnavailableError:
            logger.warning("quota.usage_unavailable", extra={"account_id": account_id})
            return None
        return _as_count(raw)

    async def _check(self, account_id: int, limit: int, now: datetime) -> QuotaDecision:
        reset_at = next_bucket_start(now)
        if not self._enabled:
            return QuotaDecision(limit=limit, used=None, remaining=None, reset_at=reset_at)

        key = quota_counter_key(account_id, now)
        try:
            if self._strategy == "atomic":
                used = await self._check_atomic(key, limit)
            else:
                used = await self._check_read_then_write(key, limit)
        except DependencyUnavailableError as exc:
            logger.warning(
                "quota.fail_open",
                extra={
                    "account_id": account_id,
                    "strategy": self._strategy,
                    "error_msg": exc.message,
                },
            )
            return QuotaDecision(
                limit=limit,
                used=None,
                remaining=None,
                reset_at=reset_at,
                fail_open=True,
            )

        if used is None:
            logger.info(
                "quota.exceeded",
                extra={"account_id": account_id, "limit": limit, "strategy": self._strategy},
            )
            raise QuotaExceededError(limit=limit, retry_after=self._retry_after)

        return QuotaDecision(
            limit=limit,
            used=used,
            remaining=max(limit - used, 0),
            reset_at=reset_at,
        )

    async def _check_atomic(self, key: str, limit: int) -> int | None:
        count = await self._cache.incr(key, self._counter_ttl)
        if count <= limit:
            return count

        # Over quota: undo our increment so the counter stays at the limit
        try:
            await self._cache.decr(key)
        except DependencyUnavailableError:
            logger.warning("quota.rollback_failed", extra={"key": key})
        return None

    async def _check_read_then_write(self, key: str, limit: int) -> int | None:
        count = _as_count(await self._cache.get(key))
        if count >= limit:
            return None
        await self._cache.set(key, str(count + 1), self._counter_ttl)
        return count + 1


def _as_count(raw: str | None) -> int:
    if raw is None:
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0
