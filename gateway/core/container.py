"""Composition root: builds and owns every long-lived collaborator.

Connections (identity store engine, cache client) are created here, opened in
``start()`` and released in ``stop()``; nothing else in the package holds a
module-level connection. The container lives on ``app.state.container`` and
is reached by route dependencies through ``get_container``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta

from fastapi import Request

from gateway.adapters.cache import AbstractCache, create_cache
from gateway.adapters.identity_store import AccountRepository, Database
from gateway.adapters.rate_limit import AbstractClientThrottle, FixedWindowClientThrottle
from gateway.core.config import Settings
from gateway.core.errors import DependencyUnavailableError
from gateway.core.security import SessionTokenCodec
from gateway.services.accounts import AccountService
from gateway.services.audit_recorder import AuditRecorder, RepositoryAuditSink
from gateway.services.credential_verifier import CredentialVerifier
from gateway.services.quota_controller import QuotaAdmissionController

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    config: Settings
    database: Database
    cache: AbstractCache
    repository: AccountRepository
    token_codec: SessionTokenCodec
    audit: AuditRecorder
    verifier: CredentialVerifier
    quota: QuotaAdmissionController
    accounts: AccountService
    throttle: AbstractClientThrottle
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    async def start(self) -> None:
        """Open connections and start the audit worker.

        The identity store must be reachable; an unreachable cache only logs a
        warning because both the quota and the API-key path tolerate it.
        """
        await self.database.connect()
        if self.config.database.create_schema:
            await self.database.create_schema()

        try:
            await self.cache.connect()
        except DependencyUnavailableError as exc:
            logger.warning("cache.connect_failed", extra={"error_msg": exc.message, "degraded": True})

        await self.audit.start()
        self.started_at = time.monotonic()
        logger.info(
            "gateway.started",
            extra={
                "env": self.config.app_env,
                "db_backend": self.database.backend,
                "cache_backend": self.config.cache.backend,
                "quota_strategy": self.quota.strategy,
            },
        )

    async def stop(self) -> None:
        await self.audit.stop(timeout=self.config.audit.shutdown_timeout_seconds)
        await self.verifier.flush()
        await self.cache.close()
        await self.database.close()
        logger.info("gateway.stopped")


def build_container(config: Settings) -> ServiceContainer:
    """Wire the gateway's services from ``config`` (no I/O happens here)."""

    database = Database(
        config.database.url,
        echo=config.database.echo,
        connect_timeout_seconds=config.database.connect_timeout_seconds,
    )
    cache = create_cache(config.cache)
    repository = AccountRepository(database)
    token_codec = SessionTokenCodec(
        config.auth.jwt_secret,
        algorithm=config.auth.jwt_algorithm,
        ttl=timedelta(hours=config.auth.token_ttl_hours),
    )
    audit = AuditRecorder(
        RepositoryAuditSink(repository),
        queue_size=config.audit.queue_size,
        enabled=config.audit.enabled,
    )
    verifier = CredentialVerifier(
        repository=repository,
        cache=cache,
        token_codec=token_codec,
        identity_ttl_seconds=config.cache.identity_ttl_seconds,
    )
    quota = QuotaAdmissionController(
        cache,
        audit,
        default_quota=config.quota.default_hourly_quota,
        retry_after_seconds=config.quota.retry_after_seconds,
        counter_ttl_seconds=config.quota.counter_ttl_seconds,
        strategy=config.quota.strategy,
        enabled=config.quota.enabled,
    )
    accounts = AccountService(
        repository=repository,
        verifier=verifier,
        quota=quota,
        audit=audit,
        token_codec=token_codec,
        bcrypt_rounds=config.auth.bcrypt_rounds,
        api_key_prefix=config.auth.api_key_prefix,
        default_quota=config.quota.default_hourly_quota,
    )
    throttle = FixedWindowClientThrottle(
        limit=config.app.rate_limit_requests,
        window_seconds=config.app.rate_limit_window_seconds,
    )

    return ServiceContainer(
        config=config,
        database=database,
        cache=cache,
        repository=repository,
        token_codec=token_codec,
        audit=audit,
        verifier=verifier,
        quota=quota,
        accounts=accounts,
        throttle=throttle,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the running application's container."""

    return request.app.state.container
