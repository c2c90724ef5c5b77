"""Credential verification: session tokens and API keys.

Two independent schemes resolve a caller to a ``ResolvedIdentity``:

Session token (``Authorization: Bearer``):
  1. Verify signature and expiry (``InvalidToken`` on any failure).
  2. Load the account by id from the identity store; no row, or an inactive
     account, is ``UnknownAccount``. The token payload is never trusted for
     quota or key fields since those can change after issuance.
  No cache is consulted on this path.

API key (``X-API-Key``):
  1. Read ``api_key:<key>`` from the cache; a value that validates as an
     identity record is used directly. Unreadable values and cache outages
     count as a miss.
  2. On a miss, query the store by key (``UnknownAccount`` if absent/inactive).
  3. Write the identity back with a 300 s TTL in a background task; a failed
     write is logged and never fails the request.

``resolve()`` is the optional mode used by public endpoints: it attempts the
session token, then the API key, and tolerates every failure by returning a
``Resolution`` tagged ``NONE``.

Identity store outages surface as ``DependencyUnavailableError`` (HTTP 500).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from gateway.adapters.cache.base import AbstractCache
from gateway.adapters.identity_store.repository import AccountRepository
from gateway.core.errors import (
    AuthenticationAppError,
    DependencyUnavailableError,
    MissingCredentialError,
    UnknownAccountError,
)
from gateway.core.logging import fingerprint
from gateway.core.security import SessionTokenCodec
from gateway.schemas.identity import AccountRecord, IdentityRecord, ResolvedIdentity

logger = logging.getLogger(__name__)

API_KEY_CACHE_PREFIX = "api_key:"


def api_key_cache_key(api_key: str) -> str:
    return f"{API_KEY_CACHE_PREFIX}{api_key}"


class CredentialKind(str, Enum):
    """Which scheme produced a resolution."""

    SESSION_TOKEN = "session_token"
    API_KEY = "api_key"
    NONE = "none"


@dataclass(frozen=True)
class Resolution:
    """Outcome of the optional (anonymous-tolerant) resolution.

    Attributes:
        kind: Scheme that resolved the caller, or ``NONE``.
        identity: Resolved identity, None when ``kind`` is ``NONE``.
        failures: Error codes of the attempts that were tolerated.
    """

    kind: CredentialKind
    identity: ResolvedIdentity | None = None
    failures: tuple[str, ...] = ()

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


class CredentialVerifier:
    """Resolves session tokens and API keys to account identities."""

    def __init__(
        self,
        *,
        repository: AccountRepository,
        cache: AbstractCache,
        token_codec: SessionTokenCodec,
        identity_ttl_seconds: int = 300,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._codec = token_codec
        self._identity_ttl = identity_ttl_seconds
        self._background: set[asyncio.Task[None]] = set()

    # ── Scheme A: session token ───────────────────────────────────────────

    async def verify_session_token(self, token: str | None) -> ResolvedIdentity:
        """Resolve a bearer session token.

        Raises:
            MissingCredentialError: No token supplied.
            InvalidTokenError: Signature, expiry or claims are invalid.
            UnknownAccountError: The account is gone or inactive.
            DependencyUnavailableError: The identity store is unreachable.
        """
        if not token:
            raise MissingCredentialError("Access token required")

        claims = self._codec.verify(token)
        account = self._ensure_active(
            await self._repository.get_by_id(claims.account_id),
            scheme=CredentialKind.SESSION_TOKEN,
        )

        return ResolvedIdentity.from_record(account)

    # ── Scheme B: API key ─────────────────────────────────────────────────

    async def verify_api_key(self, api_key: str | None) -> ResolvedIdentity:
        """Resolve an API key through the read-through identity cache.

        Raises:
            MissingCredentialError: No key supplied.
            UnknownAccountError: No active account holds this key.
            DependencyUnavailableError: Cache miss and the identity store is unreachable.
        """
        if not api_key:
            raise MissingCredentialError("API key required")

        cache_key = api_key_cache_key(api_key)
        cached = await self._read_cached(cache_key)
        if cached is not None:
            return ResolvedIdentity.from_record(cached)

        account = self._ensure_active(
            await self._repository.get_by_api_key(api_key),
            scheme=CredentialKind.API_KEY,
            message="Invalid API key",
        )

        record = account.to_identity_record()
        self._schedule(self._write_cached(cache_key, record))
        return ResolvedIdentity.from_record(record)

    # ── Optional mode ─────────────────────────────────────────────────────

    async def resolve(self, *, bearer_token: str | None, api_key: str | None) -> Resolution:
        """Try the session token, then the API key; never raise on failure."""

        attempts = (
            (CredentialKind.SESSION_TOKEN, bearer_token, self.verify_session_token),
            (CredentialKind.API_KEY, api_key, self.verify_api_key),
        )
        failures: list[str] = []
        for kind, credential, verify in attempts:
            if not credential:
                continue
            try:
                identity = await verify(credential)
            except (AuthenticationAppError, DependencyUnavailableError) as exc:
                failures.append(exc.code)
                logger.debug(
                    "auth.optional_attempt_failed",
                    extra={"scheme": kind.value, "error_code": exc.code},
                )
                continue
            return Resolution(kind=kind, identity=identity, failures=tuple(failures))

        return Resolution(kind=CredentialKind.NONE, failures=tuple(failures))

    # ── Cache maintenance ─────────────────────────────────────────────────

    async def invalidate_api_key(self, api_key: str | None) -> None:
        """Drop the cached identity for ``api_key`` (best-effort)."""

        if not api_key:
            return
        try:
            await self._cache.delete(api_key_cache_key(api_key))
        except DependencyUnavailableError:
            logger.warning(
                "auth.cache_invalidate_failed",
                extra={"api_key_hash": fingerprint(api_key)},
            )

    async def flush(self) -> None:
        """Wait for pending cache write-backs."""

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Internals ─────────────────────────────────────────────────────────

    def _ensure_active(
        self,
        account: AccountRecord | None,
        *,
        scheme: CredentialKind,
        message: str = "User not found",
    ) -> AccountRecord:
        if account is None:
            logger.warning("auth.unknown_account", extra={"scheme": scheme.value})
            raise UnknownAccountError(message)
        if not account.is_active:
            logger.warning(
                "auth.inactive_account",
                extra={"scheme": scheme.value, "account_id": account.id},
            )
            raise UnknownAccountError("Account is inactive")
        return account

    async def _read_cached(self, cache_key: str) -> IdentityRecord | None:
        try:
            raw = await self._cache.get(cache_key)
        except DependencyUnavailableError:
            logger.warning("auth.cache_read_failed", extra={"fallback": "identity_store"})
            return None

        if raw is None:
            return None

        try:
            return IdentityRecord.model_validate_json(raw)
        except ValidationError:
            logger.error("auth.cache_record_invalid", extra={"fallback": "identity_store"})
            return None

    async def _write_cached(self, cache_key: str, record: IdentityRecord) -> None:
        try:
            await self._cache.set(cache_key, record.model_dump_json(), self._identity_ttl)
        except DependencyUnavailableError:
            logger.warning("auth.cache_write_failed", extra={"ttl_s": self._identity_ttl})

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "auth.background_task_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
