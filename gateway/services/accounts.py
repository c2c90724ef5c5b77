"""Account lifecycle: registration, login, profile, API keys and quotas.

Every mutation that changes what an API key resolves to (profile edits,
quota changes, key rotation, deactivation) drops the ``api_key:<key>``
cache entry so the next API-key request reloads the account from the store.
Session tokens are not revoked by any of these operations; they are checked
against the store on every request instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from gateway.adapters.identity_store.repository import AccountRepository
from gateway.core.errors import (
    ConflictAppError,
    InvalidCredentialsError,
    NotFoundAppError,
    UnknownAccountError,
    ValidationAppError,
)
from gateway.core.logging import fingerprint
from gateway.core.security import IssuedToken, SessionTokenCodec, generate_api_key, hash_password, verify_password
from gateway.schemas.audit import AuditAction, AuditEvent, utcnow
from gateway.schemas.identity import DEFAULT_HOURLY_QUOTA, AccountRecord, ResolvedIdentity
from gateway.services.audit_recorder import AuditRecorder
from gateway.services.credential_verifier import CredentialVerifier
from gateway.services.quota_controller import QuotaAdmissionController

logger = logging.getLogger(__name__)

USAGE_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class RequestContext:
    """Caller metadata copied into audit entries."""

    source_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Session:
    """An account together with a freshly issued session token."""

    account: AccountRecord
    token: IssuedToken


@dataclass(frozen=True)
class Usage:
    total_requests_24h: int
    active_days_24h: int
    hourly_quota: int
    current_hour_requests: int | None
    remaining_this_hour: int | None


class AccountService:
    """Account operations behind the ``/api/auth`` endpoints.

    Attributes:
        repository: SQL access to accounts and the audit log.
        verifier: Used to invalidate cached API-key identities.
        quota: Used to report current-hour usage.
        audit: Fire-and-forget audit trail.
    """

    def __init__(
        self,
        *,
        repository: AccountRepository,
        verifier: CredentialVerifier,
        quota: QuotaAdmissionController,
        audit: AuditRecorder,
        token_codec: SessionTokenCodec,
        bcrypt_rounds: int = 12,
        api_key_prefix: str = "mcp_",
        default_quota: int = DEFAULT_HOURLY_QUOTA,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.verifier = verifier
        self.quota = quota
        self.audit = audit
        self._codec = token_codec
        self._bcrypt_rounds = bcrypt_rounds
        self._api_key_prefix = api_key_prefix
        self._default_quota = default_quota
        self._clock = clock

    # ── Registration & login ──────────────────────────────────────────────

    async def register(
        self,
        *,
        username: str,
        email: str,
        password: str,
        context: RequestContext | None = None,
    ) -> Session:
        """Create an account with a fresh API key and the default quota.

        Raises:
            ConflictAppError: Username or email is already taken.
        """
        if await self.repository.has_conflict(username=username, email=email):
            raise ConflictAppError(
                code="account_conflict",
                message="User with this email or username already exists",
            )

        password_hash = await asyncio.to_thread(hash_password, password, rounds=self._bcrypt_rounds)
        api_key = generate_api_key(self._api_key_prefix)
        account_id = await self.repository.create(
            username=username,
            email=email,
            password_hash=password_hash,
            api_key=api_key,
            hourly_quota=self._default_quota,
        )

        account = await self.repository.get_by_id(account_id)
        if account is None:
            raise NotFoundAppError(code="account_not_found", message="User not found")

        self._audit(account.id, "user_registered", context, {"username": username, "email": email})
        logger.info("account.registered", extra={"account_id": account.id, "username": username})
        return Session(account=account, token=self._issue(account))

    async def login(self, *, email: str, password: str, context: RequestContext | None = None) -> Session:
        """Exchange email and password for a session token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            UnknownAccountError: The account is deactivated.
        """
        account = await self.repository.get_for_login(email)
        if account is None:
            logger.warning("account.login_failed", extra={"reason": "unknown_email"})
            raise InvalidCredentialsError()

        if not await asyncio.to_thread(verify_password, password, account.password_hash):
            logger.warning("account.login_failed", extra={"reason": "bad_password", "account_id": account.id})
            raise InvalidCredentialsError()

        if not account.is_active:
            logger.warning("account.login_failed", extra={"reason": "inactive", "account_id": account.id})
            raise UnknownAccountError("Account is inactive")

        self._audit(account.id, "user_login", context, {"email": email})
        logger.info("account.login", extra={"account_id": account.id})
        return Session(account=account, token=self._issue(account))

    # ── Profile ───────────────────────────────────────────────────────────

    async def get_profile(self, identity: ResolvedIdentity) -> AccountRecord:
        account = await self.repository.get_by_id(identity.account_id)
        if account is None:
            raise NotFoundAppError(code="account_not_found", message="User not found")
        return account

    async def update_profile(
        self,
        identity: ResolvedIdentity,
        *,
        username: str | None = None,
        email: str | None = None,
        context: RequestContext | None = None,
    ) -> None:
        """Change username and/or email.

        Raises:
            ValidationAppError: Neither field given.
            ConflictAppError: Another account already uses the value.
        """
        if not username and not email:
            raise ValidationAppError(code="no_fields_to_update", message="No fields to update")

        if await self.repository.has_conflict(username=username, email=email, exclude_id=identity.account_id):
            raise ConflictAppError(code="account_conflict", message="Username or email already exists")

        await self.repository.update_profile(identity.account_id, username=username, email=email)
        await self.verifier.invalidate_api_key(identity.api_key)

        changes = {key: value for key, value in (("username", username), ("email", email)) if value}
        self._audit(identity.account_id, "profile_updated", context, changes)
        logger.info("account.profile_updated", extra={"account_id": identity.account_id, "fields": sorted(changes)})

    # ── API key & quota ───────────────────────────────────────────────────

    async def regenerate_api_key(self, identity: ResolvedIdentity, *, context: RequestContext | None = None) -> str:
        """Replace the account's API key; the old key stops resolving immediately."""

        new_key = generate_api_key(self._api_key_prefix)
        await self.repository.set_api_key(identity.account_id, new_key)
        await self.verifier.invalidate_api_key(identity.api_key)

        self._audit(
            identity.account_id,
            "api_key_regenerated",
            context,
            {"api_key_hash": fingerprint(new_key), "previous_api_key_hash": fingerprint(identity.api_key)},
        )
        logger.info("account.api_key_regenerated", extra={"account_id": identity.account_id})
        return new_key

    async def set_hourly_quota(
        self,
        identity: ResolvedIdentity,
        hourly_quota: int,
        *,
        context: RequestContext | None = None,
    ) -> int:
        if hourly_quota < 1:
            raise ValidationAppError(
                code="invalid_quota",
                message="hourly_quota must be a positive number",
                details={"field": "hourly_quota"},
            )

        await self.repository.set_hourly_quota(identity.account_id, hourly_quota)
        await self.verifier.invalidate_api_key(identity.api_key)

        self._audit(identity.account_id, "quota_updated", context, {"hourly_quota": hourly_quota})
        logger.info("account.quota_updated", extra={"account_id": identity.account_id, "limit": hourly_quota})
        return hourly_quota

    async def usage(self, identity: ResolvedIdentity) -> Usage:
        """Audit-log request counts for the last 24 h plus the live hour counter."""

        summary = await self.repository.usage_since(identity.account_id, self._clock() - USAGE_WINDOW)
        limit = self.quota.limit_for(identity)
        current = await self.quota.current_usage(identity.account_id)
        return Usage(
            total_requests_24h=summary.total_requests,
            active_days_24h=summary.active_days,
            hourly_quota=limit,
            current_hour_requests=current,
            remaining_this_hour=None if current is None else max(limit - current, 0),
        )

    async def deactivate(self, identity: ResolvedIdentity, *, context: RequestContext | None = None) -> None:
        await self.repository.deactivate(identity.account_id)
        await self.verifier.invalidate_api_key(identity.api_key)

        self._audit(identity.account_id, "account_deactivated", context, {})
        logger.info("account.deactivated", extra={"account_id": identity.account_id})

    # ── Internals ─────────────────────────────────────────────────────────

    def _issue(self, account: AccountRecord) -> IssuedToken:
        return self._codec.issue(account_id=account.id, email=account.email, username=account.username)

    def _audit(
        self,
        account_id: int,
        action: AuditAction,
        context: RequestContext | None,
        details: dict,
    ) -> None:
        context = context or RequestContext()
        self.audit.record(
            AuditEvent(
                account_id=account_id,
                action=action,
                timestamp=self._clock(),
                source_address=context.source_address,
                user_agent=context.user_agent,
                details=details,
            )
        )
