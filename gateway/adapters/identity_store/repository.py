"""Account and audit queries against the identity store.

All statements are parameterized and written to run unchanged on SQLite,
MySQL and PostgreSQL. Timestamps are bound as naive UTC ``datetime``
values through ``DateTime``-typed parameters, truncated to whole seconds
to match the precision of ``CURRENT_TIMESTAMP`` defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError

from gateway.adapters.identity_store.database import Database, Row
from gateway.core.errors import ConflictAppError
from gateway.schemas.audit import AuditEvent
from gateway.schemas.identity import AccountRecord

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "id, username, email, api_key, rate_limit_per_hour, is_active, created_at"


_INSERT_AUDIT_ENTRY = text(
    "INSERT INTO audit_log (user_id, action, details, ip_address, user_agent, created_at) "
    "VALUES (:user_id, :action, :details, :ip_address, :user_agent, :created_at)"
).bindparams(bindparam("created_at", type_=DateTime))

_USAGE_SINCE = text(
    "SELECT COUNT(*) AS total_requests, COUNT(DISTINCT DATE(created_at)) AS active_days "
    "FROM audit_log WHERE user_id = :user_id AND action = 'api_request' AND created_at >= :since"
).bindparams(bindparam("since", type_=DateTime))


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def _to_record(row: Row) -> AccountRecord:
    data = dict(row)
    created_at = data.get("created_at")
    if isinstance(created_at, str):
        data["created_at"] = datetime.fromisoformat(created_at)
    return AccountRecord.model_validate(data)


@dataclass(frozen=True)
class UsageSummary:
    """Audit-log derived request counts for one account."""

    total_requests: int
    active_days: int


class AccountRepository:
    """SQL access for the ``users`` and ``audit_log`` tables."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @property
    def database(self) -> Database:
        return self._db

    async def _first(self, sql: str, params: dict[str, Any]) -> AccountRecord | None:
        rows = await self._db.query(sql, params)
        if not rows:
            return None
        return _to_record(rows[0])

    async def get_by_id(self, account_id: int) -> AccountRecord | None:
        return await self._first(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = :id",
            {"id": account_id},
        )

    async def get_by_api_key(self, api_key: str) -> AccountRecord | None:
        return await self._first(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE api_key = :api_key",
            {"api_key": api_key},
        )

    async def get_for_login(self, email: str) -> AccountRecord | None:
        """Fetch an account including its password hash."""

        return await self._first(
            f"SELECT {_ACCOUNT_COLUMNS}, password_hash FROM users WHERE email = :email",
            {"email": email},
        )

    async def has_conflict(
        self,
        *,
        username: str | None,
        email: str | None,
        exclude_id: int | None = None,
    ) -> bool:
        """Return True if another account already uses ``username`` or ``email``."""

        clauses: list[str] = []
        params: dict[str, Any] = {}
        if username:
            clauses.append("username = :username")
            params["username"] = username
        if email:
            clauses.append("email = :email")
            params["email"] = email
        if not clauses:
            return False

        sql = f"SELECT id FROM users WHERE ({' OR '.join(clauses)})"
        if exclude_id is not None:
            sql += " AND id != :exclude_id"
            params["exclude_id"] = exclude_id

        rows = await self._db.query(sql, params)
        return bool(rows)

    async def create(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        api_key: str,
        hourly_quota: int,
    ) -> int:
        """Insert a new account and return its id."""

        try:
            result = await self._db.execute(
                "INSERT INTO users (username, email, password_hash, api_key, rate_limit_per_hour, is_active) "
                "VALUES (:username, :email, :password_hash, :api_key, :quota, :active)",
                {
                    "username": username,
                    "email": email,
                    "password_hash": password_hash,
                    "api_key": api_key,
                    "quota": hourly_quota,
                    "active": True,
                },
            )
        except IntegrityError as exc:
            raise ConflictAppError(
                code="account_conflict",
                message="User with this email or username already exists",
            ) from exc

        if result.lastrowid:
            return int(result.lastrowid)

        rows = await self._db.query("SELECT id FROM users WHERE username = :username", {"username": username})
        return int(rows[0]["id"])

    async def update_profile(
        self,
        account_id: int,
        *,
        username: str | None = None,
        email: str | None = None,
    ) -> None:
        assignments: list[str] = []
        params: dict[str, Any] = {"id": account_id}
        if username:
            assignments.append("username = :username")
            params["username"] = username
        if email:
            assignments.append("email = :email")
            params["email"] = email
        if not assignments:
            return

        try:
            await self._db.execute(
                f"UPDATE users SET {', '.join(assignments)}, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
                params,
            )
        except IntegrityError as exc:
            raise ConflictAppError(
                code="account_conflict",
                message="Username or email already exists",
            ) from exc

    async def set_api_key(self, account_id: int, api_key: str) -> None:
        await self._db.execute(
            "UPDATE users SET api_key = :api_key, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
            {"api_key": api_key, "id": account_id},
        )

    async def set_hourly_quota(self, account_id: int, hourly_quota: int) -> None:
        await self._db.execute(
            "UPDATE users SET rate_limit_per_hour = :quota, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
            {"quota": hourly_quota, "id": account_id},
        )

    async def deactivate(self, account_id: int) -> None:
        await self._db.execute(
            "UPDATE users SET is_active = :active, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
            {"active": False, "id": account_id},
        )

    async def insert_audit_entry(self, event: AuditEvent) -> None:
        await self._db.execute(
            _INSERT_AUDIT_ENTRY,
            {
                "user_id": event.account_id,
                "action": event.action,
                "details": json.dumps(event.details_payload(), default=str),
                "ip_address": event.source_address,
                "user_agent": event.user_agent or "",
                "created_at": _utc_naive(event.timestamp),
            },
        )

    async def usage_since(self, account_id: int, since: datetime) -> UsageSummary:
        """Count admitted API requests recorded for ``account_id`` since ``since``."""

        rows = await self._db.query(
            _USAGE_SINCE,
            {"user_id": account_id, "since": _utc_naive(since)},
        )
        row = rows[0] if rows else {}
        return UsageSummary(
            total_requests=int(row.get("total_requests") or 0),
            active_days=int(row.get("active_days") or 0),
        )
