"""Identity shapes shared by the credential verifier, quota controller and routes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_HOURLY_QUOTA = 100


class IdentityRecord(BaseModel):
    """Projection of an account row as stored in the identity cache.

    Serialized to JSON under ``api_key:<key>``; a cached value that does not
    validate against this model is treated as a cache miss.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    username: str
    email: str
    api_key: str | None = None
    rate_limit_per_hour: int | None = Field(default=None, ge=1)


class AccountRecord(IdentityRecord):
    """Full account row as read from the identity store (never cached)."""

    is_active: bool = True
    password_hash: str | None = Field(default=None, repr=False)
    created_at: datetime | None = None

    def to_identity_record(self) -> IdentityRecord:
        return IdentityRecord(
            id=self.id,
            username=self.username,
            email=self.email,
            api_key=self.api_key,
            rate_limit_per_hour=self.rate_limit_per_hour,
        )


@dataclass(frozen=True)
class ResolvedIdentity:
    """Authenticated caller attached to the request context.

    Attributes:
        account_id: Account primary key.
        email: Account email.
        username: Account username.
        api_key: Current API key (None when the account has none).
        hourly_quota: Configured quota; None means the default applies.
    """

    account_id: int
    email: str
    username: str
    api_key: str | None = None
    hourly_quota: int | None = None

    @classmethod
    def from_record(cls, record: IdentityRecord) -> "ResolvedIdentity":
        return cls(
            account_id=record.id,
            email=record.email,
            username=record.username,
            api_key=record.api_key,
            hourly_quota=record.rate_limit_per_hour,
        )

    def public_dict(self) -> dict[str, Any]:
        """Identity fields safe to return to the caller."""

        return {
            "account_id": self.account_id,
            "username": self.username,
            "email": self.email,
            "hourly_quota": self.hourly_quota or DEFAULT_HOURLY_QUOTA,
        }
