"""Pydantic schemas for the account endpoints (``/api/auth``)."""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

Username = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$"),
]


class RegisterRequest(BaseModel):
    """New account registration payload."""

    model_config = ConfigDict(extra="forbid")

    username: Username = Field(..., description="Alphanumeric, 3-30 characters.")
    email: EmailStr
    password: str = Field(..., min_length=6, description="At least 6 characters.")


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdateProfileRequest(BaseModel):
    """Profile changes; omitted fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    username: Username | None = None
    email: EmailStr | None = None


class UpdateQuotaRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hourly_quota: int = Field(..., ge=1, description="Requests allowed per hour.")


class AccountView(BaseModel):
    """Account as returned to its owner."""

    id: int
    username: str
    email: str
    api_key: str | None = None
    hourly_quota: int
    created_at: datetime | None = None


class SessionResponse(BaseModel):
    """Returned by register and login."""

    message: str
    user: AccountView
    token: str
    expires_at: datetime


class ProfileResponse(BaseModel):
    user: AccountView


class MessageResponse(BaseModel):
    message: str


class ApiKeyResponse(BaseModel):
    message: str
    api_key: str


class QuotaResponse(BaseModel):
    message: str
    hourly_quota: int


class UsageStats(BaseModel):
    """Request statistics for the authenticated account.

    ``current_hour_requests`` and ``remaining_this_hour`` are None when the
    quota counters cannot be read.
    """

    total_requests_24h: int
    active_days_24h: int
    hourly_quota: int
    current_hour_requests: int | None = None
    remaining_this_hour: int | None = None


class UsageResponse(BaseModel):
    usage: UsageStats
