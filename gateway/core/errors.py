"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep responses small while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    limit: int
    retry_after: int
    dependency: str
    field: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class ConflictAppError(AppError):
    """Raised when a write would violate a uniqueness constraint."""


class NotFoundAppError(AppError):
    """Raised when a referenced resource does not exist."""


class ForbiddenAppError(AppError):
    """Raised when an authenticated caller may not perform an operation."""


class AuthenticationAppError(AppError):
    """Raised when authentication fails (always mapped to 401)."""


class MissingCredentialError(AuthenticationAppError):
    """No session token or API key was presented where one is required."""

    def __init__(self, message: str = "Authentication credential required") -> None:
        super().__init__(code="MissingCredential", message=message)


class InvalidTokenError(AuthenticationAppError):
    """Session token signature, expiry or structure is invalid."""

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(code="InvalidToken", message=message)


class UnknownAccountError(AuthenticationAppError):
    """Credential is well-formed but resolves to no active account."""

    def __init__(self, message: str = "Account not found") -> None:
        super().__init__(code="UnknownAccount", message=message)


class InvalidCredentialsError(AuthenticationAppError):
    """Email/password login failed."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(code="InvalidCredentials", message=message)


class QuotaExceededError(AppError):
    """The account used up its hourly quota.

    Attributes:
        limit: Configured hourly quota.
        retry_after: Seconds the caller should wait before retrying.
    """

    def __init__(self, limit: int, retry_after: int) -> None:
        super().__init__(
            code="QuotaExceeded",
            message=f"Rate limit exceeded. Maximum {limit} requests per hour.",
            details={"limit": limit, "retry_after": retry_after},
        )
        self.limit = limit
        self.retry_after = retry_after


class DependencyUnavailableError(AppError):
    """The identity store or the lookup cache could not be reached.

    Attributes:
        dependency: ``identity_store`` or ``cache``.
    """

    def __init__(self, dependency: str, message: str | None = None) -> None:
        super().__init__(
            code="DependencyUnavailable",
            message=message or f"{dependency} is unavailable",
            details={"dependency": dependency},
        )
        self.dependency = dependency
