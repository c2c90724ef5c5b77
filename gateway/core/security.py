"""Credential primitives: password hashing, session tokens and API keys.

Session tokens are HMAC-signed JWTs carrying the account id (``sub``),
email, username, ``iat`` and ``exp``. They are verified without a store
round-trip; the caller must still confirm the account exists and is active.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from gateway.core.errors import InvalidTokenError


def hash_password(password: str, *, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def generate_api_key(prefix: str = "mcp_") -> str:
    """Return a new opaque API key: ``<prefix>`` followed by 32 hex characters."""

    return f"{prefix}{secrets.token_hex(16)}"


@dataclass(frozen=True)
class SessionClaims:
    """Verified claims of a session token."""

    account_id: int
    email: str
    username: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


class SessionTokenCodec:
    """Issue and verify signed session tokens."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", ttl: timedelta = timedelta(hours=24)) -> None:
        if not secret:
            raise ValueError("secret must be a non-empty string")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl

    def issue(
        self,
        *,
        account_id: int,
        email: str,
        username: str,
        now: datetime | None = None,
    ) -> IssuedToken:
        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expires_at = issued_at + self._ttl
        claims = {
            "sub": str(account_id),
            "email": email,
            "username": username,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return IssuedToken(token=token, expires_at=expires_at)

    def verify(self, token: str) -> SessionClaims:
        """Verify signature and expiry and return the claims.

        Raises:
            InvalidTokenError: Bad signature, expired, malformed, or missing claims.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("Token has expired") from exc
        except JWTError as exc:
            raise InvalidTokenError() from exc

        try:
            account_id = int(payload["sub"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Token is missing required claims") from exc

        return SessionClaims(
            account_id=account_id,
            email=str(payload.get("email", "")),
            username=str(payload.get("username", "")),
            issued_at=issued_at,
            expires_at=expires_at,
        )
