"""Authentication dependencies for FastAPI routes.

Credentials are read from two headers:
- ``Authorization: Bearer <session token>`` (account endpoints)
- ``X-API-Key: <api key>`` (tool endpoints)

Resolution is delegated to ``CredentialVerifier``; these dependencies only
extract headers, log the outcome and attach the identity to
``request.state``. Failures propagate as ``AuthenticationAppError`` (401) or
``DependencyUnavailableError`` (500) and are rendered by the global
exception handlers.

Usage:
    @router.get("/profile")
    async def profile(identity: SessionIdentity): ...
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, Request

from gateway.core.container import ServiceContainer, get_container
from gateway.core.errors import AppError
from gateway.core.logging import fingerprint, set_account_id
from gateway.schemas.identity import ResolvedIdentity
from gateway.services.credential_verifier import CredentialKind, Resolution

logger = logging.getLogger(__name__)

Container = Annotated[ServiceContainer, Depends(get_container)]


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header value.

    Examples:
        >>> bearer_token("Bearer abc.def.ghi")
        'abc.def.ghi'
        >>> bearer_token("Basic dXNlcjpwYXNz") is None
        True
        >>> bearer_token(None) is None
        True
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _attach(request: Request, kind: CredentialKind, identity: ResolvedIdentity | None) -> None:
    request.state.identity = identity
    request.state.credential = kind
    if identity is not None:
        set_account_id(identity.account_id)


async def require_session_identity(
    request: Request,
    container: Container,
    authorization: Annotated[str | None, Header()] = None,
) -> ResolvedIdentity:
    """Resolve the caller from a bearer session token (401 on failure)."""

    try:
        identity = await container.verifier.verify_session_token(bearer_token(authorization))
    except AppError as exc:
        logger.warning(
            "auth.failed",
            extra={"scheme": CredentialKind.SESSION_TOKEN.value, "error_code": exc.code},
        )
        raise

    _attach(request, CredentialKind.SESSION_TOKEN, identity)
    logger.info(
        "auth.success",
        extra={"scheme": CredentialKind.SESSION_TOKEN.value, "account_id": identity.account_id},
    )
    return identity


async def require_api_key_identity(
    request: Request,
    container: Container,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> ResolvedIdentity:
    """Resolve the caller from the ``X-API-Key`` header (401 on failure)."""

    try:
        identity = await container.verifier.verify_api_key(x_api_key)
    except AppError as exc:
        logger.warning(
            "auth.failed",
            extra={
                "scheme": CredentialKind.API_KEY.value,
                "error_code": exc.code,
                "api_key_hash": fingerprint(x_api_key),
            },
        )
        raise

    _attach(request, CredentialKind.API_KEY, identity)
    logger.info(
        "auth.success",
        extra={
            "scheme": CredentialKind.API_KEY.value,
            "account_id": identity.account_id,
            "api_key_hash": fingerprint(x_api_key),
        },
    )
    return identity


async def optional_identity(
    request: Request,
    container: Container,
    authorization: Annotated[str | None, Header()] = None,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> Resolution:
    """Resolve the caller if possible; anonymous callers get ``kind == NONE``."""

    resolution = await container.verifier.resolve(
        bearer_token=bearer_token(authorization),
        api_key=x_api_key,
    )
    _attach(request, resolution.kind, resolution.identity)
    return resolution


SessionIdentity = Annotated[ResolvedIdentity, Depends(require_session_identity)]
ApiKeyIdentity = Annotated[ResolvedIdentity, Depends(require_api_key_identity)]
OptionalIdentity = Annotated[Resolution, Depends(optional_identity)]
