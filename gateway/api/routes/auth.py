"""Account endpoints: register, login, profile, API key, quota, usage."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

from gateway.core.auth import Container, SessionIdentity
from gateway.core.middleware import client_address
from gateway.schemas.auth import (
    AccountView,
    ApiKeyResponse,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    QuotaResponse,
    RegisterRequest,
    SessionResponse,
    UpdateProfileRequest,
    UpdateQuotaRequest,
    UsageResponse,
    UsageStats,
)
from gateway.schemas.identity import DEFAULT_HOURLY_QUOTA, AccountRecord
from gateway.services.accounts import RequestContext, Session

router = APIRouter(tags=["Auth"])


def _context(request: Request) -> RequestContext:
    return RequestContext(
        source_address=client_address(request),
        user_agent=request.headers.get("user-agent", ""),
    )


def _view(account: AccountRecord) -> AccountView:
    return AccountView(
        id=account.id,
        username=account.username,
        email=account.email,
        api_key=account.api_key,
        hourly_quota=account.rate_limit_per_hour or DEFAULT_HOURLY_QUOTA,
        created_at=account.created_at,
    )


def _session_response(message: str, session: Session) -> SessionResponse:
    return SessionResponse(
        message=message,
        user=_view(session.account),
        token=session.token.token,
        expires_at=session.token.expires_at,
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, request: Request, container: Container) -> SessionResponse:
    """Create an account and return it with its API key and a session token."""

    session = await container.accounts.register(
        username=payload.username,
        email=str(payload.email),
        password=payload.password,
        context=_context(request),
    )
    return _session_response("User registered successfully", session)


@router.post("/login", response_model=SessionResponse)
async def login(payload: LoginRequest, request: Request, container: Container) -> SessionResponse:
    session = await container.accounts.login(
        email=str(payload.email),
        password=payload.password,
        context=_context(request),
    )
    return _session_response("Login successful", session)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(identity: SessionIdentity, container: Container) -> ProfileResponse:
    account = await container.accounts.get_profile(identity)
    return ProfileResponse(user=_view(account))


@router.put("/profile", response_model=MessageResponse)
async def update_profile(
    payload: UpdateProfileRequest,
    request: Request,
    identity: SessionIdentity,
    container: Container,
) -> MessageResponse:
    await container.accounts.update_profile(
        identity,
        username=payload.username,
        email=str(payload.email) if payload.email else None,
        context=_context(request),
    )
    return MessageResponse(message="Profile updated successfully")


@router.post("/api-key/regenerate", response_model=ApiKeyResponse)
async def regenerate_api_key(request: Request, identity: SessionIdentity, container: Container) -> ApiKeyResponse:
    """Issue a new API key. The previous key is rejected from now on."""

    api_key = await container.accounts.regenerate_api_key(identity, context=_context(request))
    return ApiKeyResponse(message="API key regenerated successfully", api_key=api_key)


@router.put("/quota", response_model=QuotaResponse)
async def update_quota(
    payload: UpdateQuotaRequest,
    request: Request,
    identity: SessionIdentity,
    container: Container,
) -> QuotaResponse:
    hourly_quota = await container.accounts.set_hourly_quota(
        identity,
        payload.hourly_quota,
        context=_context(request),
    )
    return QuotaResponse(message="Rate limit updated successfully", hourly_quota=hourly_quota)


@router.get("/usage", response_model=UsageResponse)
async def usage(identity: SessionIdentity, container: Container) -> UsageResponse:
    stats = await container.accounts.usage(identity)
    return UsageResponse(
        usage=UsageStats(
            total_requests_24h=stats.total_requests_24h,
            active_days_24h=stats.active_days_24h,
            hourly_quota=stats.hourly_quota,
            current_hour_requests=stats.current_hour_requests,
            remaining_this_hour=stats.remaining_this_hour,
        )
    )


@router.post("/deactivate", response_model=MessageResponse)
async def deactivate(request: Request, identity: SessionIdentity, container: Container) -> MessageResponse:
    """Deactivate the account. Every credential it holds stops working."""

    await container.accounts.deactivate(identity, context=_context(request))
    return MessageResponse(message="Account deactivated")
