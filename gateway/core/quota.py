"""Hourly quota dependency for API-key protected routes.

``enforce_quota`` authenticates the caller by API key, then asks the
``QuotaAdmissionController`` to admit the request. Rejections raise
``QuotaExceededError`` (rendered as 429 with ``Retry-After``). Admitted
requests carry ``X-Quota-Limit`` and, when the counter was readable,
``X-Quota-Remaining``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request, Response

from gateway.core.auth import ApiKeyIdentity, Container
from gateway.core.middleware import client_address
from gateway.services.quota_controller import QuotaDecision


async def enforce_quota(
    request: Request,
    response: Response,
    identity: ApiKeyIdentity,
    container: Container,
) -> QuotaDecision:
    decision = await container.quota.admit(
        identity,
        endpoint=request.url.path,
        method=request.method,
        source_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    request.state.quota = decision

    response.headers["X-Quota-Limit"] = str(decision.limit)
    if decision.remaining is not None:
        response.headers["X-Quota-Remaining"] = str(decision.remaining)
    response.headers["X-Quota-Reset"] = str(int(decision.reset_at.timestamp()))
    return decision


AdmittedRequest = Annotated[QuotaDecision, Depends(enforce_quota)]
