"""Per-client throttle dependency for ``/api`` routers.

A coarse fixed-window limit per client address (100 requests / 15 minutes
by default), applied before authentication. It guards against floods from a
single address and is unrelated to the per-account hourly quota.

Disabled entirely with ``APP_RATE_LIMIT_ENABLED=false``.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from gateway.core.auth import Container
from gateway.core.logging import fingerprint
from gateway.core.middleware import client_address

logger = logging.getLogger(__name__)


async def enforce_client_throttle(request: Request, container: Container) -> None:
    """Count the request against its client address; 429 once the window is full.

    Raises:
        HTTPException: 429 Too Many Requests, with ``Retry-After`` and
            ``X-RateLimit-*`` headers when enabled.
    """
    app_settings = container.config.app
    if not app_settings.rate_limit_enabled:
        return

    client = client_address(request) or "unknown"
    decision = container.throttle.hit(client)
    if decision.allowed:
        return

    logger.warning(
        "throttle.exceeded",
        extra={
            "client_hash": fingerprint(client),
            "limit": decision.limit,
            "window_s": app_settings.rate_limit_window_seconds,
            "retry_after_s": decision.retry_after_seconds,
        },
    )

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests from this IP, please try again later.",
        headers=decision.headers() if app_settings.rate_limit_include_headers else None,
    )
