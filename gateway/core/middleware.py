"""HTTP middleware for request correlation, access logging and response hardening.

The request middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Emits one ``http.access`` log line per request, including the resolved account
- Injects request_id and duration into response headers
- Adds a small set of security headers
- Clears the request context once the response is produced

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from gateway.core.config import settings
from gateway.core.logging import clear_request_context, set_request_id

logger = logging.getLogger("gateway.access")

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def client_address(request: Request) -> str | None:
    """Best-effort source address of the caller."""

    return request.client.host if request.client else None


async def request_id_middleware(request: Request, call_next) -> Response:
    """Correlate, time and log every HTTP request.

    If the client provides the configured request-id header (``X-Request-ID``
    by default) its value is reused, otherwise a UUID is generated. The id is
    echoed back on the response together with ``X-Request-Duration-ms``.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with correlation and security headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        clear_request_context()

    # Dependencies run in a child context; the identity comes back via request.state
    identity = getattr(request.state, "identity", None)
    logger.info(
        "http.access",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": client_address(request),
            "user_agent": request.headers.get("user-agent", ""),
            "account_id": identity.account_id if identity is not None else None,
            "credential": getattr(request.state, "credential", None),
        },
    )

    response.headers[header_name] = request_id
    response.headers["X-Request-Duration-ms"] = f"{duration_ms:.2f}"
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
