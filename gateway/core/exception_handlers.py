"""Global exception handlers for consistent error responses.

Every ``AppError`` is rendered as::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

Status mapping:
- AuthenticationAppError     → 401 (MissingCredential, InvalidToken, UnknownAccount, InvalidCredentials)
- QuotaExceededError         → 429 with ``Retry-After``
- DependencyUnavailableError → 500
- ConflictAppError           → 409
- NotFoundAppError           → 404
- ForbiddenAppError          → 403
- ValidationAppError / other → 400
- Unexpected Exception       → generic 500 (no internals leaked)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gateway.core.errors import (
    AppError,
    AuthenticationAppError,
    ConflictAppError,
    DependencyUnavailableError,
    ForbiddenAppError,
    NotFoundAppError,
    QuotaExceededError,
)
from gateway.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 401),
    (QuotaExceededError, 429),
    (DependencyUnavailableError, 500),
    (ConflictAppError, 409),
    (NotFoundAppError, 404),
    (ForbiddenAppError, 403),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its mapped status code.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error envelope and any protocol headers.
    """
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers: dict[str, str] = {}
    if isinstance(exc, QuotaExceededError):
        headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, AuthenticationAppError):
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; logs the traceback, returns a generic body."""

    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on ``app`` (domain errors first, then the fallback)."""

    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
