"""Tests for global exception handlers.

Validates that every domain error maps to its HTTP status code with the
shared error envelope, and that unexpected errors leak nothing.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gateway.core.errors import (
    AppError,
    ConflictAppError,
    DependencyUnavailableError,
    ForbiddenAppError,
    InvalidCredentialsError,
    InvalidTokenError,
    MissingCredentialError,
    NotFoundAppError,
    QuotaExceededError,
    UnknownAccountError,
    ValidationAppError,
)
from gateway.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


def _raise_on(app: FastAPI, path: str, exc: Exception) -> None:
    @app.get(path)
    async def endpoint():
        raise exc


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "exc,status,code",
        [
            (MissingCredentialError(), 401, "MissingCredential"),
            (InvalidTokenError(), 401, "InvalidToken"),
            (UnknownAccountError(), 401, "UnknownAccount"),
            (InvalidCredentialsError(), 401, "InvalidCredentials"),
            (DependencyUnavailableError("identity_store"), 500, "DependencyUnavailable"),
            (ConflictAppError(code="account_conflict", message="exists"), 409, "account_conflict"),
            (NotFoundAppError(code="tool_not_found", message="missing"), 404, "tool_not_found"),
            (ForbiddenAppError(code="tool_disabled", message="disabled"), 403, "tool_disabled"),
            (ValidationAppError(code="invalid_quota", message="bad"), 400, "invalid_quota"),
        ],
    )
    def test_status_mapping(self, client, app_with_handlers, exc, status, code):
        _raise_on(app_with_handlers, "/boom", exc)

        response = client.get("/boom")

        assert response.status_code == status
        assert response.json()["error"]["code"] == code

    def test_authentication_errors_carry_challenge(self, client, app_with_handlers):
        _raise_on(app_with_handlers, "/auth", InvalidTokenError("Token has expired"))

        response = client.get("/auth")

        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"]["message"] == "Token has expired"

    def test_quota_exceeded_sets_retry_after(self, client, app_with_handlers):
        _raise_on(app_with_handlers, "/quota", QuotaExceededError(limit=100, retry_after=3600))

        response = client.get("/quota")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3600"
        error = response.json()["error"]
        assert error["code"] == "QuotaExceeded"
        assert error["message"] == "Rate limit exceeded. Maximum 100 requests per hour."
        assert error["details"] == {"limit": 100, "retry_after": 3600}

    def test_dependency_outage_does_not_name_backend_internals(self, client, app_with_handlers):
        _raise_on(app_with_handlers, "/store", DependencyUnavailableError("identity_store"))

        response = client.get("/store")

        body = response.text
        assert "sqlite" not in body.lower()
        assert "Traceback" not in body

    def test_error_response_format_is_consistent(self, client, app_with_handlers):
        _raise_on(app_with_handlers, "/format", ValidationAppError(code="test", message="test"))

        data = client.get("/format").json()

        assert set(data) == {"error"}
        assert {"code", "message", "request_id"} <= set(data["error"])
        assert "details" not in data["error"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(self, client, app_with_handlers):
        _raise_on(app_with_handlers, "/crash", RuntimeError("database password is hunter2"))

        response = client.get("/crash")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "internal_server_error"
        assert "hunter2" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert "request_id" in data["error"]
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
