"""OpenAPI customization: security schemes, per-route requirements and tags.

Two schemes are documented:
- ``BearerAuth``: session token in ``Authorization: Bearer`` (account routes)
- ``ApiKeyAuth``: API key in ``X-API-Key`` (tool execution)

Routes are matched by path prefix; health, registration, login and the tool
catalog are documented as public.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_PUBLIC_PATHS = {"/", "/health", "/api/health", "/api/health/detailed", "/api/auth/register", "/api/auth/login"}

_OPTIONAL_AUTH_PATHS = {"/api/tools", "/api/tools/"}


def _security_for(path: str) -> list[dict[str, list]]:
    if path in _PUBLIC_PATHS:
        return []
    if path in _OPTIONAL_AUTH_PATHS:
        return [{}, {"BearerAuth": []}, {"ApiKeyAuth": []}]
    if path.startswith("/api/tools"):
        return [{"ApiKeyAuth": []}]
    return [{"BearerAuth": []}]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with auth schemes and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Session token returned by /api/auth/register or /api/auth/login.",
            },
        )
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Account API key (see /api/auth/profile).",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Auth", "description": "Registration, login and account management."},
            {"name": "Tools", "description": "Metered tool execution endpoints."},
            {"name": "Health", "description": "Liveness and dependency checks."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            security = _security_for(path)
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
