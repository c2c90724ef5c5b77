"""Tests for service info, health checks, the per-IP throttle and OpenAPI output."""

from fastapi.testclient import TestClient

from conftest import UnavailableCache
from gateway.core.app_factory import create_app
from gateway.core.config import AppSettings


def test_service_info(client):
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert body["version"] == "1.0.0"


def test_liveness_on_both_paths(client):
    for path in ("/health", "/api/health"):
        response = client.get(path)
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["uptime"] >= 0


def test_detailed_health_when_dependencies_answer(client):
    response = client.get("/api/health/detailed")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"] == {"database": "connected", "cache": "connected"}
    assert body["audit"]["running"] is True


def test_detailed_health_reports_cache_outage(client):
    container = client.app.state.container
    real_cache, container.cache = container.cache, UnavailableCache()
    try:
        response = client.get("/api/health/detailed")
    finally:
        container.cache = real_cache

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "degraded"
    assert body["services"]["cache"] == "disconnected"
    assert body["services"]["database"] == "connected"


def test_liveness_ignores_cache_outage(client):
    container = client.app.state.container
    real_cache, container.cache = container.cache, UnavailableCache()
    try:
        response = client.get("/health")
    finally:
        container.cache = real_cache

    assert response.status_code == 200


def test_per_ip_throttle_limits_api_routes(test_settings):
    config = test_settings.model_copy(
        update={"app": AppSettings(rate_limit_enabled=True, rate_limit_requests=2, rate_limit_window_seconds=900)}
    )

    with TestClient(create_app(config)) as client:
        statuses = [client.get("/api/health").status_code for _ in range(2)]
        blocked = client.get("/api/tools")
        unthrottled = client.get("/health")

    assert statuses == [200, 200]
    assert blocked.status_code == 429
    assert blocked.json()["detail"] == "Too many requests from this IP, please try again later."
    assert blocked.headers["X-RateLimit-Limit"] == "2"
    assert int(blocked.headers["Retry-After"]) > 0
    assert unthrottled.status_code == 200


def test_openapi_declares_both_credential_schemes(client):
    schema = client.get("/openapi.json").json()

    schemes = schema["components"]["securitySchemes"]
    assert schemes["BearerAuth"]["scheme"] == "bearer"
    assert schemes["ApiKeyAuth"]["name"] == "X-API-Key"
    assert schema["paths"]["/api/tools/execute/{tool_name}"]["post"]["security"] == [{"ApiKeyAuth": []}]
    assert schema["paths"]["/api/auth/profile"]["get"]["security"] == [{"BearerAuth": []}]
