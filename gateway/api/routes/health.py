from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from gateway.core.auth import Container
from gateway.core.errors import DependencyUnavailableError
from gateway.schemas.audit import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_PROBE_KEY = "health-check"


@router.get("")
def health_check(container: Container) -> dict[str, Any]:
    """Liveness check.

    Does not touch the identity store or the cache, so it stays green while
    dependencies are down. Used by load balancers and container probes.
    """

    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "uptime": round(container.uptime_seconds, 3),
    }


@router.get("/detailed")
async def detailed_health_check(container: Container) -> JSONResponse:
    """Dependency check: identity store, cache and audit queue.

    Returns 200 with ``healthy`` when every dependency answers, otherwise 503
    with ``degraded``.
    """

    services = {"database": "connected", "cache": "connected"}
    status = "healthy"

    if not await container.database.ping():
        logger.error("health.database_unreachable")
        services["database"] = "disconnected"
        status = "degraded"

    try:
        await container.cache.set(_PROBE_KEY, "ok", 10)
        if await container.cache.get(_PROBE_KEY) != "ok":
            services["cache"] = "disconnected"
            status = "degraded"
    except DependencyUnavailableError:
        logger.error("health.cache_unreachable")
        services["cache"] = "disconnected"
        status = "degraded"

    body = {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "uptime": round(container.uptime_seconds, 3),
        "services": services,
        "audit": container.audit.stats(),
    }
    return JSONResponse(status_code=200 if status == "healthy" else 503, content=body)


service_router = APIRouter(tags=["Health"])


@service_router.get("/")
def service_info(container: Container) -> dict[str, Any]:
    return {
        "message": container.config.app.name,
        "version": container.config.app.version,
        "status": "running",
        "timestamp": utcnow().isoformat(),
    }
