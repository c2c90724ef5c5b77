from __future__ import annotations

from gateway.api.routes.auth import router as auth_router
from gateway.api.routes.health import router as health_router
from gateway.api.routes.health import service_router
from gateway.api.routes.tools import router as tools_router

__all__ = ["auth_router", "health_router", "service_router", "tools_router"]
