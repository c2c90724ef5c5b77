"""Application factory for the FastAPI app.

Builds the app (metadata, middleware, handlers, routers) and its lifespan.
The lifespan is the composition root: it builds the ``ServiceContainer``,
opens connections on startup and closes them on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from gateway.api.routes import auth_router, health_router, service_router, tools_router
from gateway.core.config import Settings, settings
from gateway.core.container import ServiceContainer, build_container
from gateway.core.exception_handlers import setup_exception_handlers
from gateway.core.logging import configure_logging
from gateway.core.middleware import request_id_middleware
from gateway.core.openapi import apply_openapi_customizations
from gateway.core.rate_limit import enforce_client_throttle

logger = logging.getLogger(__name__)

_DEV_ENVIRONMENTS = {"development", "testing"}


def create_app(config: Settings | None = None, *, container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Settings to build from; defaults to the global settings.
        container: Pre-built collaborators (tests inject fakes here). When
            omitted the lifespan builds one from ``config``.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    if config is None:
        config = container.config if container is not None else settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(config.log)

    if config.uses_default_secret and config.app_env not in _DEV_ENVIRONMENTS:
        logger.warning(
            "config.default_jwt_secret",
            extra={"env": config.app_env, "hint": "Set AUTH_JWT_SECRET"},
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = container or build_container(config)
        await services.start()
        app.state.container = services
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(
        title=config.app.name,
        description=(
            "Gateway that authenticates callers with session tokens or API keys, "
            "enforces a per-account hourly request quota and records an audit "
            "trail of authenticated actions."
        ),
        version=config.app.version,
        debug=config.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware (last added runs first)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    # Routers; every /api route passes the per-client throttle first
    throttled = [Depends(enforce_client_throttle)]
    app.include_router(service_router)
    app.include_router(health_router, prefix="/health")
    app.include_router(health_router, prefix="/api/health", dependencies=throttled)
    app.include_router(auth_router, prefix="/api/auth", dependencies=throttled)
    app.include_router(tools_router, prefix="/api/tools", dependencies=throttled)

    apply_openapi_customizations(app)

    return app
