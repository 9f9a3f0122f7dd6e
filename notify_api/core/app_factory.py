from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
rate limiting lifecycle) so tests can build isolated instances.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from notify_api.api.routes import auth_router, health_router, rate_limits_router, ws_router
from notify_api.core.config import settings
from notify_api.core.exception_handlers import setup_exception_handlers
from notify_api.core.logging import configure_logging
from notify_api.core.middleware import request_id_middleware
from notify_api.core.openapi import apply_openapi_customizations
from notify_api.core.rate_limit import get_counter_store, get_policy_registry, reset_rate_limiting

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build rate limiting state at startup and close the store on shutdown."""
    registry = get_policy_registry()
    store = get_counter_store()
    logger.info(
        "app.startup",
        extra={
            "tiers": registry.names(),
            "counter_store": store.name,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "failure_mode": settings.rate_limit.failure_mode,
        },
    )
    try:
        yield
    finally:
        await reset_rate_limiting()
        logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Notify API",
        description=(
            "Notify API gateway with tiered, Redis-backed rate limiting. Tiers "
            "(general, auth, strict, websocket) apply fixed windows keyed by "
            "client address, API-key principal or WebSocket connection."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router, prefix="/v1")
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(ws_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
