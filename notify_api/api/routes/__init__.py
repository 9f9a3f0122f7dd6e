from __future__ import annotations

from notify_api.api.routes.auth import router as auth_router
from notify_api.api.routes.health import router as health_router
from notify_api.api.routes.rate_limits import router as rate_limits_router
from notify_api.api.routes.ws import router as ws_router

__all__ = ["auth_router", "health_router", "rate_limits_router", "ws_router"]
