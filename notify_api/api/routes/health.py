from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from notify_api.core.rate_limit import get_counter_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns a simple status response to verify the API process is up. Never
    rate limited and never touches the counter store.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Readiness check: 200 when the counter store answers, 503 otherwise."""

    store = get_counter_store()
    if await store.ping():
        return JSONResponse(status_code=200, content={"status": "ok", "counter_store": store.name})
    return JSONResponse(
        status_code=503,
        content={"status": "degraded", "counter_store": store.name},
    )
