from __future__ import annotations

from fastapi import APIRouter, Depends

from notify_api.core.config import settings
from notify_api.core.rate_limit import general_rate_limit, get_counter_store, get_policy_registry
from notify_api.schemas.errors import ErrorResponse
from notify_api.schemas.rate_limit import RateLimitsResponse, TierInfo

router = APIRouter(tags=["Rate limits"])


@router.get(
    "/rate-limits",
    response_model=RateLimitsResponse,
    dependencies=[Depends(general_rate_limit)],
    responses={429: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def list_rate_limits() -> RateLimitsResponse:
    """List the registered rate limit tiers.

    Protected by the ``general`` tier, so the response also carries the
    caller's own X-RateLimit-* headers.
    """

    return RateLimitsResponse(
        enabled=settings.rate_limit.enabled,
        backend=get_counter_store().name,
        failure_mode=settings.rate_limit.failure_mode,
        tiers=[
            TierInfo(
                name=tier.name,
                window_seconds=tier.window_seconds,
                max_requests=tier.max_requests,
                key_rule=tier.key_rule.value,
            )
            for tier in get_policy_registry()
        ],
    )
