from fastapi import APIRouter, Depends

from notify_api.core.auth import verify_api_key
from notify_api.core.rate_limit import auth_rate_limit, strict_rate_limit
from notify_api.schemas.errors import ErrorResponse
from notify_api.schemas.rate_limit import PrincipalResponse

router = APIRouter(tags=["Auth"])

_error_responses = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "/auth/verify",
    response_model=PrincipalResponse,
    dependencies=[Depends(auth_rate_limit)],
    responses=_error_responses,
)
async def verify_credentials(
    user_id: str | None = Depends(verify_api_key),
) -> PrincipalResponse:
    """Verify the X-API-Key header and return the bound principal.

    The ``auth`` tier runs before the key check and is keyed by client
    address, so failed guesses count toward the quota as well.
    """
    return PrincipalResponse(user_id=user_id, authenticated=user_id is not None)


@router.get(
    "/me",
    response_model=PrincipalResponse,
    dependencies=[Depends(verify_api_key), Depends(strict_rate_limit)],
    responses=_error_responses,
)
async def read_principal(
    user_id: str | None = Depends(verify_api_key),
) -> PrincipalResponse:
    """Return the caller's principal, limited per user by the ``strict`` tier."""
    return PrincipalResponse(user_id=user_id, authenticated=user_id is not None)
