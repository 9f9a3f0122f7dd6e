"""Global exception handlers for consistent error responses.

Every error leaves the service with the same body:
``{"code": <http status>, "message": <reason phrase>, "details": <text>}``.

Design:
- AppError subclasses -> status chosen by type (400, 403, 429, 503, 500)
- Starlette/FastAPI HTTPException (404 for unknown routes) -> same shape
- Request validation errors -> 422 in the same shape
- Unexpected Exception -> generic 500 (safety net, nothing leaked)
"""

import logging
from http import HTTPStatus

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from notify_api.core.config import settings
from notify_api.core.errors import (
    AppError,
    AuthenticationAppError,
    CounterStoreUnavailableError,
    MissingIdentityError,
    RateLimitConfigError,
    RateLimiterUnavailableError,
    RateLimitExceededError,
)
from notify_api.core.logging import get_request_id
from notify_api.schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)


def error_body(status_code: int, details: str | None = None) -> dict:
    """Build the shared error payload for ``status_code``."""
    return ErrorResponse(
        code=status_code,
        message=HTTPStatus(status_code).phrase,
        details=details,
    ).model_dump()


def status_for_app_error(exc: AppError) -> int:
    """Map an application error to its HTTP status code."""
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, (RateLimiterUnavailableError, CounterStoreUnavailableError)):
        return 503
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, RateLimitConfigError):
        return 500
    # ValidationAppError, MissingIdentityError and any other client fault
    return 400


def _rate_limit_headers(exc: AppError) -> dict[str, str]:
    details = exc.details or {}
    headers: dict[str, str] = {}
    if "retry_after" in details:
        headers["Retry-After"] = str(details["retry_after"])
    if isinstance(exc, RateLimitExceededError) and settings.rate_limit.include_headers:
        headers["X-RateLimit-Limit"] = str(details.get("limit", 0))
        headers["X-RateLimit-Remaining"] = str(details.get("remaining", 0))
        headers["X-RateLimit-Reset"] = str(details.get("reset_at", 0))
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with the shared JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code, body and headers.
    """
    status_code = status_for_app_error(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    # Internal configuration problems are not described to clients
    details = exc.message
    if isinstance(exc, (RateLimitConfigError, CounterStoreUnavailableError)):
        details = "The service is misconfigured or degraded. Please try again later."
    if isinstance(exc, MissingIdentityError):
        details = "Unable to identify the caller for rate limiting."

    return JSONResponse(
        status_code=status_code,
        content=error_body(status_code, details),
        headers=_rate_limit_headers(exc) or None,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP exceptions (including unknown routes) in the shared shape."""
    if exc.status_code == 404 and exc.detail == HTTPStatus.NOT_FOUND.phrase:
        details = f"Route {request.method} {request.url.path} not found"
    else:
        details = str(exc.detail) if exc.detail is not None else None

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the shared shape."""
    problems = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body(422, "; ".join(problems) or None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces or exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content=error_body(500, "An unexpected error occurred. Please try again later."),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
