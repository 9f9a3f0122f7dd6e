"""API key authentication.

Keys are validated against a comma-separated list from environment variables.
Each entry may bind the key to a principal (``key:user_id``); the resolved
principal is stored on ``request.state.user_id`` so user-keyed rate limit
tiers can bucket by caller.

Design principles:
- Single Responsibility: only resolves API keys to principals
- Dependency Injection: used via FastAPI Depends() for loose coupling
- Configuration-driven: keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from notify_api.core.config import settings
from notify_api.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> dict[str, str]:
    """Parse comma-separated API keys into a key -> principal mapping.

    Args:
        keys_string: Comma-separated ``key`` or ``key:user_id`` entries, or None.

    Returns:
        Mapping of trimmed, non-empty keys to their principal id.

    Examples:
        >>> parse_api_keys("key1:alice, key2")
        {'key1': 'alice', 'key2': 'key2'}
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    principals: dict[str, str] = {}
    for entry in keys_string.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, user_id = entry.partition(":")
        key = key.strip()
        if not key:
            continue
        principals[key] = user_id.strip() or key
    return principals


def validate_api_key(provided_key: str) -> str:
    """Resolve the principal bound to ``provided_key``.

    Args:
        provided_key: API key to validate.

    Returns:
        The principal id for the key.

    Raises:
        AuthenticationAppError: If the key is invalid or no keys are configured.
    """
    principals = parse_api_keys(settings.app.api_keys)

    if not principals:
        logger.error(
            "api_key_validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    user_id = principals.get(provided_key)
    if user_id is None:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": _hash_key(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )
    return user_id


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> str | None:
    """FastAPI dependency for API key authentication.

    Validates the X-API-Key header and attaches the principal to
    ``request.state.user_id``. Can be disabled by setting
    APP_API_KEY_REQUIRED=false, in which case no principal is attached.

    Usage:
        @router.get("/protected", dependencies=[Depends(verify_api_key)])
        async def protected_endpoint():
            return {"message": "Authenticated!"}

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return None

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        user_id = validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    request.state.user_id = user_id
    logger.info("auth.success", extra={"api_key_hash": _hash_key(x_api_key)})
    return user_id
