"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    tier: str
    key_rule: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class RateLimitConfigError(AppError):
    """Misconfigured rate limiting policy, surfaced at startup or route wiring."""


class DuplicateTierError(RateLimitConfigError):
    """Raised when a tier name is registered twice."""


class UnknownTierError(RateLimitConfigError):
    """Raised when a tier name is not registered."""


class RegistryFrozenError(RateLimitConfigError):
    """Raised when registering a tier after the registry was frozen."""


class MissingIdentityError(AppError):
    """Raised when no identity signal can be derived for a tier's key rule."""


class CounterStoreUnavailableError(AppError):
    """Raised by counter stores on transient infrastructure failures.

    Absorbed by the rate limiter and converted into the configured
    fail-open/fail-closed decision; never user-visible on its own.
    """


class RateLimitExceededError(AppError):
    """Raised when a request is over its tier quota (HTTP 429)."""


class RateLimiterUnavailableError(AppError):
    """Raised in fail-closed mode when admission cannot be decided (HTTP 503)."""
