"""Fixed-window admission decision.

Everything here is pure: the caller supplies the counter snapshot and the
current time, so decisions can be unit tested without a store or a clock.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of one admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        degraded: True when admitted without consulting the counter store.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    degraded: bool = False


def evaluate(
    current_count: int,
    max_requests: int,
    *,
    ttl_remaining: int = 0,
    now: float = 0.0,
) -> AdmissionDecision:
    """Decide admission for a counter value.

    The count already includes the current attempt, so the request is allowed
    while ``current_count <= max_requests``.

    Args:
        current_count: Counter value after this attempt was recorded.
        max_requests: Quota per window.
        ttl_remaining: Seconds until the window's counter expires.
        now: Current UNIX time, used only to express ``reset_at``.

    Returns:
        AdmissionDecision for the attempt.

    Examples:
        >>> evaluate(5, 5).allowed
        True
        >>> evaluate(6, 5).allowed
        False
    """

    allowed = current_count <= max_requests
    remaining = max(0, max_requests - current_count)
    reset_at = int(math.ceil(now + max(0, ttl_remaining)))
    retry_after = None if allowed else max(1, int(ttl_remaining))
    return AdmissionDecision(
        allowed=allowed,
        limit=max_requests,
        remaining=remaining,
        reset_at=reset_at,
        retry_after_seconds=retry_after,
    )


def window_bucket(now: float, window_seconds: int) -> int:
    """Index of the fixed window containing ``now``."""
    return int(now // window_seconds)


def build_counter_key(prefix: str, tier: str, identity: str, bucket: int) -> str:
    """Compose the counter key for a (tier, identity, window) triple."""
    return f"{prefix}:{tier}:{identity}:{bucket}"
