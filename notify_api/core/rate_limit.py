"""Rate limiting for FastAPI routes and WebSocket messages.

This module wires the counter store, the policy registry and the evaluator
into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency object only.
- Swap-friendly: the counter store lives behind an abstract interface
  (in-memory or Redis).
- Explicit failure policy: store outages either admit (fail-open, default)
  or reject with 503 (fail-closed), never crash the request.

Per request, exactly one counter increment is issued for (tier, identity,
window), whatever the outcome. Rejected attempts count toward the quota, so
retry storms cannot reset the window.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import time
from typing import Callable

from fastapi import Request, Response
from starlette.requests import HTTPConnection

from notify_api.adapters.counter_store.base import AbstractCounterStore
from notify_api.adapters.counter_store.factory import create_counter_store
from notify_api.core.config import RateLimitSettings, settings
from notify_api.core.errors import (
    CounterStoreUnavailableError,
    MissingIdentityError,
    RateLimiterUnavailableError,
    RateLimitExceededError,
)
from notify_api.core.evaluator import (
    AdmissionDecision,
    build_counter_key,
    evaluate,
    window_bucket,
)
from notify_api.core.policies import KeyRule, PolicyRegistry, PolicyTier, build_policy_registry

logger = logging.getLogger(__name__)

SHARED_IDENTITY = "anonymous"


def _hash_identity(identity: str) -> str:
    """Hash the identity for logging without exposing addresses or ids."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


def _client_address(connection: HTTPConnection, trust_forwarded_for: bool) -> str | None:
    if trust_forwarded_for:
        forwarded = connection.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return connection.client.host if connection.client else None


class RateLimiter:
    """Admission control for a single tier.

    One instance exists per tier; instances differ only in their policy.
    """

    def __init__(
        self,
        tier: PolicyTier,
        *,
        store: AbstractCounterStore,
        config: RateLimitSettings,
        trust_forwarded_for: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tier = tier
        self._store = store
        self._config = config
        self._trust_forwarded_for = trust_forwarded_for
        self._clock = clock

    def derive_identity(self, connection: HTTPConnection) -> str:
        """Derive the identity key for ``connection`` per the tier's key rule.

        Args:
            connection: HTTP request or WebSocket.

        Returns:
            Namespaced identity (``ip:...``, ``user:...`` or ``conn:...``).

        Raises:
            MissingIdentityError: If the rule's identity signal is absent.
        """

        rule = self.tier.key_rule
        value: str | None
        if rule is KeyRule.IP:
            value = _client_address(connection, self._trust_forwarded_for)
        elif rule is KeyRule.USER:
            value = getattr(connection.state, "user_id", None)
        else:
            value = getattr(connection.state, "connection_id", None)

        if not value:
            raise MissingIdentityError(
                code="missing_identity",
                message=f"Unable to derive a {rule.value} identity for rate limiting",
                details={"tier": self.tier.name, "key_rule": rule.value},
            )
        prefix = "conn" if rule is KeyRule.CONNECTION else rule.value
        return f"{prefix}:{value}"

    def _resolve_identity(self, connection: HTTPConnection) -> str:
        try:
            return self.derive_identity(connection)
        except MissingIdentityError:
            policy = self._config.missing_identity
            logger.warning(
                "rate_limit.missing_identity",
                extra={
                    "tier": self.tier.name,
                    "key_rule": self.tier.key_rule.value,
                    "policy": policy,
                },
            )
            if policy == "shared":
                return SHARED_IDENTITY
            raise

    async def check(self, connection: HTTPConnection) -> AdmissionDecision:
        """Record one attempt for ``connection`` and decide admission.

        Args:
            connection: HTTP request or WebSocket.

        Returns:
            AdmissionDecision for this attempt.

        Raises:
            MissingIdentityError: No identity and the policy is ``reject``.
            RateLimiterUnavailableError: Store failure in fail-closed mode.
        """

        identity = self._resolve_identity(connection)
        tier = self.tier

        now = self._clock()
        bucket = window_bucket(now, tier.window_seconds)
        window_end = (bucket + 1) * tier.window_seconds
        expire_in = max(1, int(math.ceil(window_end - now)))
        key = build_counter_key(self._config.key_prefix, tier.name, identity, bucket)

        try:
            snapshot = await asyncio.wait_for(
                self._store.increment_and_get(key, expire_in),
                timeout=self._config.store_timeout_seconds,
            )
        except (CounterStoreUnavailableError, asyncio.TimeoutError) as exc:
            return self._on_store_failure(exc, identity=identity, now=now, expire_in=expire_in)

        decision = evaluate(
            snapshot.count,
            tier.max_requests,
            ttl_remaining=snapshot.ttl_remaining,
            now=now,
        )

        log_extra = {
            "tier": tier.name,
            "key_hash": _hash_identity(identity),
            "count": snapshot.count,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "window_s": tier.window_seconds,
        }
        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
            )
        return decision

    def _on_store_failure(
        self,
        exc: Exception,
        *,
        identity: str,
        now: float,
        expire_in: int,
    ) -> AdmissionDecision:
        mode = self._config.failure_mode
        logger.warning(
            "rate_limit.store_unavailable",
            extra={
                "tier": self.tier.name,
                "key_hash": _hash_identity(identity),
                "failure_mode": mode,
                "error_type": type(exc).__name__,
            },
        )
        if mode == "closed":
            raise RateLimiterUnavailableError(
                code="rate_limiter_unavailable",
                message="Rate limiting is temporarily unavailable. Try again later.",
                details={
                    "tier": self.tier.name,
                    "retry_after": min(expire_in, self._config.unavailable_retry_after_seconds),
                },
            ) from exc

        return AdmissionDecision(
            allowed=True,
            limit=self.tier.max_requests,
            remaining=self.tier.max_requests,
            reset_at=int(math.ceil(now + expire_in)),
            retry_after_seconds=None,
            degraded=True,
        )

    def exceeded_error(self, decision: AdmissionDecision) -> RateLimitExceededError:
        """Build the 429 error for a rejected decision."""
        retry_after = decision.retry_after_seconds or 1
        return RateLimitExceededError(
            code="rate_limit_exceeded",
            message=f"{self.tier.message} Retry after {retry_after} seconds.",
            details={
                "tier": self.tier.name,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset_at": decision.reset_at,
                "retry_after": retry_after,
            },
        )


def rate_limit_headers(decision: AdmissionDecision) -> dict[str, str]:
    """Quota metadata headers for an admission decision."""
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


_registry: PolicyRegistry | None = None
_store: AbstractCounterStore | None = None
_limiters: dict[str, RateLimiter] = {}
_state_config: str | None = None
# Tiers added through create_rate_limit; kept across rebuilds and resets
_custom_tiers: dict[str, PolicyTier] = {}
_closing: set[asyncio.Task] = set()


def _current_config() -> str:
    return (
        settings.rate_limit.model_dump_json()
        + settings.redis.connection_url()
        + str(settings.app.trust_forwarded_for)
    )


def _retire_store(store: AbstractCounterStore) -> None:
    """Close a replaced store, scheduling it on the running loop if any."""
    logger.info("rate_limit.store_replaced", extra={"counter_store": store.name})
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(store.close())
        return
    task = loop.create_task(store.close())
    _closing.add(task)
    task.add_done_callback(_closing.discard)


def _ensure_state() -> None:
    """Build registry and store once, rebuilding if configuration changed.

    The state is cached in-module so counters survive across requests. If
    configuration changes (primarily in tests), everything is rebuilt and the
    previous store is closed.
    """

    global _registry, _store, _limiters, _state_config

    config = _current_config()
    if _registry is None or _store is None or _state_config != config:
        previous = _store
        _registry = build_policy_registry(
            settings.rate_limit, extra_tiers=_custom_tiers.values()
        )
        _store = create_counter_store(settings)
        _limiters = {}
        _state_config = config
        if previous is not None:
            _retire_store(previous)


def get_policy_registry() -> PolicyRegistry:
    """Return the process-wide policy registry."""
    _ensure_state()
    assert _registry is not None
    return _registry


def get_counter_store() -> AbstractCounterStore:
    """Return the process-wide counter store."""
    _ensure_state()
    assert _store is not None
    return _store


def get_rate_limiter(tier_name: str) -> RateLimiter:
    """Return the cached limiter for ``tier_name``.

    Raises:
        UnknownTierError: If the tier is not registered.
    """

    _ensure_state()
    limiter = _limiters.get(tier_name)
    if limiter is None:
        tier = get_policy_registry().resolve(tier_name)
        limiter = RateLimiter(
            tier,
            store=get_counter_store(),
            config=settings.rate_limit,
            trust_forwarded_for=settings.app.trust_forwarded_for,
        )
        _limiters[tier_name] = limiter
    return limiter


async def reset_rate_limiting() -> None:
    """Close the counter store and drop cached state (shutdown and tests)."""

    global _registry, _store, _limiters, _state_config

    store = _store
    _registry = None
    _store = None
    _limiters = {}
    _state_config = None
    if store is not None:
        await store.close()


class RateLimitDependency:
    """FastAPI dependency enforcing one tier.

    Usage:
        @router.get("/items", dependencies=[Depends(general_rate_limit)])
        async def list_items():
            ...
    """

    def __init__(self, tier_name: str) -> None:
        self.tier_name = tier_name

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RateLimitDependency(tier_name={self.tier_name!r})"

    def limiter(self) -> RateLimiter | None:
        """Limiter for this tier, or None while rate limiting is disabled.

        Used where a dependency cannot run per unit of work, e.g. once per
        WebSocket message.
        """
        if not settings.rate_limit.enabled:
            return None
        return get_rate_limiter(self.tier_name)

    async def __call__(self, request: Request, response: Response) -> AdmissionDecision | None:
        """Consume one unit of the caller's budget.

        Raises:
            RateLimitExceededError: 429 when the quota is exhausted.
            MissingIdentityError: 400 when no identity can be derived.
            RateLimiterUnavailableError: 503 on store failure in fail-closed mode.
        """

        limiter = self.limiter()
        if limiter is None:
            return None

        decision = await limiter.check(request)
        if not decision.allowed:
            raise limiter.exceeded_error(decision)

        if settings.rate_limit.include_headers and not decision.degraded:
            response.headers.update(rate_limit_headers(decision))
        return decision


def register_tier(tier: PolicyTier) -> PolicyTier:
    """Add a custom tier next to the standard ones.

    Custom tiers survive configuration rebuilds and ``reset_rate_limiting``.
    Registering an identical tier again is a no-op.

    Raises:
        DuplicateTierError: If another tier already uses ``tier.name``.
    """

    global _registry

    if _custom_tiers.get(tier.name) == tier:
        return tier

    # Build the candidate first so a clash leaves the live registry untouched
    registry = build_policy_registry(
        settings.rate_limit, extra_tiers=[*_custom_tiers.values(), tier]
    )
    _custom_tiers[tier.name] = tier
    if _registry is not None:
        _registry = registry
    return tier


def create_rate_limit(tier: str | PolicyTier) -> RateLimitDependency:
    """Create a dependency for a registered tier or a custom one.

    A name is resolved immediately so a typo fails at route wiring time rather
    than on the first request. A ``PolicyTier`` is registered first.

    Usage:
        uploads_rate_limit = create_rate_limit(
            PolicyTier(name="uploads", window_seconds=60, max_requests=3)
        )

    Raises:
        UnknownTierError: If the tier name is not registered.
        DuplicateTierError: If a custom tier reuses a registered name.
    """

    tier_name = register_tier(tier).name if isinstance(tier, PolicyTier) else tier
    get_policy_registry().resolve(tier_name)
    return RateLimitDependency(tier_name)


general_rate_limit = create_rate_limit("general")
auth_rate_limit = create_rate_limit("auth")
strict_rate_limit = create_rate_limit("strict")
websocket_rate_limit = create_rate_limit("websocket")
