"""Rate limiting policy tiers and the registry that holds them.

A tier is a named policy: window length, quota per window and the rule used
to derive the caller identity. Tiers are built once from configuration at
startup, together with any custom tiers added while routes are wired; the
registry is frozen afterwards and only read while serving.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator

from notify_api.core.config import RateLimitSettings
from notify_api.core.errors import DuplicateTierError, RegistryFrozenError, UnknownTierError

logger = logging.getLogger(__name__)


class KeyRule(str, Enum):
    """How a tier buckets callers."""

    IP = "ip"
    USER = "user"
    CONNECTION = "connection"


@dataclass(frozen=True)
class PolicyTier:
    """Immutable rate limiting policy.

    Attributes:
        name: Unique tier name (e.g. ``general``).
        window_seconds: Fixed window length.
        max_requests: Requests admitted per identity per window.
        key_rule: Identity derivation rule.
        message: Human-readable text used when the quota is exceeded.
    """

    name: str
    window_seconds: int
    max_requests: int
    key_rule: KeyRule = KeyRule.IP
    message: str = "Too many requests, please try again later."

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("tier name must be a non-empty string")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")


class PolicyRegistry:
    """Table of named tiers, read-only once frozen."""

    def __init__(self) -> None:
        self._tiers: dict[str, PolicyTier] = {}
        self._frozen = False

    def register(self, tier: PolicyTier) -> PolicyTier:
        """Add a tier to the registry.

        Raises:
            DuplicateTierError: If a tier with the same name exists.
            RegistryFrozenError: If the registry was already frozen.
        """
        if self._frozen:
            raise RegistryFrozenError(
                code="registry_frozen",
                message=f"Cannot register tier '{tier.name}' after startup",
                details={"tier": tier.name},
            )
        if tier.name in self._tiers:
            raise DuplicateTierError(
                code="duplicate_tier",
                message=f"Rate limit tier '{tier.name}' is already registered",
                details={"tier": tier.name},
            )
        self._tiers[tier.name] = tier
        return tier

    def resolve(self, name: str) -> PolicyTier:
        """Return the tier registered under ``name``.

        Raises:
            UnknownTierError: If no such tier exists.
        """
        try:
            return self._tiers[name]
        except KeyError:
            raise UnknownTierError(
                code="unknown_tier",
                message=f"Rate limit tier '{name}' is not registered",
                details={"tier": name, "hint": f"Known tiers: {', '.join(self.names())}"},
            ) from None

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> list[str]:
        return list(self._tiers)

    def __contains__(self, name: object) -> bool:
        return name in self._tiers

    def __iter__(self) -> Iterator[PolicyTier]:
        return iter(self._tiers.values())

    def __len__(self) -> int:
        return len(self._tiers)


def build_policy_registry(
    cfg: RateLimitSettings,
    extra_tiers: Iterable[PolicyTier] = (),
) -> PolicyRegistry:
    """Build the frozen registry of the standard tiers plus ``extra_tiers``.

    Args:
        cfg: Rate limit settings holding per-tier window and quota.
        extra_tiers: Custom tiers registered after the standard ones.

    Returns:
        PolicyRegistry with ``general``, ``auth``, ``strict``, ``websocket``
        and the extra tiers, in that order.

    Raises:
        DuplicateTierError: If an extra tier reuses a registered name.
    """

    registry = PolicyRegistry()
    registry.register(
        PolicyTier(
            name="general",
            window_seconds=cfg.general_window_seconds,
            max_requests=cfg.general_max_requests,
            key_rule=KeyRule.IP,
            message="Too many requests, please try again later.",
        )
    )
    registry.register(
        PolicyTier(
            name="auth",
            window_seconds=cfg.auth_window_seconds,
            max_requests=cfg.auth_max_requests,
            key_rule=KeyRule.IP,
            message="Too many authentication attempts, please try again later.",
        )
    )
    registry.register(
        PolicyTier(
            name="strict",
            window_seconds=cfg.strict_window_seconds,
            max_requests=cfg.strict_max_requests,
            key_rule=KeyRule.USER,
            message="Rate limit exceeded, please slow down.",
        )
    )
    registry.register(
        PolicyTier(
            name="websocket",
            window_seconds=cfg.websocket_window_seconds,
            max_requests=cfg.websocket_max_requests,
            key_rule=KeyRule.CONNECTION,
            message="Too many WebSocket messages, please slow down.",
        )
    )
    for tier in extra_tiers:
        registry.register(tier)
    registry.freeze()

    logger.info(
        "rate_limit.registry_built",
        extra={
            "tiers": {
                tier.name: {
                    "window_s": tier.window_seconds,
                    "max_requests": tier.max_requests,
                    "key_rule": tier.key_rule.value,
                }
                for tier in registry
            }
        },
    )
    return registry
