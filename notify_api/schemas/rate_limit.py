"""Pydantic schemas for rate limit and principal endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class TierInfo(BaseModel):
    """Public view of a registered policy tier."""

    name: str = Field(..., description="Tier name.")
    window_seconds: int = Field(..., description="Fixed window length in seconds.")
    max_requests: int = Field(..., description="Requests admitted per identity per window.")
    key_rule: Literal["ip", "user", "connection"] = Field(
        ..., description="How callers are bucketed."
    )


class RateLimitsResponse(BaseModel):
    """Registered tiers and global rate limiting switches."""

    enabled: bool = Field(..., description="Whether rate limiting is active.")
    backend: str = Field(..., description="Counter store backend name.")
    failure_mode: Literal["open", "closed"] = Field(
        ..., description="Behaviour when the counter store is unreachable."
    )
    tiers: list[TierInfo] = Field(default_factory=list)


class PrincipalResponse(BaseModel):
    """Principal resolved from the X-API-Key header."""

    user_id: str | None = Field(
        default=None,
        description="Principal id bound to the API key (None when auth is disabled).",
    )
    authenticated: bool = Field(..., description="Whether a key was verified.")
