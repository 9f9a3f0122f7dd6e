"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable to prevent loading the .env file
and pins the settings every test relies on.
"""

import asyncio
import os
from types import SimpleNamespace

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123:alice,test-api-key-456:bob")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_FAILURE_MODE", "open")
os.environ.setdefault("RATE_LIMIT_MISSING_IDENTITY", "reject")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Deterministic clock used to drive fixed windows."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def make_connection(
    *,
    host: str | None = "203.0.113.7",
    headers: dict[str, str] | None = None,
    user_id: str | None = None,
    connection_id: str | None = None,
) -> SimpleNamespace:
    """Minimal stand-in for a Starlette HTTP connection."""
    state = SimpleNamespace()
    if user_id is not None:
        state.user_id = user_id
    if connection_id is not None:
        state.connection_id = connection_id
    return SimpleNamespace(
        client=SimpleNamespace(host=host) if host is not None else None,
        headers=headers or {},
        state=state,
    )


@pytest.fixture
def clock() -> FakeClock:
    # Start of a window for both 60 s and 900 s tiers
    return FakeClock(start=1_008_000.0)


@pytest.fixture
def connection_factory():
    return make_connection


@pytest.fixture(autouse=True)
def _reset_rate_limit_state(monkeypatch: pytest.MonkeyPatch):
    """Drop cached registry/store so each test starts with empty counters."""
    from notify_api.core import rate_limit
    from notify_api.core.rate_limit import reset_rate_limiting

    monkeypatch.setattr(rate_limit, "_custom_tiers", {})
    asyncio.run(reset_rate_limiting())
    yield
    asyncio.run(reset_rate_limiting())
