"""Redis-backed counter store for limits shared across workers and hosts.

Increment, first-time expiry and TTL read run inside one Lua script, which
Redis executes atomically, so concurrent increments for a key are linearizable
no matter how many API processes share the server.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from notify_api.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from notify_api.core.errors import CounterStoreUnavailableError

logger = logging.getLogger(__name__)


INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('TTL', KEYS[1])
if ttl < 0 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store using INCR + EXPIRE in a server-side script."""

    name = "redis"

    def __init__(
        self,
        *,
        url: str = "redis://localhost:6379/0",
        socket_timeout_seconds: float = 1.0,
        client: redis.Redis | None = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            url: Redis connection URL (ignored when ``client`` is given).
            socket_timeout_seconds: Connect/read timeout for each call.
            client: Pre-built async client, mainly for tests.
        """
        self._client = client or redis.from_url(
            url,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
            decode_responses=True,
        )

    async def increment_and_get(self, key: str, window_seconds: int) -> CounterSnapshot:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        try:
            count, ttl = await self._client.eval(
                INCREMENT_SCRIPT, 1, key, str(window_seconds)
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailableError(
                code="counter_store_unavailable",
                message="Redis counter store is unavailable",
                details={"backend": self.name, "hint": type(exc).__name__},
            ) from exc

        return CounterSnapshot(count=int(count), ttl_remaining=max(1, int(ttl)))

    async def evict(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailableError(
                code="counter_store_unavailable",
                message="Redis counter store is unavailable",
                details={"backend": self.name, "hint": type(exc).__name__},
            ) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning(
                "counter_store.ping_failed",
                extra={"backend": self.name, "error_type": type(exc).__name__},
            )
            return False

    async def close(self) -> None:
        await self._client.aclose()
