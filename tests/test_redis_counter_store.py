"""Unit tests for the Redis counter store and the store factory.

The Redis client is mocked; these tests pin the script wiring and the
translation of client failures, not Redis itself.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from notify_api.adapters.counter_store.factory import create_counter_store
from notify_api.adapters.counter_store.in_memory import InMemoryCounterStore
from notify_api.adapters.counter_store.redis_store import INCREMENT_SCRIPT, RedisCounterStore
from notify_api.core.config import RateLimitSettings, RedisSettings, Settings
from notify_api.core.errors import CounterStoreUnavailableError, ValidationAppError


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.eval = AsyncMock(return_value=[3, 42])
    client.delete = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


class TestRedisCounterStore:
    """Script invocation and error translation."""

    @pytest.mark.asyncio
    async def test_increment_runs_single_script(self, redis_client: MagicMock) -> None:
        store = RedisCounterStore(client=redis_client)

        snapshot = await store.increment_and_get("rate_limit:auth:ip:1.2.3.4:7", 900)

        redis_client.eval.assert_awaited_once_with(
            INCREMENT_SCRIPT, 1, "rate_limit:auth:ip:1.2.3.4:7", "900"
        )
        assert snapshot.count == 3
        assert snapshot.ttl_remaining == 42

    def test_script_increments_before_reading_ttl(self) -> None:
        incr = INCREMENT_SCRIPT.index("INCR")
        ttl = INCREMENT_SCRIPT.index("'TTL'")
        expire = INCREMENT_SCRIPT.index("EXPIRE")

        assert incr < ttl < expire

    @pytest.mark.asyncio
    async def test_ttl_is_clamped_to_one_second(self, redis_client: MagicMock) -> None:
        redis_client.eval.return_value = [1, 0]
        store = RedisCounterStore(client=redis_client)

        snapshot = await store.increment_and_get("k", 60)

        assert snapshot.ttl_remaining == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [RedisConnectionError("refused"), RedisTimeoutError("slow"), OSError("reset")],
    )
    async def test_client_failures_become_store_unavailable(
        self, redis_client: MagicMock, error: Exception
    ) -> None:
        redis_client.eval.side_effect = error
        store = RedisCounterStore(client=redis_client)

        with pytest.raises(CounterStoreUnavailableError) as exc_info:
            await store.increment_and_get("k", 60)

        assert exc_info.value.code == "counter_store_unavailable"
        assert exc_info.value.details["backend"] == "redis"

    @pytest.mark.asyncio
    async def test_evict_deletes_key(self, redis_client: MagicMock) -> None:
        store = RedisCounterStore(client=redis_client)

        await store.evict("k")

        redis_client.delete.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_ping_reports_failure_as_false(self, redis_client: MagicMock) -> None:
        redis_client.ping.side_effect = RedisConnectionError("down")
        store = RedisCounterStore(client=redis_client)

        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self, redis_client: MagicMock) -> None:
        store = RedisCounterStore(client=redis_client)

        await store.close()

        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_args(self, redis_client: MagicMock) -> None:
        store = RedisCounterStore(client=redis_client)

        with pytest.raises(ValueError):
            await store.increment_and_get("", 60)
        with pytest.raises(ValueError):
            await store.increment_and_get("k", 0)
        redis_client.eval.assert_not_awaited()


class TestCreateCounterStore:
    """Backend selection from settings."""

    def test_memory_backend(self) -> None:
        cfg = Settings(rate_limit=RateLimitSettings(backend="memory"))

        assert isinstance(create_counter_store(cfg), InMemoryCounterStore)

    def test_redis_backend_uses_connection_url(self) -> None:
        cfg = Settings(
            rate_limit=RateLimitSettings(backend="redis"),
            redis=RedisSettings(url=None, host="cache", port=6380, db=2, socket_timeout_seconds=0.25),
        )

        with patch("notify_api.adapters.counter_store.redis_store.redis.from_url") as from_url:
            store = create_counter_store(cfg)

        assert isinstance(store, RedisCounterStore)
        from_url.assert_called_once_with(
            "redis://cache:6380/2",
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            decode_responses=True,
        )

    def test_unknown_backend(self) -> None:
        cfg = Settings(rate_limit=RateLimitSettings(backend="memory"))
        cfg.rate_limit.backend = "memcached"  # type: ignore[assignment]

        with pytest.raises(ValidationAppError) as exc_info:
            create_counter_store(cfg)

        assert exc_info.value.code == "counter_store_unknown_backend"
