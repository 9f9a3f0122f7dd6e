"""Factory pattern for creating counter store instances."""

from notify_api.adapters.counter_store.base import AbstractCounterStore
from notify_api.adapters.counter_store.in_memory import InMemoryCounterStore
from notify_api.adapters.counter_store.redis_store import RedisCounterStore
from notify_api.core.config import Settings
from notify_api.core.errors import ValidationAppError


def create_counter_store(settings: Settings) -> AbstractCounterStore:
    """Instantiate the counter store selected by RATE_LIMIT_BACKEND.

    Args:
        settings: Application settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is not supported.
    """
    backend = settings.rate_limit.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        return RedisCounterStore(
            url=settings.redis.connection_url(),
            socket_timeout_seconds=settings.redis.socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="counter_store_unknown_backend",
        message=(
            f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis"
        ),
    )
