"""Counter store adapters.

This package provides a small abstraction layer so the service can run with
an in-memory store on a single worker and switch to Redis for shared limits
without changing the rate limiting layer.
"""

from notify_api.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from notify_api.adapters.counter_store.factory import create_counter_store
from notify_api.adapters.counter_store.in_memory import InMemoryCounterStore
from notify_api.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterSnapshot",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
