"""Counter store interfaces.

The rate limiter depends on this abstraction (not the concrete implementation)
so the backing store can be swapped (in-memory for a single worker, Redis for
a fleet) without changes to the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """Counter state observed by a single atomic increment.

    Attributes:
        count: Counter value after the increment.
        ttl_remaining: Seconds until the counter record expires.
    """

    count: int
    ttl_remaining: int


class AbstractCounterStore(ABC):
    """Interface for shared, expiring counters."""

    name: str = "abstract"

    @abstractmethod
    async def increment_and_get(self, key: str, window_seconds: int) -> CounterSnapshot:
        """Atomically increment ``key`` and read it back with its TTL.

        The first increment of a key sets its expiry to ``window_seconds``.
        Increment and read happen as one operation so concurrent callers can
        never lose an update.

        Args:
            key: Composite counter key.
            window_seconds: Expiry applied when the record is created.

        Returns:
            CounterSnapshot with the new count and remaining TTL.

        Raises:
            CounterStoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def evict(self, key: str) -> None:
        """Delete a counter record before it expires."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release any held connections."""
        return None
