"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so increment and read are a
  single critical section.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from notify_api.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot


@dataclass
class _CounterRecord:
    count: int
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping expiring counters in a process-local dict.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits. Use the Redis store for shared limits.
    """

    name = "memory"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 1024,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_every: Purge expired records after this many increments.

        Raises:
            ValueError: If sweep_every is invalid.
        """
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")

        self._clock = clock
        self._sweep_every = sweep_every
        self._lock = threading.RLock()
        self._records: dict[str, _CounterRecord] = {}
        self._ops_since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    async def increment_and_get(self, key: str, window_seconds: int) -> CounterSnapshot:
        """Increment the counter for ``key`` and return the new snapshot.

        Raises:
            ValueError: If key is empty or window_seconds is invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is None or record.expires_at <= now:
                record = _CounterRecord(count=0, expires_at=now + window_seconds)
                self._records[key] = record

            record.count += 1
            ttl = max(1, int(math.ceil(record.expires_at - now)))
            snapshot = CounterSnapshot(count=record.count, ttl_remaining=ttl)

            self._ops_since_sweep += 1
            if self._ops_since_sweep >= self._sweep_every:
                self._sweep_expired_locked(now)

            return snapshot

    async def evict(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._records.clear()
            self._ops_since_sweep = 0

    def _sweep_expired_locked(self, now: float) -> None:
        expired = [k for k, record in self._records.items() if record.expires_at <= now]
        for key in expired:
            del self._records[key]
        self._ops_since_sweep = 0
