"""In-memory fixed-window counter backend.

Notes:
- Per-process only: counters are lost on restart and are not shared with
  other workers or with the Redis backend.
- Thread-safe: one lock guards every read-increment-write and every sweep
  deletion, so an increment and a sweep never interleave on the same record.
- Expired records are removed by ``sweep()``, which the backend manager runs
  on a fixed period.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterBackend, CounterResult


@dataclass
class CounterRecord:
    count: int
    expires_at_ms: int


class InMemoryCounterBackend(AbstractCounterBackend):
    """Fixed-window counters keyed by rate key.

    A window starts at the first increment of a key (not aligned to clock
    boundaries) and lasts ``duration`` seconds. Once it has elapsed the next
    increment starts a fresh window with count 1.
    """

    name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory backend.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, CounterRecord] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def increment_sync(self, key: str, duration: int) -> CounterResult:
        """Synchronous core of ``increment``; safe to call from any thread.

        Raises:
            ValueError: If key is empty or duration is not positive.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if duration < 1:
            raise ValueError("duration must be >= 1")

        with self._lock:
            now_ms = self._now_ms()
            record = self._records.get(key)

            if record is not None and record.expires_at_ms > now_ms:
                record.count += 1
                ttl = math.ceil((record.expires_at_ms - now_ms) / 1000)
                return CounterResult(count=record.count, ttl_seconds=ttl)

            self._records[key] = CounterRecord(
                count=1,
                expires_at_ms=now_ms + duration * 1000,
            )
            return CounterResult(count=1, ttl_seconds=duration)

    async def increment(self, key: str, limit: int, duration: int) -> CounterResult:
        return self.increment_sync(key, duration)

    def sweep(self) -> int:
        """Delete every record whose window has elapsed.

        Returns:
            Number of records removed.
        """
        with self._lock:
            now_ms = self._now_ms()
            expired = [k for k, r in self._records.items() if r.expires_at_ms <= now_ms]
            for key in expired:
                del self._records[key]
            return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, key: str) -> CounterRecord | None:
        """Return a copy of the stored record for ``key``, expired or not."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return CounterRecord(count=record.count, expires_at_ms=record.expires_at_ms)
