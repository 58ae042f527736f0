"""Counter backend interface.

The admission engine depends on this abstraction only, so the shared (Redis)
and local (in-memory) stores are interchangeable behind the backend manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class HealthEvent(str, Enum):
    """Connection lifecycle notifications published by the shared backend."""

    CONNECTED = "connect"
    ERROR = "error"
    CLOSED = "close"


HealthListener = Callable[[HealthEvent], None]


@dataclass(frozen=True)
class CounterResult:
    """Outcome of a single increment.

    Attributes:
        count: Post-increment number of units consumed in the current window.
        ttl_seconds: Seconds left in the window, rounded up.
    """

    count: int
    ttl_seconds: int


class AbstractCounterBackend(ABC):
    """Interface for fixed-window counter stores."""

    name: str = "abstract"

    @abstractmethod
    async def increment(self, key: str, limit: int, duration: int) -> CounterResult:
        """Consume one unit against ``key``'s current window.

        Starts a new ``duration``-second window when the key has no live
        window. Concurrent calls on the same key never observe the same
        pre-increment count.

        Args:
            key: Namespaced rate key (e.g. ``rl:user-1``).
            limit: Caller's limit for the window; passed through to the store.
            duration: Window length in seconds.

        Returns:
            CounterResult with the post-increment count and remaining TTL.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
