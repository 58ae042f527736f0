"""Backend selection with per-call fallback.

``BackendManager`` owns the shared (Redis) backend, the in-memory backend and
the shared backend's health flag. Routing per call:

- health flag up: try the shared backend; if that call fails, log it and serve
  this one call from memory (no persistent failover)
- health flag down (or no shared backend configured): go straight to memory
  and skip paying connection timeouts on every request

The flag is written only by connection lifecycle events the shared backend
publishes. Events are queued and applied by a background task under the same
lock that guards the flag.

The two stores keep independent counters: a key's usage in Redis does not
carry over to memory when Redis drops mid-window, nor back when it recovers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass

from app.adapters.rate_limit.base import AbstractCounterBackend, CounterResult, HealthEvent
from app.adapters.rate_limit.in_memory import InMemoryCounterBackend
from app.adapters.rate_limit.redis_backend import RedisCounterBackend
from app.core.errors import BackendAppError

logger = logging.getLogger(__name__)


@dataclass
class BackendHealth:
    connected: bool = False


@dataclass(frozen=True)
class BackendSnapshot:
    """Point-in-time view used by the health endpoint."""

    shared_configured: bool
    connected: bool
    local_store_size: int


class BackendManager(AbstractCounterBackend):
    """Routes increments between the shared and local counter backends."""

    name = "manager"

    def __init__(
        self,
        *,
        local: InMemoryCounterBackend,
        shared: RedisCounterBackend | None = None,
        sweep_interval_seconds: float = 10.0,
    ) -> None:
        self._local = local
        self._shared = shared
        self._sweep_interval = sweep_interval_seconds
        self._health = BackendHealth()
        self._lock = threading.Lock()
        self._events: asyncio.Queue[HealthEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

        if shared is not None:
            shared.subscribe(self.notify)

    @property
    def local(self) -> InMemoryCounterBackend:
        return self._local

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._health.connected

    def notify(self, event: HealthEvent) -> None:
        """Queue a connection lifecycle event for the health task."""
        self._events.put_nowait(event)

    def _apply(self, event: HealthEvent) -> None:
        with self._lock:
            previous = self._health.connected
            self._health.connected = event is HealthEvent.CONNECTED
            current = self._health.connected
        if previous != current:
            logger.info(
                "backend.health_changed",
                extra={"event": event.value, "connected": current},
            )

    def process_pending_events(self) -> int:
        """Apply every queued health event immediately.

        Returns:
            Number of events applied.
        """
        applied = 0
        while True:
            try:
                event = self._events.get_nowait()
            except asyncio.QueueEmpty:
                return applied
            self._apply(event)
            applied += 1

    async def increment(self, key: str, limit: int, duration: int) -> CounterResult:
        """Count one unit for ``key`` on whichever backend should serve it."""
        if self._shared is not None and self.connected:
            outcome = await self._shared.attempt(key, limit, duration)
            if not isinstance(outcome, BackendAppError):
                return outcome
            logger.error(
                "backend.shared_failed",
                extra={
                    "error_code": outcome.code,
                    "error_type": (outcome.details or {}).get("error_type"),
                    "fallback": self._local.name,
                },
            )

        return await self._local.increment(key, limit, duration)

    def snapshot(self) -> BackendSnapshot:
        return BackendSnapshot(
            shared_configured=self._shared is not None,
            connected=self.connected,
            local_store_size=self._local.size(),
        )

    async def _health_loop(self) -> None:
        while True:
            event = await self._events.get()
            self._apply(event)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self._local.sweep()
            if removed:
                logger.debug(
                    "backend.sweep",
                    extra={"removed": removed, "size": self._local.size()},
                )

    async def start(self) -> None:
        """Start the sweep, health and connection-watch background tasks."""
        if self._tasks:
            return
        # Bind a fresh queue to the running loop; earlier events are applied now
        self.process_pending_events()
        self._events = asyncio.Queue()
        self._tasks.append(asyncio.create_task(self._sweep_loop(), name="memory-sweep"))
        self._tasks.append(asyncio.create_task(self._health_loop(), name="backend-health"))
        if self._shared is not None:
            self._tasks.append(
                asyncio.create_task(self._shared.watch_connection(), name="redis-watch")
            )
        logger.info(
            "backend.started",
            extra={
                "shared_configured": self._shared is not None,
                "sweep_interval_s": self._sweep_interval,
            },
        )

    async def stop(self) -> None:
        """Cancel background tasks and close the shared client."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(
                    "backend.task_failed",
                    extra={"task": task.get_name(), "error_type": type(result).__name__},
                )
        if self._shared is not None:
            await self._shared.close()
        self.process_pending_events()
        logger.info("backend.stopped")
