"""Redis-backed fixed-window counter backend.

The increment and the conditional expiry run inside one Lua script and execute
atomically on the server; a key is never left incremented without an expiry.

Calls are never retried here: the client is built with retries disabled and
short socket timeouts, and every failure surfaces as ``BackendAppError`` so the
backend manager can serve the call from the in-memory store instead.

Connection health is reported to subscribers as ``HealthEvent`` messages:
- ``watch_connection()`` pings on an interval and reconnects with linear
  backoff, giving up (``CLOSED``) after the configured number of attempts
- connection-class failures during ``increment`` publish ``ERROR``
Only state transitions are published.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.adapters.rate_limit.base import (
    AbstractCounterBackend,
    CounterResult,
    HealthEvent,
    HealthListener,
)
from app.core.errors import BackendAppError

logger = logging.getLogger(__name__)


RATE_LIMIT_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local duration = tonumber(ARGV[2])

local current = redis.call('INCR', key)
if current == 1 then
  redis.call('EXPIRE', key, duration)
end

local ttl = redis.call('TTL', key)
return {current, ttl}
"""

_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)


class RedisCounterBackend(AbstractCounterBackend):
    """Counter backend executing the fixed-window script on Redis."""

    name = "redis"

    def __init__(
        self,
        client: Redis,
        *,
        health_check_interval_seconds: float = 5.0,
        max_reconnect_attempts: int = 3,
        reconnect_backoff_ms: int = 200,
        reconnect_backoff_cap_ms: int = 2000,
    ) -> None:
        self._client = client
        self._script = client.register_script(RATE_LIMIT_SCRIPT)
        self._health_check_interval = health_check_interval_seconds
        self._max_reconnect_attempts = max_reconnect_attempts
        self._backoff_ms = reconnect_backoff_ms
        self._backoff_cap_ms = reconnect_backoff_cap_ms
        self._listeners: list[HealthListener] = []
        self._last_event: HealthEvent | None = None

    def subscribe(self, listener: HealthListener) -> None:
        """Register a callback for connection lifecycle events."""
        self._listeners.append(listener)

    def _publish(self, event: HealthEvent) -> None:
        if event is self._last_event:
            return
        self._last_event = event
        for listener in self._listeners:
            listener(event)

    def reconnect_delay(self, attempt: int) -> float:
        """Linear backoff in seconds for the given 1-based reconnect attempt."""
        return min(attempt * self._backoff_ms, self._backoff_cap_ms) / 1000

    async def attempt(self, key: str, limit: int, duration: int) -> CounterResult | BackendAppError:
        """Run the increment script, returning any failure instead of raising it.

        Connection-class failures also publish ``ERROR``; every other exception
        (command errors, malformed replies, client misuse) leaves health as is.
        """
        try:
            raw: Any = await self._script(keys=[key], args=[limit, duration])
            count, ttl = int(raw[0]), int(raw[1])
        except _CONNECTION_ERRORS as exc:
            self._publish(HealthEvent.ERROR)
            return BackendAppError(
                code="shared_backend_unavailable",
                message="Shared counter backend is unreachable",
                details={"backend": self.name, "error_type": type(exc).__name__},
            )
        except Exception as exc:
            return BackendAppError(
                code="shared_backend_error",
                message="Shared counter backend returned an error",
                details={"backend": self.name, "error_type": type(exc).__name__},
            )
        return CounterResult(count=count, ttl_seconds=ttl)

    async def increment(self, key: str, limit: int, duration: int) -> CounterResult:
        outcome = await self.attempt(key, limit, duration)
        if isinstance(outcome, BackendAppError):
            raise outcome
        return outcome

    async def ping(self) -> bool:
        """Check connectivity once, publishing the resulting health event.

        Any exception counts as a failed ping so the watcher keeps running.
        """
        try:
            await self._client.ping()
        except Exception as exc:
            if self._last_event is not HealthEvent.ERROR:
                logger.error("redis.error", extra={"error_type": type(exc).__name__, "error_msg": str(exc)})
            self._publish(HealthEvent.ERROR)
            return False
        if self._last_event is not HealthEvent.CONNECTED:
            logger.info("redis.connected")
        self._publish(HealthEvent.CONNECTED)
        return True

    async def watch_connection(self) -> None:
        """Monitor the connection until cancelled or reconnects are exhausted.

        A healthy connection is pinged every ``health_check_interval_seconds``.
        After a failure, up to ``max_reconnect_attempts`` pings are retried
        with linear backoff; when all fail the connection is abandoned and
        ``CLOSED`` is published, leaving the gateway on the in-memory store.
        """
        failures = 0
        while True:
            if await self.ping():
                failures = 0
                await asyncio.sleep(self._health_check_interval)
                continue

            failures += 1
            if failures > self._max_reconnect_attempts:
                logger.warning(
                    "redis.disconnected",
                    extra={"reconnect_attempts": failures - 1, "fallback": "memory"},
                )
                self._publish(HealthEvent.CLOSED)
                return
            await asyncio.sleep(self.reconnect_delay(failures))

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (*_CONNECTION_ERRORS, RedisError) as exc:
            logger.warning("redis.close_failed", extra={"error_type": type(exc).__name__})
        self._publish(HealthEvent.CLOSED)
