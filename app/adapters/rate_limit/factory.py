"""Factory functions for counter backends."""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff

from app.adapters.rate_limit.redis_backend import RedisCounterBackend
from app.core.config import RedisSettings

logger = logging.getLogger(__name__)


def create_shared_backend(redis_settings: RedisSettings) -> RedisCounterBackend | None:
    """Build the Redis counter backend from configuration.

    The client is created lazily (no connection is opened here) with command
    retries disabled, so a failing call returns to the caller promptly and the
    in-memory store can take over.

    Args:
        redis_settings: Resolved Redis settings.

    Returns:
        RedisCounterBackend, or None when REDIS_URL is not set.
    """
    if not redis_settings.url:
        logger.warning(
            "redis.not_configured",
            extra={"hint": "REDIS_URL not set, using in-memory fallback"},
        )
        return None

    client = Redis.from_url(
        redis_settings.url,
        socket_timeout=redis_settings.socket_timeout_seconds,
        socket_connect_timeout=redis_settings.connect_timeout_seconds,
        retry=Retry(NoBackoff(), 0),
        retry_on_timeout=False,
    )
    return RedisCounterBackend(
        client,
        health_check_interval_seconds=redis_settings.health_check_interval_seconds,
        max_reconnect_attempts=redis_settings.max_reconnect_attempts,
        reconnect_backoff_ms=redis_settings.reconnect_backoff_ms,
        reconnect_backoff_cap_ms=redis_settings.reconnect_backoff_cap_ms,
    )
