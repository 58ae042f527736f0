"""Admission engine: turns a counter increment into an allow/deny decision.

The service keeps no state of its own. Every check consumes exactly one unit
on the backend, denied checks included, and compares the post-increment count with
the caller's limit.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass

from app.adapters.rate_limit.base import AbstractCounterBackend
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

DEFAULT_POINTS = 100
DEFAULT_DURATION = 60


@dataclass(frozen=True)
class AdmissionDecision:
    """Verdict for a single check.

    Attributes:
        allowed: Whether the unit was admitted.
        limit: The caller's points for the window.
        count: Post-increment count reported by the backend.
        remaining: Units left (allowed decisions only).
        retry_after: Seconds until the window ends (denied decisions only).
    """

    allowed: bool
    limit: int
    count: int
    remaining: int | None = None
    retry_after: int | None = None

    @classmethod
    def allow(cls, *, limit: int, count: int) -> "AdmissionDecision":
        return cls(allowed=True, limit=limit, count=count, remaining=limit - count)

    @classmethod
    def deny(cls, *, limit: int, count: int, ttl: int) -> "AdmissionDecision":
        # A key left without expiry reports TTL -1; never hand out a negative delay
        return cls(allowed=False, limit=limit, count=count, retry_after=max(ttl, 0))


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _hash_key(key: str) -> str:
    """Hash the rate key for logging without exposing caller identifiers."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class AdmissionService:
    """Fixed-window admission checks on top of a counter backend."""

    def __init__(
        self,
        backend: AbstractCounterBackend,
        *,
        key_prefix: str = "rl:",
        default_points: int = DEFAULT_POINTS,
        default_duration: int = DEFAULT_DURATION,
    ) -> None:
        self._backend = backend
        self._key_prefix = key_prefix
        self._default_points = default_points
        self._default_duration = default_duration

    def normalize_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def check(
        self,
        key: str,
        points: int | None = None,
        duration: int | None = None,
    ) -> AdmissionDecision:
        """Consume one unit for ``key`` and decide whether it is admitted.

        Args:
            key: Caller key (non-empty); namespaced before counting.
            points: Units allowed per window; defaults to 100.
            duration: Window length in seconds; defaults to 60.

        Returns:
            AdmissionDecision; ``remaining = points - count`` when allowed,
            ``retry_after = ttl`` when denied.

        Raises:
            ValidationAppError: If key is empty or points/duration are not
                positive integers.
        """
        points = self._default_points if points is None else points
        duration = self._default_duration if duration is None else duration

        if not isinstance(key, str) or not key:
            raise ValidationAppError(code="invalid_key", message='"key" is not allowed to be empty')
        if not _is_positive_int(points):
            raise ValidationAppError(
                code="invalid_points",
                message='"points" must be an integer greater than or equal to 1',
            )
        if not _is_positive_int(duration):
            raise ValidationAppError(
                code="invalid_duration",
                message='"duration" must be an integer greater than or equal to 1',
            )

        rate_key = self.normalize_key(key)
        result = await self._backend.increment(rate_key, points, duration)

        if result.count > points:
            decision = AdmissionDecision.deny(limit=points, count=result.count, ttl=result.ttl_seconds)
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": _hash_key(rate_key),
                    "limit": points,
                    "count": result.count,
                    "window_s": duration,
                    "retry_after_s": decision.retry_after,
                },
            )
            return decision

        decision = AdmissionDecision.allow(limit=points, count=result.count)
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": _hash_key(rate_key),
                "limit": points,
                "remaining": decision.remaining,
                "window_s": duration,
            },
        )
        return decision
