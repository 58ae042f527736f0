"""Bearer token and signed-timestamp authentication.

Every request must present ``Authorization: Bearer <secret>``. Rate limit
requests must additionally carry ``X-Timestamp`` (milliseconds since the epoch)
and ``X-Signature``, the lowercase hex HMAC-SHA256 of the timestamp's decimal
rendering keyed with the shared secret. Timestamps further than
``MAX_CLOCK_SKEW_MS`` from server time are rejected.

There is no nonce cache: a captured (timestamp, signature) pair stays valid
until it drifts out of the skew window.

Checks run in a fixed order and the first failure wins:
1. bearer token      -> unauthorized (401)
2. header presence   -> missing_signature (400)
3. clock skew        -> expired_request (401)
4. HMAC digest       -> invalid_signature (401)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import time
from enum import Enum
from typing import Annotated, Callable

from fastapi import Header

from app.core.config import MAX_CLOCK_SKEW_MS, settings
from app.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


class AuthFailure(Enum):
    """Reasons a request is rejected before reaching the admission engine."""

    UNAUTHORIZED = ("unauthorized", "Unauthorized")
    MISSING_SIGNATURE = ("missing_signature", "Missing signature")
    EXPIRED_REQUEST = ("expired_request", "Expired request")
    INVALID_SIGNATURE = ("invalid_signature", "Invalid signature")

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message

    def to_error(self) -> AuthenticationAppError:
        return AuthenticationAppError(code=self.code, message=self.message)


def _fingerprint(value: str) -> str:
    """Short non-reversible digest for correlating rejected credentials in logs."""
    return hashlib.sha256(value.encode()).hexdigest()[:16]


def parse_timestamp(raw: str | None) -> float | None:
    """Parse an ``X-Timestamp`` header as a number of milliseconds.

    Returns None for absent, empty, non-numeric, NaN or zero values, all of
    which count as a missing timestamp. Infinite values are returned as is and
    fail the clock skew check.

    Examples:
        >>> parse_timestamp("1700000000000")
        1700000000000.0
        >>> parse_timestamp("abc") is None
        True
        >>> parse_timestamp("0") is None
        True
    """
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if math.isnan(value) or value == 0:
        return None
    return value


def canonical_timestamp(value: float) -> str:
    """Render a parsed timestamp as the decimal string that gets signed.

    Integral values drop the fractional part so ``"01700000000000"`` and
    ``"1700000000000.0"`` both sign as ``"1700000000000"``.
    """
    if value.is_integer():
        return str(int(value))
    return repr(value)


def sign_timestamp(secret: str, timestamp: int | float | str) -> str:
    """Compute the ``X-Signature`` value for a timestamp.

    Args:
        secret: Shared secret.
        timestamp: Milliseconds since the epoch, as number or header string.

    Returns:
        Lowercase hex HMAC-SHA256 digest.
    """
    value = float(timestamp)
    message = canonical_timestamp(value).encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class AuthGuard:
    """Validates bearer tokens and signed timestamps against a shared secret."""

    def __init__(
        self,
        *,
        secret: str,
        max_skew_ms: int = MAX_CLOCK_SKEW_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret must be a non-empty string")
        self._secret = secret
        self._expected_bearer = f"Bearer {secret}"
        self._max_skew_ms = max_skew_ms
        self._clock = clock

    @property
    def secret(self) -> str:
        return self._secret

    def _reject(self, failure: AuthFailure, **context: object) -> AuthenticationAppError:
        logger.warning(
            "auth.rejected",
            extra={"reason": failure.code, **context},
        )
        return failure.to_error()

    def verify_bearer(self, authorization: str | None) -> None:
        """Require ``Authorization`` to equal ``Bearer <secret>`` exactly.

        Raises:
            AuthenticationAppError: ``unauthorized`` on mismatch or absence.
        """
        if not authorization or not hmac.compare_digest(
            authorization.encode(), self._expected_bearer.encode()
        ):
            raise self._reject(
                AuthFailure.UNAUTHORIZED,
                bearer_present=bool(authorization),
                bearer_hash=_fingerprint(authorization) if authorization else None,
            )

    def verify_signed_request(
        self,
        authorization: str | None,
        timestamp: str | None,
        signature: str | None,
    ) -> None:
        """Run the full bearer + timestamp + HMAC check.

        Raises:
            AuthenticationAppError: With the code of the first failed check.
        """
        self.verify_bearer(authorization)

        ts = parse_timestamp(timestamp)
        if ts is None or not signature:
            raise self._reject(
                AuthFailure.MISSING_SIGNATURE,
                timestamp_present=ts is not None,
                signature_present=bool(signature),
            )

        now_ms = self._clock() * 1000
        skew_ms = abs(now_ms - ts)
        if skew_ms > self._max_skew_ms:
            raise self._reject(
                AuthFailure.EXPIRED_REQUEST,
                skew_ms=int(skew_ms),
                max_skew_ms=self._max_skew_ms,
            )

        expected = sign_timestamp(self._secret, ts)
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            raise self._reject(AuthFailure.INVALID_SIGNATURE, signature_length=len(signature))


_guard: AuthGuard | None = None


def get_auth_guard() -> AuthGuard:
    """Return the process-wide guard, rebuilt if the configured secret changes."""

    global _guard

    if _guard is None or _guard.secret != settings.auth.secret:
        _guard = AuthGuard(secret=settings.auth.secret)
    return _guard


async def require_bearer(
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> None:
    """FastAPI dependency for routes that only need the bearer token.

    Usage:
        @router.get("/health", dependencies=[Depends(require_bearer)])
    """
    get_auth_guard().verify_bearer(authorization)


async def require_signed_request(
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
    x_timestamp: Annotated[str | None, Header(alias="X-Timestamp")] = None,
    x_signature: Annotated[str | None, Header(alias="X-Signature")] = None,
) -> None:
    """FastAPI dependency enforcing bearer + signed timestamp.

    Runs before the request body is read so rejected requests never reach the
    counter backends.
    """
    get_auth_guard().verify_signed_request(authorization, x_timestamp, x_signature)
