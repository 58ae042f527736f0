"""Request body validation for the rate limit endpoint.

Field rules:
- ``key``: required string, at least 1 character
- ``points``: optional integer >= 1
- ``duration``: optional integer >= 1

Violations raise ``ValidationAppError`` whose message names the offending
field, e.g. ``"key" is required``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from app.core.errors import ValidationAppError
from app.schemas.ratelimit import RateLimitRequest

logger = logging.getLogger(__name__)


_MESSAGES_BY_TYPE = {
    "missing": "is required",
    "string_type": "must be a string",
    "string_too_short": "is not allowed to be empty",
    "int_type": "must be an integer",
    "int_parsing": "must be an integer",
    "int_from_float": "must be an integer",
    "greater_than_equal": "must be greater than or equal to 1",
    "value_error": "must be an integer",
}


def _format_error(error: dict[str, Any]) -> tuple[str, str]:
    loc = error.get("loc") or ()
    field = ".".join(str(part) for part in loc) or "body"
    reason = _MESSAGES_BY_TYPE.get(error.get("type", ""), error.get("msg", "is invalid"))
    return field, f'"{field}" {reason}'


def parse_rate_limit_request(body: Any) -> RateLimitRequest:
    """Validate a decoded JSON body.

    Args:
        body: Decoded JSON value (any type).

    Returns:
        RateLimitRequest with ``points``/``duration`` left as None when omitted.

    Raises:
        ValidationAppError: If the body is not an object or a field is invalid.
    """
    if not isinstance(body, dict):
        raise ValidationAppError(
            code="invalid_body",
            message="Request body must be a JSON object",
        )

    try:
        return RateLimitRequest.model_validate(body)
    except ValidationError as exc:
        field, message = _format_error(exc.errors()[0])
        logger.info(
            "request_validation.failed",
            extra={"field": field, "error_count": exc.error_count()},
        )
        raise ValidationAppError(
            code="invalid_body",
            message=message,
            details={"field": field},
        ) from exc


def decode_json_body(raw: bytes) -> Any:
    """Decode a raw request body, treating an empty body as missing.

    Raises:
        ValidationAppError: If the body is empty or not valid JSON.
    """
    if not raw.strip():
        raise ValidationAppError(code="invalid_body", message="Request body is required")
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationAppError(code="invalid_json", message="Invalid JSON body") from exc
