from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.auth import require_signed_request
from app.core.rate_limit import build_rate_limit_headers, get_admission_service
from app.core.request_validation import decode_json_body, parse_rate_limit_request
from app.schemas.ratelimit import RateLimitAllowedResponse, RateLimitDeniedResponse
from app.services.admission_service import AdmissionService

router = APIRouter(tags=["Rate Limit"])


@router.post(
    "/ratelimit",
    response_model=RateLimitAllowedResponse,
    responses={
        429: {"model": RateLimitDeniedResponse, "description": "Window limit exhausted"},
        400: {"description": "Invalid body or missing signature headers"},
        401: {"description": "Bad bearer token, expired or invalid signature"},
    },
    dependencies=[Depends(require_signed_request)],
)
async def check_rate_limit(
    request: Request,
    service: Annotated[AdmissionService, Depends(get_admission_service)],
):
    """Consume one unit for ``key`` and report whether it was admitted.

    The body is read only after the signature check has passed, so rejected
    requests never touch the counters.

    Returns:
        200 ``{"allowed": true, "remaining": n}`` or
        429 ``{"allowed": false, "retryAfter": s}``.
    """
    payload = parse_rate_limit_request(decode_json_body(await request.body()))
    decision = await service.check(payload.key, payload.points, payload.duration)

    if not decision.allowed:
        body = RateLimitDeniedResponse(retry_after=decision.retry_after or 0)
        return JSONResponse(
            status_code=429,
            content=body.model_dump(by_alias=True),
            headers=build_rate_limit_headers(decision) or None,
        )

    return RateLimitAllowedResponse(remaining=decision.remaining or 0)
