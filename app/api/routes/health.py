from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.auth import require_bearer
from app.core.rate_limit import get_backend_manager
from app.schemas.ratelimit import HealthResponse
from app.services.backend_manager import BackendManager

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_by_alias=True,
    dependencies=[Depends(require_bearer)],
)
def health_check(
    manager: Annotated[BackendManager, Depends(get_backend_manager)],
) -> HealthResponse:
    """Health check endpoint.

    Requires only the bearer token (no signed timestamp) so load balancers and
    monitors can call it with a static header.

    Returns:
        HealthResponse: ``status``, Redis connection state and the number of
            live records in the in-memory store.
    """

    snapshot = manager.snapshot()
    return HealthResponse(
        redis="connected" if snapshot.connected else "disconnected (using memory fallback)",
        memory_store_size=snapshot.local_store_size,
    )
