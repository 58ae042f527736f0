"""Rate limiting wiring for FastAPI routes.

Builds the process-wide ``BackendManager`` and ``AdmissionService`` from
settings and exposes them to routes as dependencies. Both live on
``app.state`` so each application instance (and each test app) owns its own
counters and Redis connection.
"""

from __future__ import annotations

from fastapi import FastAPI, Request

from app.adapters.rate_limit.factory import create_shared_backend
from app.adapters.rate_limit.in_memory import InMemoryCounterBackend
from app.core.config import Settings, settings
from app.services.admission_service import AdmissionDecision, AdmissionService
from app.services.backend_manager import BackendManager


def build_backend_manager(cfg: Settings | None = None) -> BackendManager:
    """Create the backend manager for the configured stores.

    Args:
        cfg: Optional settings; defaults to the global settings.

    Returns:
        BackendManager with an in-memory store and, when REDIS_URL is set, a
        Redis store.
    """
    cfg = cfg or settings
    return BackendManager(
        local=InMemoryCounterBackend(),
        shared=create_shared_backend(cfg.redis),
        sweep_interval_seconds=cfg.limiter.sweep_interval_seconds,
    )


def install_rate_limiting(app: FastAPI, cfg: Settings | None = None) -> BackendManager:
    """Attach a backend manager and admission service to ``app.state``."""
    cfg = cfg or settings
    manager = build_backend_manager(cfg)
    app.state.backend_manager = manager
    app.state.admission_service = AdmissionService(
        manager,
        key_prefix=cfg.limiter.key_prefix,
        default_points=cfg.limiter.default_points,
        default_duration=cfg.limiter.default_duration,
    )
    return manager


def get_backend_manager(request: Request) -> BackendManager:
    """FastAPI dependency returning the app's backend manager."""
    return request.app.state.backend_manager


def get_admission_service(request: Request) -> AdmissionService:
    """FastAPI dependency returning the app's admission service."""
    return request.app.state.admission_service


def build_rate_limit_headers(decision: AdmissionDecision) -> dict[str, str]:
    """Throttling headers for a denied decision (empty when disabled)."""
    if not settings.limiter.include_headers or decision.allowed:
        return {}
    return {
        "Retry-After": str(decision.retry_after or 0),
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": "0",
    }
