"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and the
counter backends) so tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import health_router, ratelimit_router
from app.core.config import Settings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import install_rate_limiting


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the backend manager's background tasks for the app's lifetime."""
    manager = app.state.backend_manager
    await manager.start()
    try:
        yield
    finally:
        await manager.stop()


def create_app(cfg: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Optional settings; defaults to the global settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Rate Limit Gateway",
        description=(
            "Admission-control gateway: answers whether a key may consume another "
            "unit of work within a fixed window. Counters live in Redis with an "
            "in-memory fallback; requests are authenticated with a bearer secret "
            "and an HMAC-signed timestamp."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    # Backends
    install_rate_limiting(app, cfg)

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(ratelimit_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
