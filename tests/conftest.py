"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment the settings module requires before anything under
``app`` is imported.
"""

import os
import time

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RL_SECRET", "test-shared-secret")
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.auth import sign_timestamp
from app.core.config import settings


TEST_SECRET = settings.auth.secret


@pytest.fixture
def secret() -> str:
    return TEST_SECRET


@pytest.fixture
def bearer_headers(secret: str) -> dict[str, str]:
    """Headers accepted by bearer-only routes."""
    return {"Authorization": f"Bearer {secret}"}


@pytest.fixture
def signed_headers(secret: str):
    """Factory producing fully signed headers for POST /ratelimit."""

    def _build(*, timestamp_ms: int | None = None, signing_secret: str | None = None) -> dict[str, str]:
        ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
        return {
            "Authorization": f"Bearer {secret}",
            "X-Timestamp": str(ts),
            "X-Signature": sign_timestamp(signing_secret or secret, ts),
        }

    return _build


@pytest.fixture
def gateway_app() -> FastAPI:
    """Fresh application instance with its own in-memory counters."""
    from app.core.app_factory import create_app

    return create_app()


@pytest.fixture
def client(gateway_app: FastAPI) -> TestClient:
    return TestClient(gateway_app)
