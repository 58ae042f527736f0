"""Pydantic schemas for the rate limit and health endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RateLimitRequest(BaseModel):
    """Body of ``POST /ratelimit``."""

    model_config = ConfigDict(extra="ignore")

    key: str = Field(
        ...,
        min_length=1,
        description="Caller-chosen quota subject, e.g. a user id or API key.",
    )
    points: int | None = Field(
        default=None,
        ge=1,
        description="Units allowed per window. Defaults to 100.",
    )
    duration: int | None = Field(
        default=None,
        ge=1,
        description="Window length in seconds. Defaults to 60.",
    )

    @field_validator("points", "duration", mode="before")
    @classmethod
    def _reject_booleans(cls, value: Any) -> Any:
        # bool is an int subclass; JSON true/false is never a valid count
        if isinstance(value, bool):
            raise ValueError("must be an integer")
        return value


class RateLimitAllowedResponse(BaseModel):
    """Returned with HTTP 200 when the unit was admitted."""

    allowed: Literal[True] = True
    remaining: int = Field(..., ge=0, description="Units left in the current window.")


class RateLimitDeniedResponse(BaseModel):
    """Returned with HTTP 429 when the window's limit is exhausted."""

    model_config = ConfigDict(populate_by_name=True)

    allowed: Literal[False] = False
    retry_after: int = Field(
        ...,
        ge=0,
        alias="retryAfter",
        description="Seconds until the current window ends.",
    )


class HealthResponse(BaseModel):
    """Liveness payload with backend status."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ok"] = "ok"
    redis: Literal["connected", "disconnected (using memory fallback)"]
    memory_store_size: int = Field(
        ...,
        ge=0,
        alias="memoryStoreSize",
        description="Live records held by the in-memory counter backend.",
    )
