"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

The shared secret (RL_SECRET) is mandatory: loading settings without it fails
at import time, which keeps the process from starting.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Maximum accepted distance between a request's X-Timestamp and server time.
MAX_CLOCK_SKEW_MS = 30_000

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_auth_settings() -> "AuthSettings":
    """Build auth settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AuthSettings()  # type: ignore[call-arg]


class AuthSettings(BaseSettings):
    """Shared-secret configuration for bearer and HMAC request signing."""

    secret: str = Field(
        ...,
        min_length=1,
        description="Shared secret used as bearer token and HMAC key (RL_SECRET)",
    )

    model_config = SettingsConfigDict(
        env_prefix="RL_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared counter backend (Redis) configuration.

    When ``url`` is unset the gateway runs on the in-memory backend only.
    """

    url: str | None = Field(
        None,
        description="Redis connection URL, e.g. redis://localhost:6379/0 (REDIS_URL)",
    )
    socket_timeout_seconds: float = Field(
        1.0,
        description="Per-command socket timeout; bounds how long a call can hang",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        1.0,
        description="Socket connect timeout",
        gt=0,
    )
    health_check_interval_seconds: float = Field(
        5.0,
        description="Interval between connection liveness pings",
        gt=0,
    )
    max_reconnect_attempts: int = Field(
        3,
        description="Reconnect attempts before the connection is abandoned",
        ge=0,
    )
    reconnect_backoff_ms: int = Field(
        200,
        description="Linear backoff step between reconnect attempts",
        ge=0,
    )
    reconnect_backoff_cap_ms: int = Field(
        2000,
        description="Upper bound for a single reconnect delay",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Admission engine defaults and local backend housekeeping."""

    default_points: int = Field(
        100,
        description="Limit applied when a request omits 'points'",
        ge=1,
    )
    default_duration: int = Field(
        60,
        description="Window length in seconds applied when a request omits 'duration'",
        ge=1,
    )
    key_prefix: str = Field(
        "rl:",
        description="Namespace prepended to caller keys before counting",
    )
    sweep_interval_seconds: float = Field(
        10.0,
        description="Period of the in-memory expired-record sweep",
        gt=0,
    )
    include_headers: bool = Field(
        True,
        description="Include Retry-After and X-RateLimit-* headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file at this size (0 disables rotation)")
    backup_count: int = Field(3, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Uvicorn bind address."""

    host: str = Field("0.0.0.0", description="Bind host")
    port: int = Field(3001, description="Bind port")

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.

    Environments:
    - development: Local development
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    auth: AuthSettings = Field(default_factory=_build_auth_settings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    limiter: LimiterSettings = Field(default_factory=LimiterSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
