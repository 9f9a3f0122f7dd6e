"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Rate limiting policy is static: tiers are read once at process start and
never reloaded while the process runs.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal
from urllib.parse import quote

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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of valid API keys. Each entry is either "
            "'key' or 'key:user_id'; bare keys act as their own user id"
        ),
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as client address (behind a proxy)",
    )
    host: str = Field("0.0.0.0", description="Bind address for the uvicorn server")
    port: int = Field(8000, description="Bind port for the uvicorn server", ge=1, le=65535)
    workers: int = Field(1, description="Uvicorn worker processes", ge=1)

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where log lines are written",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/notify_api.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Redis connection configuration.

    When ``url`` is set it is used as-is, otherwise the connection is built
    from the individual host/port/password/db values.
    """

    url: str | None = Field(None, description="Redis connection URL")
    host: str = Field("localhost", description="Redis host")
    port: int = Field(6379, description="Redis port")
    password: str | None = Field(None, description="Redis password")
    db: int = Field(0, description="Redis logical database", ge=0)
    socket_timeout_seconds: float = Field(
        1.0,
        description="Socket connect/read timeout for Redis calls",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )

    def connection_url(self) -> str:
        """Return the effective Redis URL."""
        if self.url:
            return self.url
        # Reserved characters in the password would otherwise split the netloc
        auth = f":{quote(self.password, safe='')}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class RateLimitSettings(BaseSettings):
    """Rate limiting policy table and failure semantics."""

    enabled: bool = Field(
        True,
        description="Enable request rate limiting",
    )
    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Counter store backend: per-process memory or shared Redis",
    )
    key_prefix: str = Field(
        "rate_limit",
        description="Namespace prepended to every counter key",
    )
    failure_mode: Literal["open", "closed"] = Field(
        "open",
        description=(
            "Behaviour when the counter store is unreachable: 'open' admits the "
            "request and logs a warning, 'closed' rejects it with HTTP 503"
        ),
    )
    missing_identity: Literal["reject", "shared"] = Field(
        "reject",
        description=(
            "Behaviour when no identity can be derived for a tier: 'reject' "
            "returns HTTP 400, 'shared' counts the caller under a shared key"
        ),
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    store_timeout_seconds: float = Field(
        0.5,
        description="Upper bound for one counter store round trip",
        gt=0,
    )
    unavailable_retry_after_seconds: int = Field(
        5,
        description="Retry-After sent with 503 while the counter store is down (fail-closed)",
        ge=1,
    )

    general_window_seconds: int = Field(900, ge=1)
    general_max_requests: int = Field(100, ge=1)
    auth_window_seconds: int = Field(900, ge=1)
    auth_max_requests: int = Field(5, ge=1)
    strict_window_seconds: int = Field(900, ge=1)
    strict_max_requests: int = Field(20, ge=1)
    websocket_window_seconds: int = Field(60, ge=1)
    websocket_max_requests: int = Field(30, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
