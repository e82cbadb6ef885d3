"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
# Tests set TESTING=true to keep local .env files out of the picture.
if _env_file and os.getenv("TESTING", "").lower() != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide metadata and flags."""

    name: str = Field(
        "Linkgate",
        description="Service name reported in OpenAPI and health output",
    )
    version: str = Field(
        "1.0.0",
        description="Service version reported by the health endpoint",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    host: str = Field("127.0.0.1", description="Bind address for the server")
    port: int = Field(8000, description="Bind port for the server", ge=1, le=65535)
    workers: int = Field(
        1,
        description=(
            "Uvicorn worker processes. Counters are per process, so each worker "
            "enforces its own limits."
        ),
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' for structured output or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and propagate the request id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request admission (rate limiting) configuration.

    Each endpoint class (auth, api, general) has its own fixed window and
    request ceiling. Auth gets the longest window and lowest ceiling.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting for all inbound requests",
    )

    auth_window_seconds: int = Field(
        15 * 60,
        description="Window length for authentication endpoints",
        ge=1,
    )
    auth_max_requests: int = Field(
        20,
        description="Maximum requests per window for authentication endpoints",
        ge=1,
    )
    api_window_seconds: int = Field(
        60,
        description="Window length for API endpoints",
        ge=1,
    )
    api_max_requests: int = Field(
        100,
        description="Maximum requests per window for API endpoints",
        ge=1,
    )
    general_window_seconds: int = Field(
        60,
        description="Window length for every other request (pages)",
        ge=1,
    )
    general_max_requests: int = Field(
        200,
        description="Maximum requests per window for every other request",
        ge=1,
    )

    retention_seconds: int = Field(
        60 * 60,
        description="Counter records older than this are removed by the sweep",
        ge=1,
    )
    cleanup_probability: float = Field(
        0.01,
        description="Fraction of requests that trigger a counter store sweep",
        ge=0.0,
        le=1.0,
    )

    trust_proxy_headers: bool = Field(
        True,
        description=(
            "Identify clients from cf-connecting-ip / x-real-ip / x-forwarded-for. "
            "Disable when the service is exposed without a trusted proxy."
        ),
    )
    auth_path_prefix: str = Field(
        "/api/auth",
        description="Path prefix classified as the 'auth' endpoint class",
    )
    api_path_prefix: str = Field(
        "/api",
        description="Path prefix classified as the 'api' endpoint class",
    )
    exempt_prefixes: list[str] = Field(
        default_factory=lambda: ["/_next", "/static"],
        description="Path prefixes that bypass rate limiting entirely",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    return AppSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is out of range.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
