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


# Determine which environment to load (default: development)
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


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "Request Admission Service",
        description="Human-readable service name used in docs and pages",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration (format, destination, correlation header)."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' for machine-friendly logs, 'plain' for humans",
    )
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file' (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and propagate the request id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    Two policies are declared: ``api`` guards everything under ``/api`` and
    ``app`` guards the remaining pages. Both skip the exempt paths.
    """

    enabled: bool = Field(
        True,
        description="Enable request admission control for all route groups",
    )
    backend: str = Field(
        "memory",
        description="Counter store backend: 'memory' (per process) or 'redis' (shared)",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL, required when backend is 'redis'",
    )
    trust_proxy: bool = Field(
        False,
        description="Identify clients by the first X-Forwarded-For hop instead of the socket peer",
    )
    standard_headers: bool = Field(
        True,
        description="Return RateLimit-* headers on every counted response",
    )
    legacy_headers: bool = Field(
        False,
        description="Return X-RateLimit-* headers on every counted response",
    )
    exempt_paths: str = Field(
        "/health-check",
        description="Comma-separated list of URLs that are never counted",
    )
    api_window_ms: int = Field(
        60 * 60 * 1000,
        description="Window length of the API policy in milliseconds",
        ge=1,
    )
    api_max: int = Field(
        100,
        description="Maximum requests per window for the API policy",
        ge=1,
    )
    app_window_ms: int = Field(
        60 * 60 * 1000,
        description="Window length of the general app policy in milliseconds",
        ge=1,
    )
    app_max: int = Field(
        50,
        description="Maximum requests per window for the general app policy",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
