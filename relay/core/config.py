"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Each stage of the relay (gate, sink, driver) reads its own prefixed group so
the three processes can share one environment file.
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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_gate_settings() -> "GateSettings":
    """Build gate settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return GateSettings()  # type: ignore[call-arg]


def _build_sink_settings() -> "SinkSettings":
    """Build sink settings from environment.

    See _build_gate_settings() for rationale about the type ignore.
    """

    return SinkSettings()  # type: ignore[call-arg]


def _build_driver_settings() -> "DriverSettings":
    return DriverSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class GateSettings(BaseSettings):
    """Admission gate configuration (first limiter, forwards to the sink)."""

    capacity: int = Field(
        4096,
        description="Maximum admissions per sliding window",
        ge=1,
    )
    window_seconds: float = Field(
        60.0,
        description="Sliding window length in seconds",
        gt=0,
    )
    sink_url: str = Field(
        "http://localhost:4003",
        description="Base URL of the sink service",
    )
    sink_timeout_seconds: float = Field(
        5.0,
        description="Timeout applied to each forward call to the sink",
        gt=0,
    )
    sink_pool_timeout_seconds: float = Field(
        30.0,
        description="Longest a forward call waits for a free pooled socket",
        gt=0,
    )
    max_connections: int = Field(
        100,
        description="Upper bound on pooled sockets to the sink",
        ge=1,
    )
    max_keepalive_connections: int = Field(
        20,
        description="Idle sockets kept open to the sink",
        ge=0,
    )
    host: str = Field("127.0.0.1", description="Bind address")
    port: int = Field(4002, description="Bind port")

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        case_sensitive=False,
    )


class SinkSettings(BaseSettings):
    """Sink configuration (terminal limiter that echoes payloads)."""

    capacity: int = Field(
        512,
        description="Maximum admissions per sliding window",
        ge=1,
    )
    window_seconds: float = Field(
        60.0,
        description="Sliding window length in seconds",
        gt=0,
    )
    host: str = Field("127.0.0.1", description="Bind address")
    port: int = Field(4003, description="Bind port")

    model_config = SettingsConfigDict(
        env_prefix="SINK_",
        case_sensitive=False,
    )


class DriverSettings(BaseSettings):
    """Load driver configuration (exponential ramp against the gate)."""

    gate_url: str = Field(
        "http://localhost:4002",
        description="Base URL of the admission gate",
    )
    epochs: int = Field(
        4,
        description="Number of ramp epochs; epoch k issues base**k calls",
        ge=1,
    )
    base: int = Field(
        16,
        description="Growth factor of the ramp",
        ge=1,
    )
    epoch_seconds: float = Field(
        60.0,
        description="Minimum duration of one epoch",
        ge=0,
    )
    concurrency: int = Field(
        50,
        description="Worker tasks and pooled sockets used to issue calls",
        ge=1,
    )
    max_keepalive_connections: int = Field(
        10,
        description="Idle sockets kept open to the gate",
        ge=0,
    )
    timeout_seconds: float = Field(
        10.0,
        description="Timeout applied to each call to the gate",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="DRIVER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/relay.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the correlation id between stages",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    gate: GateSettings = Field(default_factory=_build_gate_settings)
    sink: SinkSettings = Field(default_factory=_build_sink_settings)
    driver: DriverSettings = Field(default_factory=_build_driver_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from stage-specific settings
settings = Settings()
