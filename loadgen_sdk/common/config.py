"""
Engine settings.

This module provides the Pydantic model for process-level settings read from
the environment: the target base URL, HTTP client limits, log level and the
OpenTelemetry switch.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from loadgen_sdk.common.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"


class EngineSettings(BaseModel):
    """
    Process-level settings for a load run.

    Attributes:
        base_url: Base URL of the service under test.
        request_timeout: Per-request timeout in seconds.
        max_connections: Size of the shared HTTP connection pool.
        log_level: Root log level name.
        otel_enabled: Whether to export metrics and traces over OTLP.
        otlp_endpoint: OTLP gRPC endpoint used when telemetry is enabled.
    """
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Service base URL")
    request_timeout: float = Field(default=10.0, gt=0, description="Request timeout (s)")
    max_connections: int = Field(default=1000, ge=1, description="HTTP connection pool size")
    log_level: str = Field(default="INFO", description="Log level name")
    otel_enabled: bool = Field(default=False, description="Export telemetry over OTLP")
    otlp_endpoint: str = Field(default="http://localhost:4317", description="OTLP endpoint")

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Strip trailing slashes so paths can be appended directly."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url cannot be empty")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """
        Build settings from environment variables.

        Unparseable numeric values fall back to their defaults with a warning.

        Args:
            environ: Mapping to read from (defaults to os.environ).

        Returns:
            EngineSettings instance.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _number(key: str, default, cast):
            raw = env.get(key)
            if raw is None or raw == "":
                return default
            try:
                value = cast(raw)
            except ValueError:
                logger.warning(f"Invalid {key}='{raw}', defaulting to {default}")
                return default
            if value <= 0:
                logger.warning(f"{key} must be positive (got {raw}), defaulting to {default}")
                return default
            return value

        return cls(
            base_url=env.get("BASE_URL") or defaults.base_url,
            request_timeout=_number("LOADGEN_REQUEST_TIMEOUT", defaults.request_timeout, float),
            max_connections=_number("LOADGEN_MAX_CONNECTIONS", defaults.max_connections, int),
            log_level=env.get("LOADGEN_LOG_LEVEL") or defaults.log_level,
            otel_enabled=env.get("LOADGEN_OTEL_ENABLED", "false").lower() == "true",
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or defaults.otlp_endpoint,
        )
