"""Pydantic models for peerscout configuration.

Provides validated data models for type safety and runtime validation.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TrackerConfig(BaseModel):
    """UDP tracker client configuration."""

    base_timeout: float = Field(
        default=15.0,
        gt=0.0,
        le=3600.0,
        description="Initial response timeout in seconds, doubled on every retry",
    )
    max_retries: int = Field(
        default=8,
        ge=0,
        le=16,
        description="Retries after the first attempt before the tracker is declared unreachable",
    )
    connection_id_ttl: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Seconds a connection id stays valid after the connect response",
    )
    listen_port: int = Field(
        default=6881,
        ge=0,
        le=65535,
        description="Port announced to the tracker",
    )
    bind_host: str = Field(
        default="0.0.0.0",  # nosec B104 - tracker replies arrive on any interface
        description="Local address of the tracker UDP socket",
    )
    bind_port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Local port of the tracker UDP socket (0 = ephemeral)",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=True,
        description="Write JSON records to the log file",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
