"""Pydantic configuration schema for ThreadHub.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on load.

Usage:
    from threadhub.config_schema import AppConfig

    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class ThreadingConfig(BaseModel):
    """Thread detection and consolidation settings."""

    strict_mode: bool = Field(
        default=False,
        description="Reserved: require exact subject matches",
    )
    time_window_hours: int = Field(
        default=168,
        ge=1,
        le=24 * 365,
        description="Max hours between a message and a thread's last activity",
    )
    participant_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Reserved: minimum participant overlap",
    )
    subject_similarity_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Reserved: minimum subject similarity in strict mode",
    )
    consolidate_after_process: bool = Field(
        default=True,
        description="Run a merge pass after each process_messages call",
    )


class CacheConfig(BaseModel):
    """Result cache settings."""

    max_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Maximum number of cached entries",
    )
    ttl_hours: float = Field(
        default=24.0,
        gt=0,
        description="Entry time-to-live (hours)",
    )
    sweep_interval_minutes: float = Field(
        default=5.0,
        gt=0,
        description="How often the background sweep purges expired entries and self-tunes",
    )


class BatchingConfig(BaseModel):
    """Batch scheduler settings."""

    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Items per batch (self-tuned between 10 and 100)",
    )
    concurrency_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum batches in flight at once",
    )
    performance_target_ms: float = Field(
        default=75.0,
        gt=0,
        description="Target latency for one optimize call (ms)",
    )


class LoggingConfig(BaseModel):
    """Log output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=True,
        description="Emit JSON logs (False for human-readable console output)",
    )


class AppConfig(BaseModel):
    """Root configuration schema for ThreadHub.

    Every section has defaults, so an empty config.yaml is valid.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    threading: ThreadingConfig = Field(default_factory=ThreadingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    batching: BatchingConfig = Field(default_factory=BatchingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
