"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "statsloader"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(
        default=20,
        ge=1,
        description="Maximum connections in the Redis pool",
    )

    # Chunk processing
    max_batch_size: int = Field(
        default=25,
        ge=1,
        le=25,
        description="Maximum number of items accepted in one chunk",
    )
    max_workers: int = Field(
        default=5,
        ge=1,
        description="Item pipelines allowed in flight per chunk",
    )
    error_tolerance_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Chunk error rate above which a warning is logged",
    )
    optimistic_updates: bool = Field(
        default=True,
        description="Write statistics with a version precondition",
    )
    conflict_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Read-modify-write attempts when the version check fails",
    )

    # Record rules
    entity_id_column: str = Field(default="entityId", description="Entity identifier column")
    entity_id_pattern: str = Field(default=r"^U\d{5}$", description="Entity identifier pattern")
    counter_columns: list[str] = Field(
        default_factory=lambda: ["counterA", "counterB"],
        description="Columns holding counter increments",
    )
    max_increment: int = Field(
        default=10_000,
        ge=1,
        description="Largest increment accepted for a single record",
    )
    reject_zero_increments: bool = Field(
        default=True,
        description="Reject records whose increments are all zero",
    )
    validation_max_errors: int = Field(
        default=100,
        ge=1,
        description="Validation stops collecting errors after this many",
    )

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1, description="Attempts per store call")
    retry_initial_delay: float = Field(default=1.0, gt=0, description="First retry delay in seconds")
    retry_max_delay: float = Field(default=30.0, gt=0, description="Retry delay cap in seconds")
    retry_backoff_factor: float = Field(default=2.0, ge=1.0, description="Exponential backoff factor")
    retry_jitter_factor: float = Field(default=0.3, ge=0.0, le=1.0, description="Relative jitter")

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, ge=1, description="Failures before opening")
    circuit_reset_timeout: float = Field(default=60.0, ge=0, description="Seconds before a probe")
    circuit_half_open_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Probes allowed in one half-open phase",
    )

    # Error escalation
    max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures of one kind that trigger escalation",
    )
    consecutive_error_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Failures closer together than this count as consecutive",
    )
    error_window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Rolling window for per-scope error counts",
    )

    # Aggregation
    throughput_floor: float = Field(
        default=10.0,
        ge=0,
        description="Records per second below which tuning is recommended",
    )

    # Audit
    audit_max_entries: int = Field(
        default=10_000,
        ge=100,
        description="Audit entries kept per execution",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
