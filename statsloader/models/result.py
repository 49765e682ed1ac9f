"""Processing result domain models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from statsloader.core.errors import ErrorKind, Severity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemStatus(str, Enum):
    """Terminal status of one chunk item."""

    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class ErrorClassification(BaseModel):
    """Classification of a caught error."""

    error_kind: ErrorKind = Field(..., description="Taxonomy bucket")
    code: str = Field(..., description="Stable error code")
    is_retryable: bool = Field(..., description="Whether a retry may succeed")
    severity: Severity = Field(..., description="Operational severity")


class ItemResult(BaseModel):
    """Outcome of one item pipeline; carries either counters or an error."""

    item_index: int = Field(..., ge=0, description="Record index within the file")
    entity_id: str = Field(default="", description="Entity identifier as read from the record")
    status: ItemStatus = Field(..., description="Terminal status")
    processing_time_ms: int = Field(default=0, ge=0, description="Pipeline duration")
    updated_counters: dict[str, int] | None = Field(
        default=None,
        description="Counters after the update (success only)",
    )
    error: str | None = Field(default=None, description="Error message (error only)")
    error_type: str | None = Field(default=None, description="Error code (error only)")
    error_kind: ErrorKind | None = Field(default=None, description="Error taxonomy bucket")
    severity: Severity | None = Field(default=None, description="Error severity")
    retryable: bool | None = Field(default=None, description="Whether re-driving may succeed")

    @model_validator(mode="after")
    def _one_payload(self) -> "ItemResult":
        if self.status == ItemStatus.SUCCESS:
            if self.updated_counters is None or self.error is not None:
                raise ValueError("Successful items carry counters and no error")
        elif self.error is None or self.updated_counters is not None:
            raise ValueError("Failed items carry an error and no counters")
        return self

    @property
    def is_success(self) -> bool:
        return self.status == ItemStatus.SUCCESS


class ChunkResult(BaseModel):
    """Outcome of one processed chunk."""

    chunk_id: str = Field(..., description="Chunk identifier")
    batch_index: int = Field(default=0, ge=0, description="Chunk position in the file")
    execution_id: str = Field(..., description="Owning execution")
    processed_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    processing_time_ms: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime = Field(default_factory=_utcnow)
    results: list[ItemResult] = Field(default_factory=list, description="Successful items")
    errors: list[ItemResult] = Field(default_factory=list, description="Failed items")

    @model_validator(mode="after")
    def _consistent_counts(self) -> "ChunkResult":
        if self.processed_count != self.success_count + self.error_count:
            raise ValueError("processed_count must equal success_count + error_count")
        if self.success_count != len(self.results) or self.error_count != len(self.errors):
            raise ValueError("Counts must match the recorded item outcomes")
        return self

    @property
    def error_rate(self) -> float:
        """Error rate in percent."""
        if self.processed_count == 0:
            return 0.0
        return self.error_count / self.processed_count * 100


class TopError(BaseModel):
    """One ranked error type."""

    error_type: str
    count: int = Field(..., ge=0)
    percentage: float = Field(..., ge=0)


class ErrorAnalysis(BaseModel):
    """Cross-chunk error breakdown."""

    errors_by_type: dict[str, int] = Field(default_factory=dict)
    top_errors: list[TopError] = Field(default_factory=list)
    retryable_errors: int = 0
    non_retryable_errors: int = 0
    critical_errors: list[str] = Field(default_factory=list)


class PerformanceMetrics(BaseModel):
    """Throughput and per-chunk timing."""

    wall_clock_seconds: float = 0.0
    throughput_records_per_second: float = 0.0
    average_chunk_time_ms: float = 0.0
    max_chunk_time_ms: int = 0
    min_chunk_time_ms: int = 0


class QualityMetrics(BaseModel):
    """Scores derived from error and performance figures."""

    quality_score: int = Field(default=100, ge=0, le=100)
    data_integrity_score: float = 0.0
    performance_score: float = 0.0


class AggregatedResult(BaseModel):
    """Execution-level summary over all chunk results."""

    execution_id: str
    chunk_count: int = 0
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    success_rate: float = 0.0
    error_rate: float = 0.0
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    error_analysis: ErrorAnalysis = Field(default_factory=ErrorAnalysis)
    quality: QualityMetrics = Field(default_factory=QualityMetrics)
    recommendations: list[str] = Field(default_factory=list)
    aggregated_at: datetime = Field(default_factory=_utcnow)

    @property
    def succeeded(self) -> bool:
        """Execution status as reported to the orchestrator."""
        return self.error_rate <= 10
