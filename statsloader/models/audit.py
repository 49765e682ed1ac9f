"""Audit entry domain models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditLevel(str, Enum):
    """Audit entry level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AuditEventType(str, Enum):
    """Audited event types."""

    ITEM_PROCESSED = "ITEM_PROCESSED"
    ITEM_FAILED = "ITEM_FAILED"
    CHUNK_COMPLETED = "CHUNK_COMPLETED"
    ERROR_HANDLED = "ERROR_HANDLED"
    ERROR_ESCALATED = "ERROR_ESCALATED"
    AGGREGATION_COMPLETED = "AGGREGATION_COMPLETED"


class AuditEntry(BaseModel):
    """One audit trail entry."""

    execution_id: str = Field(..., min_length=1, description="Execution the entry belongs to")
    event_type: AuditEventType = Field(..., description="What happened")
    level: AuditLevel = Field(default=AuditLevel.INFO, description="Entry level")
    component: str = Field(..., min_length=1, description="Component that wrote the entry")
    message: str = Field(..., min_length=1, description="Human readable summary")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured payload")
    correlation_id: str | None = Field(default=None, description="Chunk or request correlation")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EscalationAlert(BaseModel):
    """Operator-facing alert raised by error escalation."""

    execution_id: str
    scope_key: str
    error_kind: str
    error_code: str
    severity: str
    message: str
    consecutive_errors: int = 0
    window_errors: int = 0
    window_duration_seconds: float = 0.0
    raised_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
