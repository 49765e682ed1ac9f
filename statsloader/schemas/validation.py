"""Batch validation API schemas."""

from pydantic import BaseModel, Field

from statsloader.validation.schema import ColumnStatistics, ValidationIssue


class ValidationRequest(BaseModel):
    """Delimited text to validate."""

    content: str = Field(..., description="File contents including the header line")
    delimiter: str = Field(default=",", min_length=1, max_length=1, description="Field delimiter")
    max_errors: int | None = Field(default=None, ge=1, description="Error cap")


class ValidationResponse(BaseModel):
    """Validation report."""

    is_valid: bool
    total_rows: int
    valid_rows: int
    truncated: bool = False
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    column_statistics: dict[str, ColumnStatistics] = Field(default_factory=dict)
