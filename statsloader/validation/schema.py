"""Record schema and batch validation result models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import SchemaDefinitionError
from statsloader.models.record import Record
from statsloader.validation.rules import compile_pattern


class IssueSeverity(str, Enum):
    """Validation issue severity."""

    ERROR = "ERROR"
    WARNING = "WARNING"


class IssueCode(str, Enum):
    """Validation issue codes."""

    # Header
    MISSING_HEADER = "MISSING_HEADER"
    DUPLICATE_HEADERS = "DUPLICATE_HEADERS"
    EMPTY_HEADERS = "EMPTY_HEADERS"

    # Rows
    FIELD_COUNT_MISMATCH = "FIELD_COUNT_MISMATCH"
    MISSING_FIELD = "MISSING_FIELD"
    EMPTY_FIELD = "EMPTY_FIELD"
    INVALID_ENTITY_ID = "INVALID_ENTITY_ID"
    INVALID_NUMBER = "INVALID_NUMBER"
    NEGATIVE_VALUE = "NEGATIVE_VALUE"
    VALUE_TOO_LARGE = "VALUE_TOO_LARGE"
    TOO_MANY_ERRORS = "TOO_MANY_ERRORS"

    # Warnings
    VALUE_ABOVE_CEILING = "VALUE_ABOVE_CEILING"
    ENTITY_NUMBER_ZERO = "ENTITY_NUMBER_ZERO"


class RecordSchema(BaseModel):
    """Expected shape of the records in a batch."""

    entity_id_column: str = Field(default="entityId", description="Entity identifier column")
    entity_id_pattern: str = Field(default=r"^U\d{5}$", description="Entity identifier pattern")
    counter_columns: list[str] = Field(
        default_factory=lambda: ["counterA", "counterB"],
        description="Non-negative integer increment columns",
    )
    max_reasonable_value: int = Field(
        default=10_000,
        ge=1,
        description="Values above this are reported as warnings",
    )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RecordSchema":
        settings = settings or get_settings()
        return cls(
            entity_id_column=settings.entity_id_column,
            entity_id_pattern=settings.entity_id_pattern,
            counter_columns=settings.counter_columns,
            max_reasonable_value=settings.max_increment,
        )

    @property
    def required_columns(self) -> list[str]:
        return [self.entity_id_column, *self.counter_columns]

    def check(self) -> None:
        """Reject unusable schema definitions.

        Raises:
            SchemaDefinitionError: If the definition cannot drive validation
        """
        if not self.entity_id_column.strip():
            raise SchemaDefinitionError("Entity id column name must not be empty")
        if not self.counter_columns:
            raise SchemaDefinitionError("At least one counter column is required")
        if any(not column.strip() for column in self.counter_columns):
            raise SchemaDefinitionError("Counter column names must not be empty")
        if len(set(self.required_columns)) != len(self.required_columns):
            raise SchemaDefinitionError("Schema column names must be unique")
        compile_pattern(self.entity_id_pattern)


class ValidationIssue(BaseModel):
    """One validation error or warning."""

    code: IssueCode
    severity: IssueSeverity = IssueSeverity.ERROR
    message: str
    line: int | None = Field(default=None, description="Source line (1 is the header)")
    column: str | None = None
    value: Any = None


class ColumnStatistics(BaseModel):
    """Reporting statistics of one column."""

    column: str
    null_count: int = 0
    min: int | None = None
    max: int | None = None
    avg: float | None = None
    unique_count: int | None = None


class BatchValidationResult(BaseModel):
    """Outcome of validating a batch of records."""

    valid: list[Record] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    column_statistics: dict[str, ColumnStatistics] = Field(default_factory=dict)
    total_rows: int = 0
    truncated: bool = Field(default=False, description="Evaluation stopped at the error cap")

    @property
    def is_valid(self) -> bool:
        return not self.errors
