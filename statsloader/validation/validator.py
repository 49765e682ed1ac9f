"""Batch validation of parsed records."""

from collections import Counter
from typing import Iterable, Sequence

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import RecordValidationError
from statsloader.core.logging import get_logger
from statsloader.models.record import Record
from statsloader.validation.rules import (
    NumberIssue,
    entity_number,
    parse_entity_id,
    parse_non_negative_int,
)
from statsloader.validation.schema import (
    BatchValidationResult,
    ColumnStatistics,
    IssueCode,
    IssueSeverity,
    RecordSchema,
    ValidationIssue,
)

logger = get_logger(__name__)

_NUMBER_ISSUE_CODES = {
    NumberIssue.EMPTY.value: IssueCode.EMPTY_FIELD,
    NumberIssue.NEGATIVE.value: IssueCode.NEGATIVE_VALUE,
    NumberIssue.NOT_A_NUMBER.value: IssueCode.INVALID_NUMBER,
    NumberIssue.TOO_LARGE.value: IssueCode.VALUE_TOO_LARGE,
}


class RecordValidator:
    """Validates header shape and record contents of a batch."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def validate_batch(
        self,
        records: Iterable[Record],
        schema: RecordSchema | None = None,
        header: Sequence[str] | None = None,
        max_errors: int | None = None,
    ) -> BatchValidationResult:
        """Validate a batch.

        A header problem makes the whole batch invalid without evaluating
        rows. Row errors are collected until ``max_errors`` is reached, at
        which point a TOO_MANY_ERRORS marker is added and evaluation stops.

        Args:
            records: Parsed records
            schema: Expected record shape (settings defaults if omitted)
            header: Observed header (keys of the first record if omitted)
            max_errors: Error cap (settings default if omitted)

        Returns:
            Valid records, errors, warnings and column statistics

        Raises:
            SchemaDefinitionError: If the schema itself is unusable
            ValueError: If ``max_errors`` is below 1
        """
        schema = schema or RecordSchema.from_settings(self.settings)
        schema.check()
        if max_errors is None:
            max_errors = self.settings.validation_max_errors
        elif max_errors < 1:
            raise ValueError("max_errors must be at least 1")
        records = list(records)

        if header is None:
            header = list(records[0].raw_fields) if records else []
        header = list(header)

        if not header and not records:
            return BatchValidationResult()

        header_errors = self._validate_header(header, schema)
        if header_errors:
            logger.info("Batch header invalid", error_count=len(header_errors))
            return BatchValidationResult(errors=header_errors, total_rows=len(records))

        valid: list[Record] = []
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        truncated = False

        for record in records:
            row_errors, row_warnings = self._validate_record(record, header, schema)
            errors.extend(row_errors)
            warnings.extend(row_warnings)
            if not row_errors:
                valid.append(record)

            if len(errors) >= max_errors:
                errors.append(
                    ValidationIssue(
                        code=IssueCode.TOO_MANY_ERRORS,
                        message=f"Validation stopped: error limit of {max_errors} reached",
                        line=record.line_number,
                    )
                )
                truncated = True
                break

        result = BatchValidationResult(
            valid=valid,
            errors=errors,
            warnings=warnings,
            column_statistics=self._column_statistics(records, schema),
            total_rows=len(records),
            truncated=truncated,
        )
        logger.info(
            "Batch validated",
            total_rows=result.total_rows,
            valid_rows=len(valid),
            error_count=len(errors),
            warning_count=len(warnings),
            truncated=truncated,
        )
        return result

    @staticmethod
    def _validate_header(header: list[str], schema: RecordSchema) -> list[ValidationIssue]:
        errors = []
        for column in schema.required_columns:
            if column not in header:
                errors.append(
                    ValidationIssue(
                        code=IssueCode.MISSING_HEADER,
                        message=f"Missing required header: {column}",
                        line=1,
                        column=column,
                    )
                )

        duplicates = sorted(name for name, count in Counter(header).items() if count > 1)
        if duplicates:
            errors.append(
                ValidationIssue(
                    code=IssueCode.DUPLICATE_HEADERS,
                    message=f"Duplicate headers found: {', '.join(duplicates)}",
                    line=1,
                )
            )

        if any(not column.strip() for column in header):
            errors.append(
                ValidationIssue(
                    code=IssueCode.EMPTY_HEADERS,
                    message="Empty header columns found",
                    line=1,
                )
            )
        return errors

    def _validate_record(
        self,
        record: Record,
        header: list[str],
        schema: RecordSchema,
    ) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
        line = record.line_number
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if len(record.raw_fields) != len(header):
            errors.append(
                ValidationIssue(
                    code=IssueCode.FIELD_COUNT_MISMATCH,
                    message=f"Field count mismatch: expected {len(header)}, got {len(record.raw_fields)}",
                    line=line,
                )
            )

        # Entity id
        column = schema.entity_id_column
        if column not in record.raw_fields:
            errors.append(self._missing(column, line))
        elif not record.get(column).strip():
            errors.append(
                ValidationIssue(
                    code=IssueCode.EMPTY_FIELD,
                    message=f"{column} is empty",
                    line=line,
                    column=column,
                )
            )
        else:
            try:
                entity_id = parse_entity_id(record.get(column), schema.entity_id_pattern)
            except RecordValidationError as e:
                errors.append(
                    ValidationIssue(
                        code=IssueCode.INVALID_ENTITY_ID,
                        message=e.message,
                        line=line,
                        column=column,
                        value=e.value,
                    )
                )
            else:
                if entity_number(entity_id) == 0:
                    warnings.append(
                        ValidationIssue(
                            code=IssueCode.ENTITY_NUMBER_ZERO,
                            severity=IssueSeverity.WARNING,
                            message=f"Entity id {entity_id} has numeric part zero",
                            line=line,
                            column=column,
                            value=entity_id,
                        )
                    )

        # Counters
        for column in schema.counter_columns:
            if column not in record.raw_fields:
                errors.append(self._missing(column, line))
                continue
            try:
                value = parse_non_negative_int(record.get(column), column)
            except RecordValidationError as e:
                errors.append(
                    ValidationIssue(
                        code=_NUMBER_ISSUE_CODES.get(e.details.get("issue"), IssueCode.INVALID_NUMBER),
                        message=e.message,
                        line=line,
                        column=column,
                        value=e.value,
                    )
                )
                continue
            if value > schema.max_reasonable_value:
                warnings.append(
                    ValidationIssue(
                        code=IssueCode.VALUE_ABOVE_CEILING,
                        severity=IssueSeverity.WARNING,
                        message=f"{column} value {value} exceeds {schema.max_reasonable_value}",
                        line=line,
                        column=column,
                        value=value,
                    )
                )

        return errors, warnings

    @staticmethod
    def _missing(column: str, line: int) -> ValidationIssue:
        return ValidationIssue(
            code=IssueCode.MISSING_FIELD,
            message=f"Missing required field: {column}",
            line=line,
            column=column,
        )

    @staticmethod
    def _column_statistics(
        records: list[Record],
        schema: RecordSchema,
    ) -> dict[str, ColumnStatistics]:
        """Reporting-only statistics; invalid cells are skipped."""
        stats: dict[str, ColumnStatistics] = {}

        entity_values = [record.get(schema.entity_id_column).strip() for record in records]
        present = [value for value in entity_values if value]
        stats[schema.entity_id_column] = ColumnStatistics(
            column=schema.entity_id_column,
            null_count=len(entity_values) - len(present),
            unique_count=len(set(present)),
        )

        for column in schema.counter_columns:
            numbers: list[int] = []
            nulls = 0
            for record in records:
                raw = record.get(column).strip()
                if not raw:
                    nulls += 1
                    continue
                try:
                    numbers.append(parse_non_negative_int(raw, column))
                except RecordValidationError:
                    continue
            stats[column] = ColumnStatistics(
                column=column,
                null_count=nulls,
                min=min(numbers) if numbers else None,
                max=max(numbers) if numbers else None,
                avg=round(sum(numbers) / len(numbers), 2) if numbers else None,
            )
        return stats
