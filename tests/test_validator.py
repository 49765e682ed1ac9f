"""Tests for batch validation and field rules."""

import pytest

from conftest import make_record
from statsloader.core.config import Settings
from statsloader.core.errors import RecordValidationError, SchemaDefinitionError
from statsloader.validation.reader import parse_delimited
from statsloader.validation.rules import INT64_MAX, parse_non_negative_int
from statsloader.validation.schema import IssueCode, RecordSchema
from statsloader.validation.validator import RecordValidator


def codes(issues) -> list[IssueCode]:
    return [issue.code for issue in issues]


@pytest.mark.parametrize("raw", ["", "  ", "abc", "1.5", "+3", "1e3", "1 2", "٣"])
def test_parse_non_negative_int_rejects_non_digits(raw: str) -> None:
    with pytest.raises(RecordValidationError):
        parse_non_negative_int(raw, "counterA")


def test_parse_non_negative_int_reports_reason() -> None:
    with pytest.raises(RecordValidationError) as negative:
        parse_non_negative_int("-4", "counterA")
    with pytest.raises(RecordValidationError) as too_large:
        parse_non_negative_int(str(INT64_MAX + 1), "counterA")

    assert negative.value.details["issue"] == "negative"
    assert too_large.value.details["issue"] == "too_large"
    assert parse_non_negative_int(" 42 ", "counterA") == 42


def test_parse_non_negative_int_rejects_very_long_digit_strings() -> None:
    with pytest.raises(RecordValidationError) as exc_info:
        parse_non_negative_int("9" * 5000, "counterA")

    assert exc_info.value.details["issue"] == "too_large"
    assert parse_non_negative_int("0" * 5000 + "7", "counterA") == 7
    assert parse_non_negative_int(str(INT64_MAX), "counterA") == INT64_MAX


def test_reader_keeps_extra_cells_and_short_rows() -> None:
    header, records = parse_delimited("entityId,counterA,counterB\nU00001,1,2,9\nU00002,1\n")

    assert header == ["entityId", "counterA", "counterB"]
    assert records[0].raw_fields["_extra_0"] == "9"
    assert "counterB" not in records[1].raw_fields
    assert [r.index for r in records] == [0, 1]


def test_valid_batch_passes_with_column_statistics(sample_csv: str) -> None:
    header, records = parse_delimited(sample_csv)
    result = RecordValidator(Settings()).validate_batch(records, header=header)

    assert result.total_rows == 3
    assert [r.index for r in result.valid] == [0, 1]
    assert codes(result.errors) == [IssueCode.INVALID_ENTITY_ID]
    assert result.errors[0].line == 4
    assert result.errors[0].column == "entityId"

    counter_a = result.column_statistics["counterA"]
    assert counter_a.min == 0
    assert counter_a.max == 3
    assert counter_a.avg == pytest.approx(1.33)
    assert result.column_statistics["entityId"].unique_count == 3


def test_header_errors_make_batch_invalid_without_row_checks() -> None:
    records = [make_record(0, "U00001", 1, 1)]
    result = RecordValidator(Settings()).validate_batch(
        records,
        header=["entityId", "counterA", "counterA", ""],
    )

    assert not result.is_valid
    assert result.valid == []
    assert set(codes(result.errors)) == {
        IssueCode.MISSING_HEADER,
        IssueCode.DUPLICATE_HEADERS,
        IssueCode.EMPTY_HEADERS,
    }


def test_row_errors_are_tagged_by_line_and_column() -> None:
    header, records = parse_delimited(
        "entityId,counterA,counterB\n"
        "U00001,-1,2\n"
        "U00002,x,\n"
        "U00003,1\n"
    )
    result = RecordValidator(Settings()).validate_batch(records, header=header)

    by_line = {(issue.line, issue.column): issue.code for issue in result.errors}
    assert by_line[(2, "counterA")] == IssueCode.NEGATIVE_VALUE
    assert by_line[(3, "counterA")] == IssueCode.INVALID_NUMBER
    assert by_line[(3, "counterB")] == IssueCode.EMPTY_FIELD
    assert by_line[(4, None)] == IssueCode.FIELD_COUNT_MISMATCH
    assert by_line[(4, "counterB")] == IssueCode.MISSING_FIELD
    assert result.valid == []


def test_warnings_do_not_block_records() -> None:
    records = [make_record(0, "U00000", 20000, 1)]
    result = RecordValidator(Settings()).validate_batch(records)

    assert result.is_valid
    assert len(result.valid) == 1
    assert set(codes(result.warnings)) == {IssueCode.ENTITY_NUMBER_ZERO, IssueCode.VALUE_ABOVE_CEILING}


def test_error_cap_emits_marker_and_stops() -> None:
    records = [make_record(i, "BAD", 1, 1) for i in range(10)]
    result = RecordValidator(Settings()).validate_batch(records, max_errors=3)

    assert result.truncated
    assert len(result.errors) == 4
    assert result.errors[-1].code == IssueCode.TOO_MANY_ERRORS
    assert result.errors[-1].line == 4


def test_invalid_schema_definition_raises() -> None:
    validator = RecordValidator(Settings())
    with pytest.raises(SchemaDefinitionError):
        validator.validate_batch([], schema=RecordSchema(counter_columns=[]))
    with pytest.raises(SchemaDefinitionError):
        validator.validate_batch([], schema=RecordSchema(entity_id_pattern="(["))


def test_very_long_number_is_reported_as_too_large() -> None:
    records = [make_record(0, "U00001", "9" * 5000, 1), make_record(1, "U00002", 1, 1)]
    result = RecordValidator(Settings()).validate_batch(records)

    assert codes(result.errors) == [IssueCode.VALUE_TOO_LARGE]
    assert result.errors[0].column == "counterA"
    assert [r.index for r in result.valid] == [1]


def test_error_cap_must_be_positive() -> None:
    validator = RecordValidator(Settings(validation_max_errors=2))
    records = [make_record(i, "BAD", 1, 1) for i in range(5)]

    with pytest.raises(ValueError):
        validator.validate_batch(records, max_errors=0)

    result = validator.validate_batch(records)
    assert result.truncated
    assert len(result.errors) == 3
