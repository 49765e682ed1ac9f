"""Field parsing rules shared by validation and record processing."""

import re
from enum import Enum
from functools import lru_cache

from statsloader.core.errors import RecordValidationError, SchemaDefinitionError

# Counters are persisted as signed 64-bit integers
INT64_MAX = 2**63 - 1
INT64_MAX_DIGITS = len(str(INT64_MAX))

_DIGITS = re.compile(r"[0-9]+")


@lru_cache(maxsize=32)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an entity id pattern.

    Raises:
        SchemaDefinitionError: If the pattern is not a valid regular expression
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise SchemaDefinitionError(f"Invalid entity id pattern {pattern!r}: {e}") from e


def parse_entity_id(value: str, pattern: str, line: int | None = None) -> str:
    """Trim and check an entity identifier.

    Args:
        value: Raw cell value
        pattern: Regular expression the identifier must fully match
        line: Source line for error messages

    Returns:
        Normalized identifier

    Raises:
        RecordValidationError: If the identifier does not match
    """
    entity_id = value.strip()
    if not compile_pattern(pattern).fullmatch(entity_id):
        where = f" at line {line}" if line is not None else ""
        raise RecordValidationError(
            f"Invalid entity id format{where}: {entity_id!r} (expected pattern {pattern})",
            field="entity_id",
            value=entity_id,
        )
    return entity_id


class NumberIssue(str, Enum):
    """Why a numeric cell was rejected."""

    EMPTY = "empty"
    NEGATIVE = "negative"
    NOT_A_NUMBER = "not_a_number"
    TOO_LARGE = "too_large"


def _number_error(issue: NumberIssue, message: str, field: str, value: str) -> RecordValidationError:
    error = RecordValidationError(message, field=field, value=value)
    error.details["issue"] = issue.value
    return error


def parse_non_negative_int(value: str, field: str, line: int | None = None) -> int:
    """Strictly parse a non-negative integer.

    Only plain decimal digits are accepted; signs, decimals, exponents and
    embedded whitespace are rejected. The error's ``details["issue"]`` holds
    a ``NumberIssue`` value.

    Args:
        value: Raw cell value
        field: Column name for error messages
        line: Source line for error messages

    Returns:
        Parsed integer

    Raises:
        RecordValidationError: If the value is empty, non-numeric, negative
            or beyond the 64-bit counter range
    """
    where = f" at line {line}" if line is not None else ""
    text = value.strip()
    if text == "":
        raise _number_error(NumberIssue.EMPTY, f"Empty value for {field}{where}", field, value)
    if text.startswith("-") and _DIGITS.fullmatch(text[1:]):
        raise _number_error(
            NumberIssue.NEGATIVE,
            f"Negative value not allowed for {field}{where}: {text}",
            field,
            text,
        )
    if not _DIGITS.fullmatch(text):
        raise _number_error(
            NumberIssue.NOT_A_NUMBER,
            f"Invalid number format for {field}{where}: {text!r}",
            field,
            text,
        )
    # Length first; int() refuses very long digit strings
    significant = text.lstrip("0") or "0"
    if len(significant) > INT64_MAX_DIGITS or int(significant) > INT64_MAX:
        raise _number_error(
            NumberIssue.TOO_LARGE,
            f"Value too large for {field}{where}: {text[:32]}",
            field,
            text[:32],
        )
    return int(significant)


def entity_number(entity_id: str) -> int | None:
    """Numeric part of an entity identifier, if it has one."""
    digits = "".join(ch for ch in entity_id if ch.isdigit())
    return int(digits) if digits else None
