"""Error classification into the BUSINESS / SYSTEM / INFRASTRUCTURE taxonomy."""

from collections import Counter
from typing import Iterable

from pydantic import BaseModel, Field
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from statsloader.core.errors import ErrorKind, ProcessingError, Severity
from statsloader.models.result import ErrorClassification

# Message fragments that always mean CRITICAL, whatever the error type
CRITICAL_PATTERNS = (
    "data corruption",
    "corrupted",
    "security violation",
    "unauthorized access",
    "out of memory",
)

INFRASTRUCTURE_PATTERNS = (
    "connection",
    "timeout",
    "timed out",
    "throttl",
    "too many requests",
    "unavailable",
)

BUSINESS_PATTERNS = (
    "not found",
    "validation",
    "invalid",
    "business rule",
)


class ErrorSummary(BaseModel):
    """Tally of a set of classified errors."""

    total: int = 0
    errors_by_type: dict[str, int] = Field(default_factory=dict, description="Count per error code")
    errors_by_kind: dict[str, int] = Field(default_factory=dict, description="Count per error kind")
    retryable_count: int = 0
    non_retryable_count: int = 0
    critical_errors: list[str] = Field(default_factory=list, description="Distinct critical messages")


def _matches(message: str, patterns: Iterable[str]) -> bool:
    return any(pattern in message for pattern in patterns)


class ErrorClassifier:
    """Classify caught exceptions.

    Errors raised by this package carry their own classification. Anything
    else is classified by HTTP-like status code, then by exception type, and
    only then by message.
    """

    def classify(self, error: BaseException) -> ErrorClassification:
        """Classify an error.

        Args:
            error: Caught exception

        Returns:
            Classification
        """
        message = str(error).lower()
        classification = self._classify(error, message)
        if classification.severity != Severity.CRITICAL and (
            isinstance(error, MemoryError) or _matches(message, CRITICAL_PATTERNS)
        ):
            classification = classification.model_copy(update={"severity": Severity.CRITICAL})
        return classification

    def _classify(self, error: BaseException, message: str) -> ErrorClassification:
        if isinstance(error, ProcessingError):
            return ErrorClassification(
                error_kind=error.kind,
                code=error.code,
                is_retryable=error.is_retryable,
                severity=self.severity_for(error),
            )

        status_code = getattr(error, "status_code", None)
        if isinstance(status_code, int) and status_code >= 400:
            return self._classify_status(status_code)

        if isinstance(error, (RedisTimeoutError, TimeoutError)):
            return ErrorClassification(
                error_kind=ErrorKind.INFRASTRUCTURE,
                code="TIMEOUT",
                is_retryable=True,
                severity=Severity.WARNING,
            )
        if isinstance(error, (RedisConnectionError, ConnectionError)):
            return ErrorClassification(
                error_kind=ErrorKind.INFRASTRUCTURE,
                code="CONNECTION_ERROR",
                is_retryable=True,
                severity=Severity.WARNING,
            )
        if isinstance(error, MemoryError):
            return ErrorClassification(
                error_kind=ErrorKind.SYSTEM,
                code="OUT_OF_MEMORY",
                is_retryable=False,
                severity=Severity.CRITICAL,
            )

        if _matches(message, INFRASTRUCTURE_PATTERNS):
            return ErrorClassification(
                error_kind=ErrorKind.INFRASTRUCTURE,
                code="INFRASTRUCTURE_ERROR",
                is_retryable=True,
                severity=Severity.WARNING,
            )
        if _matches(message, BUSINESS_PATTERNS):
            return ErrorClassification(
                error_kind=ErrorKind.BUSINESS,
                code="BUSINESS_ERROR",
                is_retryable=False,
                severity=Severity.INFO,
            )

        return ErrorClassification(
            error_kind=ErrorKind.SYSTEM,
            code="UNKNOWN_ERROR",
            is_retryable=True,
            severity=Severity.ERROR,
        )

    @staticmethod
    def _classify_status(status_code: int) -> ErrorClassification:
        code = f"HTTP_{status_code}"
        if status_code in (408, 429):
            return ErrorClassification(
                error_kind=ErrorKind.INFRASTRUCTURE,
                code=code,
                is_retryable=True,
                severity=Severity.WARNING,
            )
        if status_code < 500:
            return ErrorClassification(
                error_kind=ErrorKind.BUSINESS,
                code=code,
                is_retryable=False,
                severity=Severity.WARNING,
            )
        return ErrorClassification(
            error_kind=ErrorKind.INFRASTRUCTURE,
            code=code,
            is_retryable=True,
            severity=Severity.WARNING if status_code == 503 else Severity.ERROR,
        )

    @staticmethod
    def severity_for(error: ProcessingError) -> Severity:
        """Severity of a classified error."""
        if error.code == "DATA_INTEGRITY_ERROR":
            return Severity.CRITICAL
        if error.kind == ErrorKind.INFRASTRUCTURE:
            return Severity.WARNING
        if error.kind == ErrorKind.BUSINESS:
            return Severity.INFO
        return Severity.ERROR

    def aggregate(self, errors: Iterable[BaseException]) -> ErrorSummary:
        """Tally errors by code and kind.

        Args:
            errors: Caught exceptions

        Returns:
            Error summary
        """
        by_type: Counter[str] = Counter()
        by_kind: Counter[str] = Counter()
        retryable = 0
        critical: list[str] = []
        total = 0

        for error in errors:
            total += 1
            classification = self.classify(error)
            by_type[classification.code] += 1
            by_kind[classification.error_kind.value] += 1
            if classification.is_retryable:
                retryable += 1
            if classification.severity == Severity.CRITICAL:
                message = str(error) or classification.code
                if message not in critical:
                    critical.append(message)

        return ErrorSummary(
            total=total,
            errors_by_type=dict(by_type),
            errors_by_kind=dict(by_kind),
            retryable_count=retryable,
            non_retryable_count=total - retryable,
            critical_errors=critical,
        )
