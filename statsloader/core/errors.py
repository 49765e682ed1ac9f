"""Error taxonomy shared by every processing component.

Each error carries its classification (kind, code, retryability) from the
point where it is raised, so classifiers only fall back to inspecting
messages for exceptions raised by third-party code.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Top-level error taxonomy."""

    BUSINESS = "BUSINESS"  # Caused by the data or the caller
    SYSTEM = "SYSTEM"  # Programming or consistency faults
    INFRASTRUCTURE = "INFRASTRUCTURE"  # Dependency faults


class Severity(str, Enum):
    """Error severity levels."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProcessingError(Exception):
    """Base class for classified errors."""

    kind: ErrorKind = ErrorKind.SYSTEM
    code: str = "PROCESSING_ERROR"
    status_code: int = 500
    is_retryable: bool = True

    def __init__(
        self,
        message: str,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_log_entry(self) -> dict[str, Any]:
        """Structured fields for logging and audit entries."""
        return {
            "error_code": self.code,
            "error_kind": self.kind.value,
            "error_message": self.message,
            "is_retryable": self.is_retryable,
            "correlation_id": self.correlation_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class BusinessError(ProcessingError):
    """Errors caused by input data; never retried."""

    kind = ErrorKind.BUSINESS
    code = "BUSINESS_ERROR"
    status_code = 400
    is_retryable = False


class ProcessingSystemError(ProcessingError):
    """Application faults; retryable unless stated otherwise."""

    kind = ErrorKind.SYSTEM
    code = "SYSTEM_ERROR"
    status_code = 500
    is_retryable = True


class InfrastructureError(ProcessingError):
    """Dependency faults such as timeouts and dropped connections."""

    kind = ErrorKind.INFRASTRUCTURE
    code = "INFRASTRUCTURE_ERROR"
    status_code = 503
    is_retryable = True


# Business errors


class RecordValidationError(BusinessError):
    """A record field is missing or malformed."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, correlation_id, {"field": field, "value": value})
        self.field = field
        self.value = value


class EntityNotFoundError(BusinessError):
    """No statistics exist for the referenced entity."""

    code = "ENTITY_NOT_FOUND"
    status_code = 404

    def __init__(self, entity_id: str, correlation_id: str | None = None):
        super().__init__(f"Entity not found: {entity_id}", correlation_id, {"entity_id": entity_id})
        self.entity_id = entity_id


class BusinessRuleViolationError(BusinessError):
    """A well-formed record breaks a business rule."""

    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422

    def __init__(
        self,
        message: str,
        rule: str,
        value: Any = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, correlation_id, {"rule": rule, "value": value})
        self.rule = rule
        self.value = value


class ChunkContractError(BusinessError):
    """The caller handed over a chunk that breaks the processing contract."""

    code = "CHUNK_CONTRACT_VIOLATION"
    status_code = 413

    def __init__(self, message: str, limit: int, actual: int, correlation_id: str | None = None):
        super().__init__(message, correlation_id, {"limit": limit, "actual": actual})
        self.limit = limit
        self.actual = actual


class SchemaDefinitionError(BusinessError):
    """A record schema definition is unusable."""

    code = "SCHEMA_DEFINITION_ERROR"


# System errors


class StatisticsConsistencyError(ProcessingSystemError):
    """Computed statistics do not match old value plus increment."""

    code = "DATA_INTEGRITY_ERROR"
    is_retryable = False

    def __init__(
        self,
        message: str,
        expected: Any = None,
        actual: Any = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, correlation_id, {"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class VersionConflictError(ProcessingSystemError):
    """The stored version changed between read and write."""

    code = "VERSION_CONFLICT"
    status_code = 409

    def __init__(self, entity_id: str, expected_version: int, correlation_id: str | None = None):
        super().__init__(
            f"Version conflict for {entity_id}: expected version {expected_version}",
            correlation_id,
            {"entity_id": entity_id, "expected_version": expected_version},
        )
        self.entity_id = entity_id
        self.expected_version = expected_version


class ConfigurationError(ProcessingSystemError):
    """Required configuration is missing or invalid."""

    code = "CONFIGURATION_ERROR"
    is_retryable = False


# Infrastructure errors


class StoreUnavailableError(InfrastructureError):
    """The statistics store could not be reached."""

    code = "STORE_UNAVAILABLE"


class StoreTimeoutError(InfrastructureError):
    """A store call did not complete in time."""

    code = "STORE_TIMEOUT"
    status_code = 504


class ThrottlingError(InfrastructureError):
    """The dependency asked us to slow down."""

    code = "THROTTLED"
    status_code = 429


class CircuitOpenError(InfrastructureError):
    """Raised without calling the dependency while its circuit is open."""

    code = "CIRCUIT_OPEN"
    is_retryable = False

    def __init__(self, name: str, retry_after: float = 0.0, correlation_id: str | None = None):
        super().__init__(
            f"Circuit breaker '{name}' is OPEN",
            correlation_id,
            {"circuit": name, "retry_after": round(retry_after, 3)},
        )
        self.name = name
        self.retry_after = retry_after
