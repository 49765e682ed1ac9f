"""Correlation context for logs."""

import uuid
from contextvars import ContextVar
from typing import Any

import structlog

# Context variable for correlation ID
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return uuid.uuid4().hex[:16]


def get_correlation_id() -> str:
    """Get current correlation ID (empty when none is bound)."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set current correlation ID."""
    _correlation_id.set(correlation_id)
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    """Clear current correlation ID."""
    _correlation_id.set("")
    structlog.contextvars.unbind_contextvars("correlation_id")


class ExecutionContext:
    """Bind execution and chunk identifiers to every log line in scope.

    Usage:
        with ExecutionContext(execution_id="exec-1", chunk_id="c-1"):
            logger.info("Processing")
    """

    def __init__(
        self,
        execution_id: str,
        chunk_id: str | None = None,
        correlation_id: str | None = None,
    ):
        self._execution_id = execution_id
        self._chunk_id = chunk_id
        self._correlation_id = correlation_id or chunk_id or generate_correlation_id()
        self._previous_id = ""
        self._token: Any = None

    def __enter__(self) -> str:
        self._previous_id = get_correlation_id()
        values = {"execution_id": self._execution_id}
        if self._chunk_id:
            values["chunk_id"] = self._chunk_id
        self._token = structlog.contextvars.bind_contextvars(**values)
        set_correlation_id(self._correlation_id)
        return self._correlation_id

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._token)
        if self._previous_id:
            set_correlation_id(self._previous_id)
        else:
            clear_correlation_id()
