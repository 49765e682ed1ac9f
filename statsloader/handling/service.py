"""Error handling: classification, audit and windowed escalation."""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from pydantic import BaseModel, Field

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import ErrorKind, Severity
from statsloader.core.logging import get_logger
from statsloader.engine.retry import RetryPolicy
from statsloader.handling.classifier import ErrorClassifier
from statsloader.models.audit import AuditEntry, AuditEventType, AuditLevel, EscalationAlert
from statsloader.models.result import ErrorClassification
from statsloader.observability.metrics import ERRORS_HANDLED, ESCALATIONS
from statsloader.storage.audit_store import AuditSink, EscalationSink

logger = get_logger(__name__)

COMPONENT = "error-handling"


class ErrorContext(BaseModel):
    """Where an error happened."""

    execution_id: str = Field(..., min_length=1)
    scope_key: str | None = Field(default=None, description="Escalation scope (execution if omitted)")
    component: str = "chunk-processor"
    event_type: AuditEventType = AuditEventType.ERROR_HANDLED
    correlation_id: str | None = None
    entity_id: str | None = None
    item_index: int | None = None
    retry_count: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def scope(self) -> str:
        return self.scope_key or self.execution_id


class RetryDecision(BaseModel):
    """Whether and how the failed operation should be retried."""

    should_retry: bool
    reason: str
    policy: RetryPolicy | None = None


class ErrorHandlingResult(BaseModel):
    """Outcome of handling one error."""

    handled: bool
    classification: ErrorClassification
    retry: RetryDecision
    escalated: bool = False
    consecutive_errors: int = 0
    window_errors: int = 0
    processing_time_ms: int = 0

    @property
    def retryable(self) -> bool:
        return self.retry.should_retry


class ErrorBatchResult(BaseModel):
    """Outcome of handling a batch of errors."""

    total_errors: int = 0
    handled_count: int = 0
    retryable_count: int = 0
    non_retryable_count: int = 0
    errors_by_kind: dict[str, int] = Field(default_factory=dict)
    critical_count: int = 0
    warning_count: int = 0
    results: list[ErrorHandlingResult] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


@dataclass
class _ErrorWindow:
    window_start: float
    error_count: int = 0
    consecutive: int = 0
    last_error_time: float | None = None
    codes: Counter[str] = field(default_factory=Counter)


class ErrorHandlingService:
    """Classify errors, audit them and escalate repeated or critical failures.

    Failures are tracked per (scope, error kind). A rolling window counts all
    failures since the window opened; a streak counts failures that arrive
    closer together than ``consecutive_error_seconds``. Reaching
    ``max_consecutive_errors`` in a streak, or any CRITICAL error, escalates.
    """

    def __init__(
        self,
        audit_sink: AuditSink | None = None,
        escalation_sink: EscalationSink | None = None,
        classifier: ErrorClassifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._audit_sink = audit_sink
        self._escalation_sink = escalation_sink
        self._classifier = classifier or ErrorClassifier()
        self._clock = clock
        self._windows: dict[tuple[str, ErrorKind], _ErrorWindow] = {}

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    async def handle_error(self, error: BaseException, context: ErrorContext) -> ErrorHandlingResult:
        """Handle one error. Never raises.

        Args:
            error: Caught exception
            context: Where it happened

        Returns:
            Handling result; ``handled`` is False if handling itself failed
        """
        start = time.perf_counter()
        try:
            classification = self._classifier.classify(error)
            ERRORS_HANDLED.labels(
                error_kind=classification.error_kind.value,
                severity=classification.severity.value,
            ).inc()

            await self._record_audit(error, context, classification)

            window = self._track(context, classification)
            escalate = (
                window.consecutive >= self.settings.max_consecutive_errors
                or classification.severity == Severity.CRITICAL
            )
            if escalate:
                await self._escalate(error, context, classification, window)

            result = ErrorHandlingResult(
                handled=True,
                classification=classification,
                retry=self.decide_retry(classification, context),
                escalated=escalate,
                consecutive_errors=window.consecutive,
                window_errors=window.error_count,
                processing_time_ms=int((time.perf_counter() - start) * 1000),
            )
            logger.info(
                "Error handled",
                execution_id=context.execution_id,
                error_kind=classification.error_kind.value,
                error_code=classification.code,
                retryable=result.retryable,
                escalated=escalate,
            )
            return result
        except Exception as handling_error:
            logger.error(
                "Failed to handle error",
                execution_id=context.execution_id,
                original_error=str(error),
                handling_error=str(handling_error),
                exc_info=True,
            )
            return ErrorHandlingResult(
                handled=False,
                classification=ErrorClassification(
                    error_kind=ErrorKind.SYSTEM,
                    code="ERROR_HANDLING_FAILED",
                    is_retryable=False,
                    severity=Severity.CRITICAL,
                ),
                retry=RetryDecision(should_retry=False, reason="Error handling failed"),
                processing_time_ms=int((time.perf_counter() - start) * 1000),
            )

    async def handle_error_batch(
        self,
        errors: Sequence[BaseException],
        context: ErrorContext,
    ) -> ErrorBatchResult:
        """Handle several errors and summarize them.

        Args:
            errors: Caught exceptions
            context: Shared context

        Returns:
            Batch summary with recommendations
        """
        results = [await self.handle_error(error, context) for error in errors]
        by_kind = Counter(r.classification.error_kind.value for r in results)
        retryable = sum(1 for r in results if r.retryable)
        total = len(results)

        batch = ErrorBatchResult(
            total_errors=total,
            handled_count=sum(1 for r in results if r.handled),
            retryable_count=retryable,
            non_retryable_count=total - retryable,
            errors_by_kind=dict(by_kind),
            critical_count=sum(1 for r in results if r.classification.severity == Severity.CRITICAL),
            warning_count=sum(1 for r in results if r.classification.severity == Severity.WARNING),
            results=results,
            recommendations=self._recommendations(by_kind, total),
        )
        logger.info(
            "Error batch handled",
            execution_id=context.execution_id,
            total_errors=total,
            retryable_count=retryable,
            critical_count=batch.critical_count,
        )
        return batch

    def decide_retry(self, classification: ErrorClassification, context: ErrorContext) -> RetryDecision:
        """Decide whether the failed operation is worth re-driving.

        Infrastructure errors get twice the initial delay.
        """
        if not classification.is_retryable:
            return RetryDecision(should_retry=False, reason="Error is not retryable")

        policy = RetryPolicy.from_settings(self.settings)
        if context.retry_count >= policy.max_attempts:
            return RetryDecision(should_retry=False, reason="Max retry attempts reached")

        if classification.error_kind == ErrorKind.INFRASTRUCTURE:
            policy = policy.model_copy(
                update={"initial_delay": min(policy.initial_delay * 2, policy.max_delay)}
            )
        return RetryDecision(should_retry=True, reason="Error is retryable", policy=policy)

    def reset(self, scope_key: str | None = None) -> None:
        """Forget tracked failures, for one scope or all of them."""
        if scope_key is None:
            self._windows.clear()
            return
        for key in [k for k in self._windows if k[0] == scope_key]:
            del self._windows[key]

    def _evict_stale(self, now: float) -> None:
        """Drop windows that would restart anyway on their next failure."""
        horizon = max(self.settings.error_window_seconds, self.settings.consecutive_error_seconds)
        stale = [
            key
            for key, window in self._windows.items()
            if window.last_error_time is not None and now - window.last_error_time > horizon
        ]
        for key in stale:
            del self._windows[key]

    def _track(self, context: ErrorContext, classification: ErrorClassification) -> _ErrorWindow:
        key = (context.scope, classification.error_kind)
        now = self._clock()
        self._evict_stale(now)
        window = self._windows.get(key)
        if window is None:
            window = _ErrorWindow(window_start=now)
            self._windows[key] = window
        elif now - window.window_start > self.settings.error_window_seconds:
            # New window; the streak carries over if failures keep coming
            window.window_start = now
            window.error_count = 0
            window.codes.clear()

        # Gap to the previous failure decides whether the streak continues
        if (
            window.last_error_time is not None
            and now - window.last_error_time < self.settings.consecutive_error_seconds
        ):
            window.consecutive += 1
        else:
            window.consecutive = 1

        window.error_count += 1
        window.last_error_time = now
        window.codes[classification.code] += 1
        return window

    async def _record_audit(
        self,
        error: BaseException,
        context: ErrorContext,
        classification: ErrorClassification,
    ) -> None:
        if self._audit_sink is None:
            return
        entry = AuditEntry(
            execution_id=context.execution_id,
            event_type=context.event_type,
            level=AuditLevel.ERROR,
            component=context.component,
            message=str(error) or type(error).__name__,
            details={
                "error_name": type(error).__name__,
                "error_kind": classification.error_kind.value,
                "error_code": classification.code,
                "severity": classification.severity.value,
                "is_retryable": classification.is_retryable,
                "entity_id": context.entity_id,
                "item_index": context.item_index,
                **context.metadata,
            },
            correlation_id=context.correlation_id,
        )
        try:
            await self._audit_sink.append(entry)
        except Exception as e:
            logger.warning(
                "Failed to record error audit entry",
                execution_id=context.execution_id,
                original_error=str(error),
                audit_error=str(e),
            )

    async def _escalate(
        self,
        error: BaseException,
        context: ErrorContext,
        classification: ErrorClassification,
        window: _ErrorWindow,
    ) -> None:
        ESCALATIONS.labels(error_kind=classification.error_kind.value).inc()
        logger.error(
            "Escalating error",
            execution_id=context.execution_id,
            scope_key=context.scope,
            error_code=classification.code,
            severity=classification.severity.value,
            consecutive_errors=window.consecutive,
            window_errors=window.error_count,
        )

        alert = EscalationAlert(
            execution_id=context.execution_id,
            scope_key=context.scope,
            error_kind=classification.error_kind.value,
            error_code=classification.code,
            severity=classification.severity.value,
            message=str(error) or classification.code,
            consecutive_errors=window.consecutive,
            window_errors=window.error_count,
            window_duration_seconds=round(self._clock() - window.window_start, 3),
        )

        if self._escalation_sink is not None:
            try:
                await self._escalation_sink.escalate(alert)
            except Exception as e:
                logger.warning(
                    "Failed to deliver escalation",
                    execution_id=context.execution_id,
                    error=str(e),
                )

        if self._audit_sink is not None:
            try:
                await self._audit_sink.append(
                    AuditEntry(
                        execution_id=context.execution_id,
                        event_type=AuditEventType.ERROR_ESCALATED,
                        level=AuditLevel.ERROR,
                        component=COMPONENT,
                        message=f"Error escalated: {alert.message}",
                        details=alert.model_dump(mode="json"),
                        correlation_id=context.correlation_id,
                    )
                )
            except Exception as e:
                logger.warning(
                    "Failed to record escalation audit entry",
                    execution_id=context.execution_id,
                    error=str(e),
                )

    @staticmethod
    def _recommendations(by_kind: Counter[str], total: int) -> list[str]:
        recommendations = []
        if total == 0:
            return recommendations
        if by_kind[ErrorKind.INFRASTRUCTURE.value] > total * 0.5:
            recommendations.append(
                "High infrastructure error rate detected. Check store health and network connectivity."
            )
        if by_kind[ErrorKind.BUSINESS.value] > total * 0.7:
            recommendations.append(
                "High business error rate detected. Review input data and business rules."
            )
        if by_kind[ErrorKind.SYSTEM.value] > total * 0.3:
            recommendations.append(
                "High system error rate detected. Check application logs and configuration."
            )
        return recommendations
