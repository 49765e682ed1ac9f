"""Chunk processing with bounded concurrency and per-item failure isolation."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import (
    BusinessError,
    ChunkContractError,
    EntityNotFoundError,
    VersionConflictError,
)
from statsloader.core.logging import get_logger
from statsloader.engine.circuit_breaker import CircuitBreaker, CircuitBreakerOptions
from statsloader.engine.pool import BoundedWorkerPool
from statsloader.engine.processor import RecordProcessor
from statsloader.engine.retry import RetryPolicy, is_retryable, with_retry
from statsloader.handling.service import ErrorContext, ErrorHandlingService
from statsloader.models.audit import AuditEntry, AuditEventType, AuditLevel
from statsloader.models.record import Chunk, Record
from statsloader.models.result import ChunkResult, ItemResult, ItemStatus
from statsloader.models.statistics import EntityStatistics, UpdateInstruction
from statsloader.observability.metrics import (
    CHUNK_LATENCY,
    CHUNKS_PROCESSED,
    ITEM_ERRORS,
    ITEM_LATENCY,
    ITEMS_PROCESSED,
    VERSION_CONFLICTS,
)
from statsloader.observability.tracing import ExecutionContext
from statsloader.storage.audit_store import AuditSink
from statsloader.storage.statistics_store import EntityStatisticsStore

logger = get_logger(__name__)

T = TypeVar("T")

COMPONENT = "chunk-processor"


def _is_store_call_retryable(error: BaseException) -> bool:
    # A version conflict is only resolved by re-reading, not by replaying the write
    if isinstance(error, VersionConflictError):
        return False
    return is_retryable(error)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ChunkProcessor:
    """Process chunks of records against the statistics store.

    Every item runs through its own pipeline: parse, load, apply, persist,
    audit. Any failure in a pipeline becomes an ERROR item result; only an
    oversized chunk makes ``process_chunk`` raise.
    """

    def __init__(
        self,
        store: EntityStatisticsStore,
        audit_sink: AuditSink | None = None,
        error_handler: ErrorHandlingService | None = None,
        processor: RecordProcessor | None = None,
        settings: Settings | None = None,
        breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self._audit_sink = audit_sink
        self.error_handler = error_handler or ErrorHandlingService(
            audit_sink=audit_sink,
            settings=self.settings,
        )
        self.processor = processor or RecordProcessor(self.settings)
        self.breaker = breaker or CircuitBreaker.from_options(
            "statistics-store",
            CircuitBreakerOptions.from_settings(self.settings),
            excluded=(BusinessError, VersionConflictError),
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self._sleep = sleep
        self.last_peak_in_flight = 0

    async def process_chunk(self, chunk: Chunk) -> ChunkResult:
        """Process every item of a chunk.

        Args:
            chunk: Chunk to process

        Returns:
            Chunk result with one outcome per item

        Raises:
            ChunkContractError: If the chunk holds more items than allowed
        """
        limit = self.settings.max_batch_size
        if len(chunk.items) > limit:
            raise ChunkContractError(
                f"Chunk {chunk.chunk_id} has {len(chunk.items)} items, maximum is {limit}",
                limit=limit,
                actual=len(chunk.items),
                correlation_id=chunk.chunk_id,
            )

        with ExecutionContext(chunk.execution_id, chunk.chunk_id):
            started_at = datetime.now(timezone.utc)
            start = time.perf_counter()
            logger.info(
                "Processing chunk",
                batch_index=chunk.batch_index,
                item_count=len(chunk.items),
                max_workers=self.settings.max_workers,
            )

            pool = BoundedWorkerPool(self.settings.max_workers)
            outcomes = await pool.run(chunk.items, lambda record: self._process_item(record, chunk))
            self.last_peak_in_flight = pool.peak_in_flight

            results: list[ItemResult] = []
            errors: list[ItemResult] = []
            for record, outcome in zip(chunk.items, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    outcome = await self._failed_item(record, chunk, outcome, 0)
                (results if outcome.is_success else errors).append(outcome)

            results.sort(key=lambda r: r.item_index)
            errors.sort(key=lambda r: r.item_index)
            elapsed = time.perf_counter() - start

            result = ChunkResult(
                chunk_id=chunk.chunk_id,
                batch_index=chunk.batch_index,
                execution_id=chunk.execution_id,
                processed_count=len(results) + len(errors),
                success_count=len(results),
                error_count=len(errors),
                processing_time_ms=int(elapsed * 1000),
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                results=results,
                errors=errors,
            )

            CHUNK_LATENCY.observe(elapsed)
            within_tolerance = result.error_rate <= self.settings.error_tolerance_percent
            CHUNKS_PROCESSED.labels(outcome="ok" if within_tolerance else "over_tolerance").inc()
            if not within_tolerance:
                logger.warning(
                    "Chunk error rate above tolerance",
                    error_rate=round(result.error_rate, 2),
                    tolerance=self.settings.error_tolerance_percent,
                    error_count=result.error_count,
                    processed_count=result.processed_count,
                )

            await self._audit(
                AuditEntry(
                    execution_id=chunk.execution_id,
                    event_type=AuditEventType.CHUNK_COMPLETED,
                    level=AuditLevel.INFO if within_tolerance else AuditLevel.WARN,
                    component=COMPONENT,
                    message=f"Chunk {chunk.chunk_id} processed",
                    details={
                        "batch_index": chunk.batch_index,
                        "processed_count": result.processed_count,
                        "success_count": result.success_count,
                        "error_count": result.error_count,
                        "processing_time_ms": result.processing_time_ms,
                        "peak_in_flight": pool.peak_in_flight,
                    },
                    correlation_id=chunk.chunk_id,
                )
            )

            logger.info(
                "Chunk processed",
                processed=result.processed_count,
                success=result.success_count,
                errors=result.error_count,
                elapsed_ms=result.processing_time_ms,
            )
            return result

    async def _process_item(self, record: Record, chunk: Chunk) -> ItemResult:
        start = time.perf_counter()
        try:
            instruction = self.processor.to_instruction(record)
            updated = await self._update_statistics(instruction, chunk.execution_id)
        except Exception as e:
            return await self._failed_item(record, chunk, e, _elapsed_ms(start))

        elapsed_ms = _elapsed_ms(start)
        ITEMS_PROCESSED.labels(status=ItemStatus.SUCCESS.value).inc()
        ITEM_LATENCY.observe(elapsed_ms / 1000)

        await self._audit(
            AuditEntry(
                execution_id=chunk.execution_id,
                event_type=AuditEventType.ITEM_PROCESSED,
                level=AuditLevel.DEBUG,
                component=COMPONENT,
                message=f"Statistics updated for {instruction.entity_id}",
                details={
                    "item_index": record.index,
                    "entity_id": instruction.entity_id,
                    "increments": instruction.increments,
                    "version": updated.version,
                },
                correlation_id=chunk.chunk_id,
            )
        )

        return ItemResult(
            item_index=record.index,
            entity_id=instruction.entity_id,
            status=ItemStatus.SUCCESS,
            processing_time_ms=elapsed_ms,
            updated_counters=dict(updated.counters),
        )

    async def _update_statistics(
        self,
        instruction: UpdateInstruction,
        execution_id: str,
    ) -> EntityStatistics:
        """Read-modify-write one entity."""
        if not self.settings.optimistic_updates:
            current = await self._load(instruction.entity_id)
            updated = self.processor.apply_instruction(current, instruction, execution_id)
            await self._store_call("put", self.store.put, updated)
            return updated

        attempts = self.settings.conflict_max_attempts
        for attempt in range(1, attempts + 1):
            current = await self._load(instruction.entity_id)
            updated = self.processor.apply_instruction(current, instruction, execution_id)
            try:
                await self._store_call("put_if_version", self.store.put_if_version, updated, current.version)
            except VersionConflictError:
                VERSION_CONFLICTS.inc()
                if attempt == attempts:
                    raise
                logger.info(
                    "Version conflict, re-reading entity",
                    entity_id=instruction.entity_id,
                    attempt=attempt,
                )
            else:
                return updated

        raise AssertionError("unreachable")

    async def _load(self, entity_id: str) -> EntityStatistics:
        current = await self._store_call("get", self.store.get, entity_id)
        if current is None:
            raise EntityNotFoundError(entity_id)
        return current

    async def _store_call(self, operation: str, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        return await with_retry(
            lambda: self.breaker.call(fn, *args),
            self.retry_policy,
            operation=operation,
            retry_condition=_is_store_call_retryable,
            sleep=self._sleep,
        )

    async def _failed_item(
        self,
        record: Record,
        chunk: Chunk,
        error: Exception,
        elapsed_ms: int,
    ) -> ItemResult:
        entity_id = record.get(self.processor.schema.entity_id_column).strip()
        handling = await self.error_handler.handle_error(
            error,
            ErrorContext(
                execution_id=chunk.execution_id,
                component=COMPONENT,
                event_type=AuditEventType.ITEM_FAILED,
                correlation_id=chunk.chunk_id,
                entity_id=entity_id or None,
                item_index=record.index,
            ),
        )
        classification = handling.classification
        ITEMS_PROCESSED.labels(status=ItemStatus.ERROR.value).inc()
        ITEM_ERRORS.labels(
            error_kind=classification.error_kind.value,
            error_type=classification.code,
        ).inc()
        logger.info(
            "Item failed",
            item_index=record.index,
            entity_id=entity_id,
            error_type=classification.code,
            error=str(error),
        )
        return ItemResult(
            item_index=record.index,
            entity_id=entity_id,
            status=ItemStatus.ERROR,
            processing_time_ms=elapsed_ms,
            error=str(error) or type(error).__name__,
            error_type=classification.code,
            error_kind=classification.error_kind,
            severity=classification.severity,
            retryable=classification.is_retryable,
        )

    async def _audit(self, entry: AuditEntry) -> None:
        """Best-effort audit write."""
        if self._audit_sink is None:
            return
        try:
            await self._audit_sink.append(entry)
        except Exception as e:
            logger.warning(
                "Failed to write audit entry",
                event_type=entry.event_type.value,
                error=str(e),
            )


# Process-wide processor; owns the statistics store circuit breaker
_chunk_processor: ChunkProcessor | None = None


def get_chunk_processor() -> ChunkProcessor:
    """Get the process-wide chunk processor backed by Redis."""
    global _chunk_processor
    if _chunk_processor is None:
        from statsloader.storage.audit_store import RedisAuditSink, RedisEscalationQueue
        from statsloader.storage.statistics_store import RedisStatisticsStore

        settings = get_settings()
        audit_sink = RedisAuditSink()
        _chunk_processor = ChunkProcessor(
            store=RedisStatisticsStore(),
            audit_sink=audit_sink,
            error_handler=ErrorHandlingService(
                audit_sink=audit_sink,
                escalation_sink=RedisEscalationQueue(),
                settings=settings,
            ),
            settings=settings,
        )
    return _chunk_processor


def reset_chunk_processor() -> None:
    """Drop the process-wide processor."""
    global _chunk_processor
    _chunk_processor = None
