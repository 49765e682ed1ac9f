"""Tests for chunk processing."""

import pytest
from pydantic import ValidationError

from conftest import InMemoryStatisticsStore, RecordingAuditSink, make_chunk, make_record
from statsloader.core.config import Settings
from statsloader.core.errors import ChunkContractError, ErrorKind, StoreTimeoutError, StoreUnavailableError
from statsloader.engine.chunk import ChunkProcessor
from statsloader.models.audit import AuditEventType
from statsloader.models.result import ItemStatus


def make_processor(store, settings: Settings, sleep, audit_sink=None) -> ChunkProcessor:
    return ChunkProcessor(store=store, audit_sink=audit_sink, settings=settings, sleep=sleep)


@pytest.mark.asyncio
async def test_mixed_chunk_isolates_failures(settings, recording_sleep, audit_sink) -> None:
    store = InMemoryStatisticsStore({"U00001": {"counterA": 5, "counterB": 2}, "U00002": {}})
    chunk = make_chunk(
        [
            make_record(0, "U00001", 1, 0),
            make_record(1, "INVALID", 1, 0),
            make_record(2, "U00002", 0, 0),
        ]
    )

    result = await make_processor(store, settings, recording_sleep, audit_sink).process_chunk(chunk)

    assert (result.processed_count, result.success_count, result.error_count) == (3, 1, 2)
    assert result.results[0].item_index == 0
    assert result.results[0].updated_counters == {"counterA": 6, "counterB": 2}

    errors = {e.item_index: e for e in result.errors}
    assert errors[1].error_kind == ErrorKind.BUSINESS
    assert errors[1].error_type == "VALIDATION_ERROR"
    assert errors[1].retryable is False
    assert errors[2].error_kind == ErrorKind.BUSINESS
    assert errors[2].error_type == "BUSINESS_RULE_VIOLATION"
    assert errors[2].entity_id == "U00002"

    assert store.data["U00001"].counters == {"counterA": 6, "counterB": 2}
    assert store.data["U00002"].counters == {}

    event_types = [entry.event_type for entry in audit_sink.entries]
    assert event_types.count(AuditEventType.ITEM_PROCESSED) == 1
    assert event_types.count(AuditEventType.ITEM_FAILED) == 2
    assert event_types[-1] == AuditEventType.CHUNK_COMPLETED


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_worker_budget(settings, recording_sleep) -> None:
    entities = {f"U{i:05d}": {"counterA": i} for i in range(1, 26)}
    store = InMemoryStatisticsStore(entities, delay=0.005)
    chunk = make_chunk([make_record(i, f"U{i + 1:05d}", 1, 1) for i in range(25)])
    processor = make_processor(store, settings, recording_sleep)

    result = await processor.process_chunk(chunk)

    assert result.success_count == 25
    assert store.peak_in_flight <= settings.max_workers
    assert processor.last_peak_in_flight == settings.max_workers
    for item in result.results:
        entity_id = item.entity_id
        assert item.updated_counters["counterA"] == entities[entity_id]["counterA"] + 1


@pytest.mark.asyncio
async def test_oversized_chunk_is_rejected(settings, recording_sleep) -> None:
    store = InMemoryStatisticsStore()
    chunk = make_chunk([make_record(i, "U00001", 1, 0) for i in range(26)])

    with pytest.raises(ChunkContractError) as exc_info:
        await make_processor(store, settings, recording_sleep).process_chunk(chunk)

    assert exc_info.value.limit == 25
    assert exc_info.value.actual == 26
    assert store.get_calls == 0


def test_batch_size_cannot_be_configured_above_25() -> None:
    assert Settings(max_batch_size=10).max_batch_size == 10
    with pytest.raises(ValidationError):
        Settings(max_batch_size=26)


@pytest.mark.asyncio
async def test_same_entity_updates_are_not_lost(recording_sleep) -> None:
    settings = Settings(conflict_max_attempts=10)
    store = InMemoryStatisticsStore({"U00001": {"counterA": 0}})
    chunk = make_chunk([make_record(i, "U00001", 1, 0) for i in range(5)])

    result = await make_processor(store, settings, recording_sleep).process_chunk(chunk)

    assert result.success_count == 5
    assert store.data["U00001"].counters["counterA"] == 5
    assert store.data["U00001"].version == 5


@pytest.mark.asyncio
async def test_naive_write_path(recording_sleep) -> None:
    settings = Settings(optimistic_updates=False)
    store = InMemoryStatisticsStore({"U00001": {"counterA": 1, "counterB": 1}})

    result = await make_processor(store, settings, recording_sleep).process_chunk(
        make_chunk([make_record(0, "U00001", 2, 3)])
    )

    assert result.success_count == 1
    assert store.data["U00001"].counters == {"counterA": 3, "counterB": 4}


@pytest.mark.asyncio
async def test_transient_store_failure_is_retried(settings, recording_sleep) -> None:
    store = InMemoryStatisticsStore({"U00001": {}})
    store.get_failures = [StoreTimeoutError("slow")]

    result = await make_processor(store, settings, recording_sleep).process_chunk(
        make_chunk([make_record(0, "U00001", 1, 0)])
    )

    assert result.success_count == 1
    assert len(recording_sleep.delays) == 1
    assert store.get_calls == 2


@pytest.mark.asyncio
async def test_missing_entity_is_a_business_error(settings, recording_sleep) -> None:
    store = InMemoryStatisticsStore()

    result = await make_processor(store, settings, recording_sleep).process_chunk(
        make_chunk([make_record(0, "U00009", 1, 0)])
    )

    assert result.error_count == 1
    assert result.errors[0].error_type == "ENTITY_NOT_FOUND"
    assert result.errors[0].error_kind == ErrorKind.BUSINESS
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_oversized_number_is_a_validation_error(settings, recording_sleep) -> None:
    store = InMemoryStatisticsStore({"U00001": {"counterA": 1}})

    result = await make_processor(store, settings, recording_sleep).process_chunk(
        make_chunk([make_record(0, "U00001", "9" * 5000, 0)])
    )

    assert result.error_count == 1
    error = result.errors[0]
    assert error.error_kind == ErrorKind.BUSINESS
    assert error.error_type == "VALIDATION_ERROR"
    assert error.retryable is False
    assert store.get_calls == 0
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_circuit_opens_on_persistent_store_failure(recording_sleep) -> None:
    settings = Settings(max_workers=1, circuit_failure_threshold=2, retry_max_attempts=3)
    store = InMemoryStatisticsStore({"U00001": {}, "U00002": {}, "U00003": {}})
    store.get_failures = [StoreUnavailableError("down") for _ in range(10)]
    chunk = make_chunk([make_record(i, f"U0000{i + 1}", 1, 0) for i in range(3)])

    result = await make_processor(store, settings, recording_sleep).process_chunk(chunk)

    assert result.error_count == 3
    assert store.get_calls == 2
    assert {e.error_type for e in result.errors} == {"CIRCUIT_OPEN"}
    assert all(e.error_kind == ErrorKind.INFRASTRUCTURE for e in result.errors)


@pytest.mark.asyncio
async def test_audit_failures_do_not_affect_results(settings, recording_sleep) -> None:
    store = InMemoryStatisticsStore({"U00001": {}})
    audit_sink = RecordingAuditSink(fail=True)

    result = await make_processor(store, settings, recording_sleep, audit_sink).process_chunk(
        make_chunk([make_record(0, "U00001", 1, 0), make_record(1, "BAD", 1, 0)])
    )

    assert (result.success_count, result.error_count) == (1, 1)
    assert result.errors[0].status == ItemStatus.ERROR


@pytest.mark.asyncio
async def test_empty_chunk(settings, recording_sleep) -> None:
    result = await make_processor(InMemoryStatisticsStore(), settings, recording_sleep).process_chunk(
        make_chunk([])
    )

    assert result.processed_count == 0
    assert result.error_rate == 0.0
