"""Pytest configuration and fixtures."""

import asyncio

import pytest

from statsloader.core.config import Settings
from statsloader.core.errors import VersionConflictError
from statsloader.models.audit import AuditEntry, EscalationAlert
from statsloader.models.record import Chunk, Record
from statsloader.models.statistics import EntityStatistics


class InMemoryStatisticsStore:
    """Statistics store that records concurrency and can inject failures."""

    def __init__(self, entities: dict[str, dict[str, int]] | None = None, delay: float = 0.0):
        self.data: dict[str, EntityStatistics] = {
            entity_id: EntityStatistics(entity_id=entity_id, counters=counters)
            for entity_id, counters in (entities or {}).items()
        }
        self.delay = delay
        self.in_flight = 0
        self.peak_in_flight = 0
        self.get_failures: list[Exception] = []
        self.put_failures: list[Exception] = []
        self.get_calls = 0
        self.put_calls = 0

    async def _enter(self) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        await asyncio.sleep(self.delay)

    async def get(self, entity_id: str) -> EntityStatistics | None:
        self.get_calls += 1
        await self._enter()
        try:
            if self.get_failures:
                raise self.get_failures.pop(0)
            stats = self.data.get(entity_id)
            return stats.model_copy(deep=True) if stats else None
        finally:
            self.in_flight -= 1

    async def put(self, stats: EntityStatistics) -> None:
        self.put_calls += 1
        await self._enter()
        try:
            if self.put_failures:
                raise self.put_failures.pop(0)
            self.data[stats.entity_id] = stats.model_copy(deep=True)
        finally:
            self.in_flight -= 1

    async def put_if_version(self, stats: EntityStatistics, expected_version: int) -> None:
        self.put_calls += 1
        await self._enter()
        try:
            if self.put_failures:
                raise self.put_failures.pop(0)
            current = self.data.get(stats.entity_id)
            if current is not None and current.version != expected_version:
                raise VersionConflictError(stats.entity_id, expected_version)
            self.data[stats.entity_id] = stats.model_copy(deep=True)
        finally:
            self.in_flight -= 1


class RecordingAuditSink:
    """Audit sink keeping entries in memory."""

    def __init__(self, fail: bool = False):
        self.entries: list[AuditEntry] = []
        self.fail = fail

    async def append(self, entry: AuditEntry) -> None:
        if self.fail:
            raise ConnectionError("audit sink down")
        self.entries.append(entry)


class RecordingEscalationSink:
    """Escalation sink keeping alerts in memory."""

    def __init__(self, fail: bool = False):
        self.alerts: list[EscalationAlert] = []
        self.fail = fail

    async def escalate(self, alert: EscalationAlert) -> None:
        if self.fail:
            raise ConnectionError("alerting down")
        self.alerts.append(alert)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_record(index: int, entity_id: str, counter_a: str | int, counter_b: str | int) -> Record:
    return Record(
        raw_fields={"entityId": entity_id, "counterA": str(counter_a), "counterB": str(counter_b)},
        index=index,
    )


def make_chunk(records: list[Record], chunk_id: str = "chunk-0", batch_index: int = 0) -> Chunk:
    return Chunk(chunk_id=chunk_id, batch_index=batch_index, execution_id="exec-1", items=records)


@pytest.fixture
def settings() -> Settings:
    """Settings with fast retries."""
    return Settings(
        retry_initial_delay=0.01,
        retry_max_delay=0.1,
        circuit_failure_threshold=5,
        circuit_reset_timeout=60.0,
    )


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def escalation_sink() -> RecordingEscalationSink:
    return RecordingEscalationSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sample_csv() -> str:
    """Small delimited file with one bad row."""
    return (
        "entityId,counterA,counterB\n"
        "U00001,3,1\n"
        "U00002,0,7\n"
        "BAD,1,1\n"
    )
