"""Tests for the HTTP API and its response formats."""

from fastapi.testclient import TestClient

import statsloader.api.app as app_module
from conftest import InMemoryStatisticsStore
from statsloader.api.app import create_app
from statsloader.api.deps import get_chunk_queue, get_result_store, get_summary_service, get_validator
from statsloader.core.config import Settings
from statsloader.core.errors import StoreUnavailableError
from statsloader.engine.chunk import ChunkProcessor, get_chunk_processor
from statsloader.models.record import Chunk
from statsloader.models.result import AggregatedResult, ChunkResult
from statsloader.validation.validator import RecordValidator


class FakeResultStore:
    """In-memory result store for API tests."""

    def __init__(self, fail: bool = False):
        self.saved: list[ChunkResult] = []
        self.summaries: dict[str, AggregatedResult] = {}
        self.fail = fail

    async def save_chunk_result(self, result: ChunkResult) -> None:
        if self.fail:
            raise StoreUnavailableError("Redis save_chunk_result connection failed")
        self.saved.append(result)

    async def get_summary(self, execution_id: str) -> AggregatedResult | None:
        return self.summaries.get(execution_id)


class FakeChunkQueue:
    def __init__(self):
        self.chunks: list[Chunk] = []

    async def enqueue(self, chunk: Chunk) -> None:
        self.chunks.append(chunk)


class FakeSummaryService:
    def __init__(self, summary: AggregatedResult | None = None):
        self.summary = summary
        self.calls: list[str] = []

    async def summarize(self, execution_id: str, wall_clock_seconds: float | None = None):
        self.calls.append(execution_id)
        return self.summary


def _make_client(
    monkeypatch,
    results: FakeResultStore | None = None,
    queue: FakeChunkQueue | None = None,
    summary_service: FakeSummaryService | None = None,
) -> TestClient:
    async def _noop() -> None:
        return None

    monkeypatch.setattr(app_module, "init_redis_pool", _noop)
    monkeypatch.setattr(app_module, "close_redis_pool", _noop)

    settings = Settings()
    store = InMemoryStatisticsStore({"U00001": {"counterA": 1}})
    processor = ChunkProcessor(store=store, settings=settings)

    app = create_app()
    app.dependency_overrides[get_chunk_processor] = lambda: processor
    app.dependency_overrides[get_result_store] = lambda: results or FakeResultStore()
    app.dependency_overrides[get_chunk_queue] = lambda: queue or FakeChunkQueue()
    app.dependency_overrides[get_summary_service] = lambda: summary_service or FakeSummaryService()
    app.dependency_overrides[get_validator] = lambda: RecordValidator(settings)
    return TestClient(app)


def chunk_payload(count: int, **extra) -> dict:
    return {
        "chunk_id": "chunk-0",
        "execution_id": "exec-1",
        "items": [
            {"index": i, "raw_fields": {"entityId": "U00001", "counterA": "1", "counterB": "0"}}
            for i in range(count)
        ],
        **extra,
    }


def test_health(monkeypatch) -> None:
    response = _make_client(monkeypatch).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_process_chunk_inline(monkeypatch) -> None:
    results = FakeResultStore()
    client = _make_client(monkeypatch, results=results)

    response = client.post("/api/v1/chunks", json=chunk_payload(2))

    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 0
    assert payload["data"]["success_count"] == 2
    assert [r["item_index"] for r in payload["data"]["results"]] == [0, 1]
    assert len(results.saved) == 1


def test_result_store_failure_still_returns_result(monkeypatch) -> None:
    client = _make_client(monkeypatch, results=FakeResultStore(fail=True))

    response = client.post("/api/v1/chunks", json=chunk_payload(1))

    assert response.status_code == 200
    assert response.json()["data"]["success_count"] == 1


def test_enqueue_chunk(monkeypatch) -> None:
    queue = FakeChunkQueue()
    client = _make_client(monkeypatch, queue=queue)

    response = client.post("/api/v1/chunks", json=chunk_payload(1, enqueue=True))

    assert response.status_code == 202
    assert response.json()["data"] == {"chunk_id": "chunk-0", "execution_id": "exec-1", "queued": True}
    assert [c.chunk_id for c in queue.chunks] == ["chunk-0"]


def test_oversized_chunk_error_format(monkeypatch) -> None:
    client = _make_client(monkeypatch)

    response = client.post("/api/v1/chunks", json=chunk_payload(26))

    assert response.status_code == 413
    payload = response.json()
    assert payload["code"] == 413
    assert payload["data"]["error_code"] == "CHUNK_CONTRACT_VIOLATION"
    assert payload["data"]["error_kind"] == "BUSINESS"
    assert payload["data"]["details"] == {"limit": 25, "actual": 26}


def test_duplicate_item_indexes_are_rejected(monkeypatch) -> None:
    client = _make_client(monkeypatch)
    payload = chunk_payload(2)
    payload["items"][1]["index"] = 0

    response = client.post("/api/v1/chunks", json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == 422


def test_validation_error_response_format(monkeypatch) -> None:
    client = _make_client(monkeypatch)

    response = client.post("/api/v1/chunks", json={"chunk_id": ""})

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == 422
    assert payload["message"] == "Validation error"
    assert isinstance(payload["data"], list)
    assert payload["data"]


def test_validate_batch(monkeypatch) -> None:
    client = _make_client(monkeypatch)

    response = client.post(
        "/api/v1/validation",
        json={"content": "entityId,counterA,counterB\nU00001,1,2\nBAD,x,1\n"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_valid"] is False
    assert data["total_rows"] == 2
    assert data["valid_rows"] == 1
    assert {e["code"] for e in data["errors"]} == {"INVALID_ENTITY_ID", "INVALID_NUMBER"}
    assert data["column_statistics"]["counterB"]["max"] == 2


def test_summary_not_found(monkeypatch) -> None:
    service = FakeSummaryService()
    client = _make_client(monkeypatch, summary_service=service)

    response = client.get("/api/v1/executions/exec-9/summary")

    assert response.status_code == 404
    payload = response.json()
    assert payload["code"] == 404
    assert payload["message"] == "No results for execution exec-9"
    assert service.calls == ["exec-9"]


def test_stored_summary_is_returned_without_reaggregation(monkeypatch) -> None:
    results = FakeResultStore()
    results.summaries["exec-1"] = AggregatedResult(execution_id="exec-1", total_processed=10)
    service = FakeSummaryService()
    client = _make_client(monkeypatch, results=results, summary_service=service)

    response = client.get("/api/v1/executions/exec-1/summary")

    assert response.status_code == 200
    assert response.json()["data"]["total_processed"] == 10
    assert service.calls == []

    refreshed = client.get("/api/v1/executions/exec-1/summary", params={"refresh": True})
    assert refreshed.status_code == 404
    assert service.calls == ["exec-1"]
