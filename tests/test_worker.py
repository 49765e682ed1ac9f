"""Tests for the queued chunk worker."""

import pytest

from conftest import InMemoryStatisticsStore, make_chunk, make_record
from statsloader.engine.chunk import ChunkProcessor
from statsloader.models.result import ChunkResult
from statsloader.worker import ChunkWorker


class FakeQueue:
    def __init__(self):
        self.dead_letters: list[str] = []

    async def move_to_dead_letter(self, payload: str) -> None:
        self.dead_letters.append(payload)


class FakeResults:
    def __init__(self):
        self.saved: list[ChunkResult] = []

    async def save_chunk_result(self, result: ChunkResult) -> None:
        self.saved.append(result)


@pytest.fixture
def worker_parts(settings, recording_sleep):
    store = InMemoryStatisticsStore({"U00001": {}})
    processor = ChunkProcessor(store=store, settings=settings, sleep=recording_sleep)
    queue = FakeQueue()
    results = FakeResults()
    return ChunkWorker(queue, processor, results), queue, results


@pytest.mark.asyncio
async def test_worker_stores_chunk_result(worker_parts) -> None:
    worker, queue, results = worker_parts

    await worker.process(make_chunk([make_record(0, "U00001", 1, 0), make_record(1, "BAD", 1, 0)]))

    assert len(results.saved) == 1
    assert (results.saved[0].success_count, results.saved[0].error_count) == (1, 1)
    assert queue.dead_letters == []


@pytest.mark.asyncio
async def test_worker_dead_letters_oversized_chunk(worker_parts) -> None:
    worker, queue, results = worker_parts
    chunk = make_chunk([make_record(i, "U00001", 1, 0) for i in range(26)], chunk_id="chunk-big")

    await worker.process(chunk)

    assert results.saved == []
    assert len(queue.dead_letters) == 1
    assert "chunk-big" in queue.dead_letters[0]
