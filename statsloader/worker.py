"""Worker process entry point for queued chunk processing."""

import asyncio
import signal

from statsloader.core.config import get_settings
from statsloader.core.errors import ChunkContractError
from statsloader.core.logging import get_logger, setup_logging
from statsloader.engine.chunk import ChunkProcessor, get_chunk_processor, reset_chunk_processor
from statsloader.models.record import Chunk
from statsloader.observability.metrics import CHUNK_QUEUE_LENGTH
from statsloader.storage.chunk_queue import ChunkQueue
from statsloader.storage.redis_client import close_redis_pool, get_redis, init_redis_pool
from statsloader.storage.result_store import ResultStore

logger = get_logger(__name__)


class ChunkWorker:
    """Consume chunks from the queue and store their results."""

    def __init__(self, queue: ChunkQueue, processor: ChunkProcessor, results: ResultStore):
        self._queue = queue
        self._processor = processor
        self._results = results
        self._should_stop = False

    async def start(self) -> None:
        """Process chunks until stopped."""
        logger.info("Chunk worker started")

        while not self._should_stop:
            try:
                CHUNK_QUEUE_LENGTH.set(await self._queue.queue_length())
                chunk = await self._queue.dequeue(timeout=5)
                if chunk:
                    await self.process(chunk)
            except Exception as e:
                logger.error("Worker error", error=str(e), exc_info=True)
                await asyncio.sleep(1)

        logger.info("Chunk worker stopped")

    def stop(self) -> None:
        """Signal worker to stop."""
        self._should_stop = True

    async def process(self, chunk: Chunk) -> None:
        """Process one chunk and store its result.

        Chunks that break the processing contract are parked in the dead
        letter list.

        Args:
            chunk: Chunk to process
        """
        try:
            result = await self._processor.process_chunk(chunk)
        except ChunkContractError as e:
            logger.warning(
                "Chunk rejected",
                chunk_id=chunk.chunk_id,
                execution_id=chunk.execution_id,
                limit=e.limit,
                actual=e.actual,
            )
            await self._queue.move_to_dead_letter(chunk.model_dump_json())
            return

        await self._results.save_chunk_result(result)


class WorkerManager:
    """Manager for coordinating worker processes."""

    def __init__(self):
        """Initialize worker manager."""
        self._settings = get_settings()
        self._worker: ChunkWorker | None = None

    async def start(self) -> None:
        """Start the chunk worker."""
        setup_logging()
        logger.info("Starting worker manager", max_workers=self._settings.max_workers)

        await init_redis_pool()
        redis = get_redis()
        self._worker = ChunkWorker(ChunkQueue(redis), get_chunk_processor(), ResultStore(redis))

        try:
            await self._worker.start()
        except asyncio.CancelledError:
            logger.info("Chunk worker cancelled")
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Signal workers to stop."""
        logger.info("Stopping workers")
        if self._worker:
            self._worker.stop()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        logger.info("Cleaning up resources")
        reset_chunk_processor()
        await close_redis_pool()
        logger.info("Cleanup complete")


async def main() -> None:
    """Main entry point for worker process."""
    manager = WorkerManager()

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(manager.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await manager.start()


if __name__ == "__main__":
    asyncio.run(main())
