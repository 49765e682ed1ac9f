"""Pending chunk work queue."""

from pydantic import ValidationError
from redis.asyncio import Redis

from statsloader.core.logging import get_logger
from statsloader.models.record import Chunk
from statsloader.storage.redis_client import RedisKeys, get_redis

logger = get_logger(__name__)


class ChunkQueue:
    """Chunks handed over by the partitioner, consumed by the worker."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def enqueue(self, chunk: Chunk) -> None:
        """Add a chunk to the queue.

        Args:
            chunk: Chunk to enqueue
        """
        await self.redis.lpush(RedisKeys.CHUNK_QUEUE, chunk.model_dump_json())

    async def dequeue(self, timeout: int = 5) -> Chunk | None:
        """Get next chunk from queue.

        Malformed payloads are parked in the dead letter list.

        Args:
            timeout: Blocking timeout in seconds

        Returns:
            Next chunk if available
        """
        result = await self.redis.brpop(RedisKeys.CHUNK_QUEUE, timeout=timeout)
        if not result:
            return None
        _, data = result
        try:
            return Chunk.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Malformed chunk payload", error_count=e.error_count())
            await self.move_to_dead_letter(data)
            return None

    async def move_to_dead_letter(self, payload: str) -> None:
        """Park a payload the worker could not process.

        Args:
            payload: Raw queue payload
        """
        await self.redis.lpush(RedisKeys.CHUNK_DEAD_LETTER, payload)

    async def queue_length(self) -> int:
        """Get current queue length."""
        return await self.redis.llen(RedisKeys.CHUNK_QUEUE)
