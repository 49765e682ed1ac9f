"""Chunk result and execution summary storage."""

from redis.asyncio import Redis

from statsloader.models.result import AggregatedResult, ChunkResult
from statsloader.storage.redis_client import RedisKeys, get_redis, translate_errors


class ResultStore:
    """Chunk results keyed by execution, one hash field per chunk."""

    TTL_SECONDS = 7 * 24 * 3600  # 1 week

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def save_chunk_result(self, result: ChunkResult) -> None:
        """Store a chunk result; re-driven chunks overwrite their previous result.

        Args:
            result: Chunk result to store
        """
        key = RedisKeys.chunk_results(result.execution_id)
        async with translate_errors("save_chunk_result"):
            await self.redis.hset(key, result.chunk_id, result.model_dump_json())
            await self.redis.expire(key, self.TTL_SECONDS)

    async def list_chunk_results(self, execution_id: str) -> list[ChunkResult]:
        """All chunk results of an execution, ordered by batch index.

        Args:
            execution_id: Execution identifier

        Returns:
            Stored chunk results
        """
        async with translate_errors("list_chunk_results"):
            data = await self.redis.hvals(RedisKeys.chunk_results(execution_id))
        results = [ChunkResult.model_validate_json(item) for item in data]
        results.sort(key=lambda r: (r.batch_index, r.chunk_id))
        return results

    async def save_summary(self, summary: AggregatedResult) -> None:
        """Store an execution summary.

        Args:
            summary: Aggregated result
        """
        async with translate_errors("save_summary"):
            await self.redis.setex(
                RedisKeys.execution_summary(summary.execution_id),
                self.TTL_SECONDS,
                summary.model_dump_json(),
            )

    async def get_summary(self, execution_id: str) -> AggregatedResult | None:
        """Get a stored execution summary.

        Args:
            execution_id: Execution identifier

        Returns:
            Summary if found
        """
        async with translate_errors("get_summary"):
            data = await self.redis.get(RedisKeys.execution_summary(execution_id))
        if data:
            return AggregatedResult.model_validate_json(data)
        return None
