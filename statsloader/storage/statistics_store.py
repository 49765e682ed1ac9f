"""Entity statistics storage."""

from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import WatchError

from statsloader.core.errors import VersionConflictError
from statsloader.models.statistics import EntityStatistics
from statsloader.storage.redis_client import RedisKeys, get_redis, translate_errors


class EntityStatisticsStore(Protocol):
    """Persistent per-entity statistics."""

    async def get(self, entity_id: str) -> EntityStatistics | None: ...

    async def put(self, stats: EntityStatistics) -> None: ...

    async def put_if_version(self, stats: EntityStatistics, expected_version: int) -> None: ...


class RedisStatisticsStore:
    """Entity statistics stored as one Redis hash per entity."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def get(self, entity_id: str) -> EntityStatistics | None:
        """Get statistics for an entity.

        Args:
            entity_id: Entity identifier

        Returns:
            Statistics if the entity exists, None otherwise
        """
        async with translate_errors("get"):
            data = await self.redis.hgetall(RedisKeys.entity_stats(entity_id))
        if not data:
            return None
        return EntityStatistics.from_store_mapping(data)

    async def put(self, stats: EntityStatistics) -> None:
        """Write statistics unconditionally (last write wins).

        Args:
            stats: Statistics to persist
        """
        async with translate_errors("put"):
            await self.redis.hset(
                RedisKeys.entity_stats(stats.entity_id),
                mapping=stats.to_store_mapping(),
            )

    async def put_if_version(self, stats: EntityStatistics, expected_version: int) -> None:
        """Write statistics only if the stored version is unchanged.

        Args:
            stats: Statistics to persist
            expected_version: Version read before computing ``stats``

        Raises:
            VersionConflictError: If another writer got there first
        """
        key = RedisKeys.entity_stats(stats.entity_id)
        async with translate_errors("put_if_version"):
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = await pipe.hget(key, "version")
                    if int(current or 0) != expected_version:
                        await pipe.unwatch()
                        raise VersionConflictError(stats.entity_id, expected_version)
                    pipe.multi()
                    pipe.hset(key, mapping=stats.to_store_mapping())
                    await pipe.execute()
                except WatchError as e:
                    raise VersionConflictError(stats.entity_id, expected_version) from e

    async def seed(self, entity_id: str, counters: dict[str, int] | None = None) -> EntityStatistics:
        """Create an entity with initial counters.

        Args:
            entity_id: Entity identifier
            counters: Initial counter values

        Returns:
            Created statistics
        """
        stats = EntityStatistics(entity_id=entity_id, counters=counters or {})
        await self.put(stats)
        return stats

    async def delete(self, entity_id: str) -> bool:
        """Delete an entity.

        Returns:
            True if deleted, False if not found
        """
        async with translate_errors("delete"):
            return await self.redis.delete(RedisKeys.entity_stats(entity_id)) > 0
