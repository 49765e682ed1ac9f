"""Redis client management."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from statsloader.core.config import get_settings
from statsloader.core.errors import ConfigurationError, StoreTimeoutError, StoreUnavailableError

# Global connection pool
_pool: redis.ConnectionPool | None = None


async def init_redis_pool() -> None:
    """Initialize Redis connection pool."""
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            max_connections=settings.redis_max_connections,
        )


async def close_redis_pool() -> None:
    """Close Redis connection pool."""
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


def get_redis() -> Redis:
    """Get Redis client from pool.

    Returns:
        Redis client instance

    Raises:
        ConfigurationError: If pool not initialized
    """
    if _pool is None:
        raise ConfigurationError("Redis pool not initialized. Call init_redis_pool() first.")
    return redis.Redis(connection_pool=_pool)


@asynccontextmanager
async def translate_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise redis transport errors as classified infrastructure errors.

    Usage:
        async with translate_errors("get"):
            await r.hgetall(key)
    """
    try:
        yield
    except RedisTimeoutError as e:
        raise StoreTimeoutError(f"Redis {operation} timed out: {e}") from e
    except RedisConnectionError as e:
        raise StoreUnavailableError(f"Redis {operation} connection failed: {e}") from e


# Key prefixes
class RedisKeys:
    """Redis key patterns."""

    # Statistics
    ENTITY_STATS = "stats:entity:{entity_id}"

    # Audit and escalation
    AUDIT_LOG = "stats:audit:{execution_id}"
    ESCALATION_QUEUE = "stats:escalations"

    # Results
    CHUNK_RESULTS = "stats:results:{execution_id}"
    EXECUTION_SUMMARY = "stats:summary:{execution_id}"

    # Work queue
    CHUNK_QUEUE = "stats:chunks:queue"
    CHUNK_DEAD_LETTER = "stats:chunks:dead_letter"

    @classmethod
    def entity_stats(cls, entity_id: str) -> str:
        return cls.ENTITY_STATS.format(entity_id=entity_id)

    @classmethod
    def audit_log(cls, execution_id: str) -> str:
        return cls.AUDIT_LOG.format(execution_id=execution_id)

    @classmethod
    def chunk_results(cls, execution_id: str) -> str:
        return cls.CHUNK_RESULTS.format(execution_id=execution_id)

    @classmethod
    def execution_summary(cls, execution_id: str) -> str:
        return cls.EXECUTION_SUMMARY.format(execution_id=execution_id)
