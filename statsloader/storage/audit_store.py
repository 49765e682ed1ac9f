"""Audit trail and escalation storage."""

from typing import Protocol

from redis.asyncio import Redis

from statsloader.core.config import get_settings
from statsloader.models.audit import AuditEntry, EscalationAlert
from statsloader.storage.redis_client import RedisKeys, get_redis, translate_errors


class AuditSink(Protocol):
    """Append-only audit trail."""

    async def append(self, entry: AuditEntry) -> None: ...


class EscalationSink(Protocol):
    """Operator-facing alert channel."""

    async def escalate(self, alert: EscalationAlert) -> None: ...


class RedisAuditSink:
    """Audit trail kept as a capped Redis list per execution."""

    def __init__(self, redis: Redis | None = None, max_entries: int | None = None):
        self._redis = redis
        self._max_entries = max_entries or get_settings().audit_max_entries

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def append(self, entry: AuditEntry) -> None:
        """Append an entry to the execution's audit trail.

        Args:
            entry: Entry to record
        """
        key = RedisKeys.audit_log(entry.execution_id)
        async with translate_errors("audit_append"):
            await self.redis.lpush(key, entry.model_dump_json())
            await self.redis.ltrim(key, 0, self._max_entries - 1)

    async def list_recent(self, execution_id: str, limit: int = 100) -> list[AuditEntry]:
        """Most recent entries first.

        Args:
            execution_id: Execution to read
            limit: Maximum entries returned

        Returns:
            Audit entries
        """
        async with translate_errors("audit_list"):
            items = await self.redis.lrange(RedisKeys.audit_log(execution_id), 0, limit - 1)
        return [AuditEntry.model_validate_json(item) for item in items]


class RedisEscalationQueue:
    """Escalation alerts queued for the alerting integration."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def escalate(self, alert: EscalationAlert) -> None:
        """Queue an alert.

        Args:
            alert: Alert to queue
        """
        async with translate_errors("escalate"):
            await self.redis.lpush(RedisKeys.ESCALATION_QUEUE, alert.model_dump_json())

    async def dequeue(self, timeout: int = 5) -> EscalationAlert | None:
        """Get the oldest queued alert.

        Args:
            timeout: Blocking timeout in seconds

        Returns:
            Next alert if available
        """
        result = await self.redis.brpop(RedisKeys.ESCALATION_QUEUE, timeout=timeout)
        if result:
            _, data = result
            return EscalationAlert.model_validate_json(data)
        return None

    async def queue_length(self) -> int:
        """Get current queue length."""
        return await self.redis.llen(RedisKeys.ESCALATION_QUEUE)
