"""API dependency injection."""

from typing import Annotated

from fastapi import Depends

from statsloader.aggregation.service import ExecutionSummaryService
from statsloader.engine.chunk import ChunkProcessor, get_chunk_processor
from statsloader.storage.audit_store import RedisAuditSink
from statsloader.storage.chunk_queue import ChunkQueue
from statsloader.storage.redis_client import get_redis
from statsloader.storage.result_store import ResultStore
from statsloader.validation.validator import RecordValidator


def get_result_store() -> ResultStore:
    """Get result store instance."""
    return ResultStore(get_redis())


def get_chunk_queue() -> ChunkQueue:
    """Get chunk queue instance."""
    return ChunkQueue(get_redis())


def get_summary_service() -> ExecutionSummaryService:
    """Get execution summary service instance."""
    redis = get_redis()
    return ExecutionSummaryService(ResultStore(redis), audit_sink=RedisAuditSink(redis))


def get_validator() -> RecordValidator:
    """Get record validator instance."""
    return RecordValidator()


# Type aliases for dependency injection
ChunkProcessorDep = Annotated[ChunkProcessor, Depends(get_chunk_processor)]
ResultStoreDep = Annotated[ResultStore, Depends(get_result_store)]
ChunkQueueDep = Annotated[ChunkQueue, Depends(get_chunk_queue)]
SummaryServiceDep = Annotated[ExecutionSummaryService, Depends(get_summary_service)]
ValidatorDep = Annotated[RecordValidator, Depends(get_validator)]
