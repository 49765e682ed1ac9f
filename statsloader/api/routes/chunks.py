"""Chunk processing API routes."""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from statsloader.api.deps import ChunkProcessorDep, ChunkQueueDep, ResultStoreDep
from statsloader.core.errors import InfrastructureError
from statsloader.core.logging import get_logger
from statsloader.models.record import Chunk
from statsloader.models.result import ChunkResult
from statsloader.schemas.chunk import ChunkAccepted, ChunkRequest
from statsloader.schemas.common import APIResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/chunks", tags=["chunks"])


def _to_chunk(data: ChunkRequest) -> Chunk:
    try:
        return data.to_chunk()
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e


@router.post("", response_model=APIResponse[ChunkResult])
async def process_chunk(
    data: ChunkRequest,
    processor: ChunkProcessorDep,
    results: ResultStoreDep,
    queue: ChunkQueueDep,
):
    """Process a chunk inline, or queue it for the worker.

    Item failures are reported in the result; only an oversized chunk is
    rejected.
    """
    chunk = _to_chunk(data)

    if data.enqueue:
        await queue.enqueue(chunk)
        logger.info("Chunk queued", chunk_id=chunk.chunk_id, execution_id=chunk.execution_id)
        accepted = APIResponse(
            message="queued",
            data=ChunkAccepted(chunk_id=chunk.chunk_id, execution_id=chunk.execution_id),
        )
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=accepted.model_dump(mode="json"))

    result = await processor.process_chunk(chunk)
    try:
        await results.save_chunk_result(result)
    except InfrastructureError as e:
        logger.warning("Failed to store chunk result", chunk_id=chunk.chunk_id, error=str(e))
    return APIResponse(data=result)
