"""Execution summary API routes."""

from fastapi import APIRouter, HTTPException, Query

from statsloader.api.deps import ResultStoreDep, SummaryServiceDep
from statsloader.models.result import AggregatedResult
from statsloader.schemas.common import APIResponse

router = APIRouter(prefix="/executions", tags=["executions"])


@router.get("/{execution_id}/summary", response_model=APIResponse[AggregatedResult])
async def get_execution_summary(
    execution_id: str,
    results: ResultStoreDep,
    service: SummaryServiceDep,
    refresh: bool = Query(default=False, description="Re-aggregate stored chunk results"),
    wall_clock_seconds: float | None = Query(default=None, gt=0, description="Execution duration"),
) -> APIResponse[AggregatedResult]:
    """Get the aggregated summary of an execution."""
    summary = None if refresh else await results.get_summary(execution_id)
    if summary is None:
        summary = await service.summarize(execution_id, wall_clock_seconds)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No results for execution {execution_id}")
    return APIResponse(data=summary)
