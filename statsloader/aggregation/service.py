"""Execution summary built from stored chunk results."""

from statsloader.aggregation.aggregator import ResultAggregator
from statsloader.core.logging import get_logger
from statsloader.models.audit import AuditEntry, AuditEventType
from statsloader.models.result import AggregatedResult
from statsloader.storage.audit_store import AuditSink
from statsloader.storage.result_store import ResultStore

logger = get_logger(__name__)


class ExecutionSummaryService:
    """Aggregate and persist the summary of one execution."""

    def __init__(
        self,
        result_store: ResultStore,
        aggregator: ResultAggregator | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._results = result_store
        self._aggregator = aggregator or ResultAggregator()
        self._audit_sink = audit_sink

    async def summarize(
        self,
        execution_id: str,
        wall_clock_seconds: float | None = None,
    ) -> AggregatedResult | None:
        """Aggregate the stored chunk results of an execution.

        Args:
            execution_id: Execution identifier
            wall_clock_seconds: Execution duration if known

        Returns:
            Summary, or None if no chunk result is stored
        """
        chunk_results = await self._results.list_chunk_results(execution_id)
        if not chunk_results:
            return None

        summary = self._aggregator.aggregate(chunk_results, execution_id, wall_clock_seconds)
        await self._results.save_summary(summary)

        if self._audit_sink is not None:
            try:
                await self._audit_sink.append(
                    AuditEntry(
                        execution_id=execution_id,
                        event_type=AuditEventType.AGGREGATION_COMPLETED,
                        component="result-aggregator",
                        message=f"Aggregated {summary.chunk_count} chunk results",
                        details={
                            "total_processed": summary.total_processed,
                            "error_rate": summary.error_rate,
                            "quality_score": summary.quality.quality_score,
                            "recommendation_count": len(summary.recommendations),
                        },
                    )
                )
            except Exception as e:
                logger.warning("Failed to record aggregation audit entry", execution_id=execution_id, error=str(e))
        return summary
