"""Execution-level aggregation of chunk results."""

from collections import Counter
from typing import Sequence

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import Severity
from statsloader.core.logging import get_logger
from statsloader.handling.classifier import CRITICAL_PATTERNS
from statsloader.models.result import (
    AggregatedResult,
    ChunkResult,
    ErrorAnalysis,
    ItemResult,
    PerformanceMetrics,
    QualityMetrics,
    TopError,
)

logger = get_logger(__name__)

TOP_ERROR_LIMIT = 10
CRITICAL_ERROR_LIMIT = 10
CRITICAL_ERROR_RATE = 10.0
REVIEW_ERROR_RATE = 5.0
DOMINANT_ERROR_PERCENT = 50.0
LARGE_VOLUME_ITEMS = 10_000
HEALTHY_ERROR_RATE = 1.0
HEALTHY_THROUGHPUT = 50.0

FALLBACK_RECOMMENDATION = "STANDARD: Processing completed. Continue routine monitoring."
FAILED_RECOMMENDATION = "Recommendation generation failed. Analyze the results manually."


class ResultAggregator:
    """Combine chunk results into an execution summary."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def aggregate(
        self,
        chunk_results: Sequence[ChunkResult],
        execution_id: str,
        wall_clock_seconds: float | None = None,
    ) -> AggregatedResult:
        """Aggregate chunk results.

        Args:
            chunk_results: Results of every processed chunk
            execution_id: Execution identifier
            wall_clock_seconds: Execution duration; derived from chunk
                timestamps if omitted

        Returns:
            Aggregated result
        """
        total = sum(r.processed_count for r in chunk_results)
        success = sum(r.success_count for r in chunk_results)
        failed = sum(r.error_count for r in chunk_results)
        success_rate = round(success / total * 100, 2) if total else 0.0
        error_rate = round(failed / total * 100, 2) if total else 0.0

        performance = self._performance(chunk_results, total, wall_clock_seconds)
        error_analysis = self.analyze_errors([e for r in chunk_results for e in r.errors])
        quality = self._quality(success_rate, error_rate, performance, error_analysis)

        result = AggregatedResult(
            execution_id=execution_id,
            chunk_count=len(chunk_results),
            total_processed=total,
            success_count=success,
            error_count=failed,
            success_rate=success_rate,
            error_rate=error_rate,
            performance=performance,
            error_analysis=error_analysis,
            quality=quality,
        )
        result.recommendations = self.generate_recommendations(result)

        logger.info(
            "Results aggregated",
            execution_id=execution_id,
            chunk_count=result.chunk_count,
            total_processed=total,
            error_rate=error_rate,
            throughput=performance.throughput_records_per_second,
            quality_score=quality.quality_score,
        )
        return result

    def analyze_errors(self, errors: Sequence[ItemResult]) -> ErrorAnalysis:
        """Rank error types and split them by retryability."""
        by_type = Counter(error.error_type or "UNKNOWN_ERROR" for error in errors)
        total = len(errors)

        top_errors = [
            TopError(
                error_type=error_type,
                count=count,
                percentage=round(count / total * 100, 2),
            )
            for error_type, count in sorted(by_type.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_ERROR_LIMIT]
        ]

        # Unclassified errors count as retryable
        retryable = sum(1 for error in errors if error.retryable is not False)

        critical: list[str] = []
        for error in errors:
            message = error.error or ""
            if error.severity == Severity.CRITICAL or any(p in message.lower() for p in CRITICAL_PATTERNS):
                if message not in critical and len(critical) < CRITICAL_ERROR_LIMIT:
                    critical.append(message)

        return ErrorAnalysis(
            errors_by_type=dict(by_type),
            top_errors=top_errors,
            retryable_errors=retryable,
            non_retryable_errors=total - retryable,
            critical_errors=critical,
        )

    def generate_recommendations(self, result: AggregatedResult) -> list[str]:
        """Threshold-based recommendations. Never raises."""
        try:
            return self._recommendations(result)
        except Exception as e:
            logger.error("Recommendation generation failed", error=str(e), exc_info=True)
            return [FAILED_RECOMMENDATION]

    def _recommendations(self, result: AggregatedResult) -> list[str]:
        recommendations = []
        error_rate = result.error_rate
        analysis = result.error_analysis
        throughput = result.performance.throughput_records_per_second

        if error_rate > CRITICAL_ERROR_RATE:
            recommendations.append(
                f"CRITICAL: Error rate {error_rate}% exceeds {CRITICAL_ERROR_RATE:g}%. "
                "Check data quality and investigate the error causes."
            )
        elif error_rate > REVIEW_ERROR_RATE:
            recommendations.append(
                f"REVIEW: Error rate {error_rate}% exceeds {REVIEW_ERROR_RATE:g}%. "
                "Review the processing logic and input data."
            )

        if analysis.critical_errors:
            recommendations.append(
                f"URGENT: {len(analysis.critical_errors)} critical error(s) occurred. "
                "Immediate action is required."
            )

        if analysis.top_errors and analysis.top_errors[0].percentage > DOMINANT_ERROR_PERCENT:
            top = analysis.top_errors[0]
            recommendations.append(
                f"ANALYSIS: {top.error_type} accounts for {top.percentage}% of all errors. "
                "Address this error pattern first."
            )

        floor = self.settings.throughput_floor
        if result.performance.wall_clock_seconds > 0 and throughput < floor:
            recommendations.append(
                f"PERFORMANCE: Throughput {throughput} records/s is below {floor:g}. "
                "Tune concurrency or batch size."
            )

        if analysis.retryable_errors > analysis.non_retryable_errors * 2:
            recommendations.append(
                "OPERATIONS: Most errors are transient. Re-drive the failed chunks with retries enabled."
            )

        if result.total_processed > LARGE_VOLUME_ITEMS:
            recommendations.append(
                "SCALING: Large volume processed. Keep monitoring performance and add capacity if needed."
            )

        if error_rate < HEALTHY_ERROR_RATE and throughput > HEALTHY_THROUGHPUT:
            recommendations.append(
                "HEALTHY: Quality and performance are good. Keep the current settings."
            )

        return recommendations or [FALLBACK_RECOMMENDATION]

    @staticmethod
    def _performance(
        chunk_results: Sequence[ChunkResult],
        total: int,
        wall_clock_seconds: float | None,
    ) -> PerformanceMetrics:
        if not chunk_results:
            return PerformanceMetrics(wall_clock_seconds=wall_clock_seconds or 0.0)

        if wall_clock_seconds is None:
            started = min(r.started_at for r in chunk_results)
            completed = max(r.completed_at for r in chunk_results)
            wall_clock_seconds = max((completed - started).total_seconds(), 0.0)

        times = [r.processing_time_ms for r in chunk_results]
        return PerformanceMetrics(
            wall_clock_seconds=round(wall_clock_seconds, 3),
            throughput_records_per_second=round(total / wall_clock_seconds, 2) if wall_clock_seconds > 0 else 0.0,
            average_chunk_time_ms=round(sum(times) / len(times), 2),
            max_chunk_time_ms=max(times),
            min_chunk_time_ms=min(times),
        )

    @staticmethod
    def _quality(
        success_rate: float,
        error_rate: float,
        performance: PerformanceMetrics,
        error_analysis: ErrorAnalysis,
    ) -> QualityMetrics:
        score = 100
        if error_rate > 10:
            score -= 40
        elif error_rate > 5:
            score -= 20
        elif error_rate > 1:
            score -= 10

        if error_analysis.critical_errors:
            score -= 30

        throughput = performance.throughput_records_per_second
        if performance.wall_clock_seconds > 0:
            if throughput < 10:
                score -= 10
            elif throughput > 100:
                score += 5

        return QualityMetrics(
            quality_score=min(100, max(0, score)),
            data_integrity_score=success_rate,
            performance_score=min(100.0, throughput),
        )
