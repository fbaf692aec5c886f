"""
Audit analytics over stored execution records.

Produces aggregate metrics, chart-ready series, rule-based insights and
recommendations. Everything is recomputed on demand from the records returned
by the audit query layer.
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import ValidationError as PydanticValidationError
from scipy.stats import linregress

from models.analytics import (
    AgentPerformanceEntry,
    AnalyticsFilters,
    AnalyticsMetrics,
    AnalyticsResult,
    ChartData,
    ComparisonEntry,
    ErrorMetrics,
    ErrorPattern,
    ExecutionCounts,
    GroupBy,
    HistogramBucket,
    Impact,
    Insight,
    InsightCategory,
    InsightType,
    PerformanceStats,
    QualityDistribution,
    QualityMetrics,
    ReviewMetrics,
    Timeframe,
    TimeSeriesPoint,
    TokenMetrics,
    TrendPoint,
)
from models.entities import ExecutionRecord, ExecutionStatus, ReviewStatus, to_naive_utc, utcnow
from utils.errors import AggregationError

from .query import AuditQuery, AuditQueryFilters, AuditQueryOptions


logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 10000
LOW_QUALITY_THRESHOLD = 70

TIMEFRAME_DELTAS = {
    Timeframe.LAST_24H: timedelta(hours=24),
    Timeframe.LAST_7D: timedelta(days=7),
    Timeframe.LAST_30D: timedelta(days=30),
    Timeframe.LAST_90D: timedelta(days=90),
}

QUALITY_BUCKET_EDGES = [20, 40, 60, 80]
QUALITY_BUCKETS = [("0-20", 0, 20), ("20-40", 20, 40), ("40-60", 40, 60), ("60-80", 60, 80), ("80-100", 80, 100)]

TIME_BUCKET_EDGES = [5000, 10000, 30000, 60000]
TIME_BUCKETS = [("0-5s", 0, 5000), ("5-10s", 5000, 10000), ("10-30s", 10000, 30000), ("30-60s", 30000, 60000), ("60s+", 60000, None)]

ERROR_PATTERNS = [
    ("timeout", "Timeout Error"),
    ("rate limit", "Rate Limit Error"),
    ("network", "Network Error"),
    ("token", "Token Limit Error"),
    ("authentication", "Authentication Error"),
]

RawRecord = Union[ExecutionRecord, Mapping[str, Any]]


def resolve_date_range(filters: AnalyticsFilters, now: Optional[datetime] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Explicit dates win; otherwise the timeframe counts back from now."""
    now = now or utcnow()
    start = to_naive_utc(filters.start_date)
    end = to_naive_utc(filters.end_date)

    if start is None and filters.timeframe != Timeframe.ALL:
        start = now - TIMEFRAME_DELTAS[filters.timeframe]
        end = end or now
    return start, end


def percentile_of_sorted(values: List[float], p: float) -> float:
    """Element at index floor(n * p) of an ascending list."""
    if not values:
        return 0.0
    return values[min(int(math.floor(len(values) * p)), len(values) - 1)]


def bucket_start(timestamp: datetime, group_by: GroupBy) -> datetime:
    if group_by == GroupBy.HOUR:
        return timestamp.replace(minute=0, second=0, microsecond=0)
    day = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    if group_by == GroupBy.DAY:
        return day
    if group_by == GroupBy.WEEK:
        # Weeks start on Sunday
        return day - timedelta(days=(day.weekday() + 1) % 7)
    return day.replace(day=1)


def bucket_label(start: datetime, group_by: GroupBy) -> str:
    if group_by == GroupBy.HOUR:
        return start.strftime("%Y-%m-%d %H:00")
    if group_by == GroupBy.WEEK:
        return start.strftime("Week of %Y-%m-%d")
    if group_by == GroupBy.MONTH:
        return start.strftime("%Y-%m")
    return start.strftime("%Y-%m-%d")


def classify_error(message: str) -> str:
    lowered = message.lower()
    for needle, label in ERROR_PATTERNS:
        if needle in lowered:
            return label
    return "Other Error"


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _department_key(record: ExecutionRecord) -> str:
    return record.department.name if record.department else "unassigned"


def _average_by(records: List[ExecutionRecord], key_fn, value_fn) -> Dict[str, float]:
    groups: Dict[str, List[float]] = defaultdict(list)
    for record in records:
        value = value_fn(record)
        if value is not None:
            groups[key_fn(record)].append(value)
    return {key: _mean(values) for key, values in groups.items()}


class AuditAnalyticsEngine:
    """
    Aggregates execution records into metrics, charts and insights.

    Records are pulled through an AuditQuery (capped at ``max_records``), or
    passed directly to ``compute``. Malformed records are skipped and counted.
    """

    def __init__(self, source: Optional[AuditQuery] = None, max_records: int = DEFAULT_MAX_RECORDS):
        self.source = source
        self.max_records = max_records

    async def analyze(self, filters: Optional[AnalyticsFilters] = None) -> AnalyticsResult:
        if self.source is None:
            raise AggregationError("No audit source configured for analytics")

        filters = filters or AnalyticsFilters()
        start, end = resolve_date_range(filters)

        result = await self.source.query(
            AuditQueryFilters(
                project_id=filters.project_id,
                department_ids=filters.department_ids,
                agent_ids=filters.agent_ids,
                start_date=start,
                end_date=end,
            ),
            AuditQueryOptions(
                limit=self.max_records,
                sort_by="started_at",
                sort_order="desc",
                include_tool_calls=False,
                include_events=False,
            ),
        )

        logger.info(
            f"Analyzing {len(result.executions)} executions",
            extra={"timeframe": filters.timeframe.value, "matched": result.pagination.total}
        )
        # Newest records fill the window; analyze them oldest first
        analytics = self.compute(reversed(result.executions), filters.group_by)
        analytics.skipped_records += self.source.store.skipped_records
        return analytics

    def compute(self, records: Iterable[RawRecord], group_by: GroupBy = GroupBy.DAY) -> AnalyticsResult:
        valid: List[ExecutionRecord] = []
        skipped = 0
        for raw in records:
            try:
                valid.append(self._coerce(raw))
            except AggregationError as e:
                skipped += 1
                logger.warning(
                    f"Skipping execution record: {e.message}",
                    extra={"record_id": e.record_id, "error_code": e.code}
                )

        metrics = self.calculate_metrics(valid)
        insights = self.generate_insights(metrics)

        return AnalyticsResult(
            metrics=metrics,
            charts=self.generate_charts(valid, group_by),
            insights=insights,
            recommendations=self.generate_recommendations(metrics, insights),
            record_count=len(valid),
            skipped_records=skipped,
        )

    def _coerce(self, raw: RawRecord) -> ExecutionRecord:
        record_id = raw.get("id") if isinstance(raw, Mapping) else getattr(raw, "id", None)

        if isinstance(raw, ExecutionRecord):
            record = raw
        else:
            try:
                record = ExecutionRecord.model_validate(raw)
            except (PydanticValidationError, TypeError) as e:
                raise AggregationError(f"Invalid execution record: {e}", record_id=record_id)

        score = record.quality_score
        if score is not None and (math.isnan(score) or score < 0 or score > 100):
            raise AggregationError(f"Quality score {score} out of range", record_id=record.id)

        elapsed = record.elapsed_ms
        if elapsed is not None and (math.isnan(elapsed) or elapsed < 0):
            raise AggregationError(f"Negative execution time {elapsed}", record_id=record.id)

        return record

    # Metrics

    def calculate_metrics(self, records: List[ExecutionRecord]) -> AnalyticsMetrics:
        return AnalyticsMetrics(
            executions=self._execution_counts(records),
            quality=self._quality_metrics(records),
            performance=self._performance_stats(records),
            tokens=self._token_metrics(records),
            errors=self._error_metrics(records),
            reviews=self._review_metrics(records),
        )

    def _execution_counts(self, records: List[ExecutionRecord]) -> ExecutionCounts:
        by_status = {status.value: 0 for status in ExecutionStatus}
        by_status.update(Counter(r.status.value for r in records))
        total = len(records)
        return ExecutionCounts(
            total=total,
            by_status=by_status,
            by_department=dict(Counter(_department_key(r) for r in records)),
            by_agent=dict(Counter(r.agent.name for r in records)),
            success_rate=by_status[ExecutionStatus.COMPLETED.value] / total if total else 0.0,
        )

    def _quality_metrics(self, records: List[ExecutionRecord]) -> QualityMetrics:
        scored = [r for r in records if r.quality_score is not None]
        scores = sorted(r.quality_score for r in scored)

        distribution = QualityDistribution()
        for score in scores:
            if score >= 90:
                distribution.excellent += 1
            elif score >= 80:
                distribution.good += 1
            elif score >= 70:
                distribution.fair += 1
            elif score >= 60:
                distribution.poor += 1
            else:
                distribution.failing += 1

        daily: Dict[str, List[float]] = defaultdict(list)
        for record in scored:
            daily[record.started_at.strftime("%Y-%m-%d")].append(record.quality_score)
        trends = [TrendPoint(date=day, value=_mean(values), count=len(values)) for day, values in sorted(daily.items())]
        direction, slope = self._trend_direction([t.value for t in trends])

        return QualityMetrics(
            average=_mean(scores),
            median=scores[len(scores) // 2] if scores else 0.0,
            scored_executions=len(scores),
            distribution=distribution,
            by_department=_average_by(scored, _department_key, lambda r: r.quality_score),
            by_agent=_average_by(scored, lambda r: r.agent.name, lambda r: r.quality_score),
            trends=trends,
            trend_direction=direction,
            trend_slope=slope,
        )

    def _trend_direction(self, values: List[float]) -> Tuple[str, float]:
        if len(values) < 3:
            return "insufficient_data", 0.0
        if len(set(values)) == 1:
            return "stable", 0.0
        slope = float(linregress(list(range(len(values))), values).slope)
        if slope > 1:
            return "improving", slope
        if slope < -1:
            return "declining", slope
        return "stable", slope

    def _performance_stats(self, records: List[ExecutionRecord]) -> PerformanceStats:
        timed = [r for r in records if r.elapsed_ms is not None]
        times = sorted(r.elapsed_ms for r in timed)
        return PerformanceStats(
            average_ms=_mean(times),
            median_ms=percentile_of_sorted(times, 0.5),
            p95_ms=percentile_of_sorted(times, 0.95),
            p99_ms=percentile_of_sorted(times, 0.99),
            by_department=_average_by(timed, _department_key, lambda r: r.elapsed_ms),
            by_agent=_average_by(timed, lambda r: r.agent.name, lambda r: r.elapsed_ms),
        )

    def _token_metrics(self, records: List[ExecutionRecord]) -> TokenMetrics:
        by_department: Dict[str, int] = defaultdict(int)
        by_agent: Dict[str, int] = defaultdict(int)
        total_tokens = 0
        total_cost = 0.0

        for record in records:
            if record.token_usage is None:
                continue
            tokens = record.token_usage.total_tokens
            total_tokens += tokens
            total_cost += record.token_usage.estimated_cost
            by_department[_department_key(record)] += tokens
            by_agent[record.agent.name] += tokens

        return TokenMetrics(
            total_tokens=total_tokens,
            average_per_execution=total_tokens / (len(records) or 1),
            by_department=dict(by_department),
            by_agent=dict(by_agent),
            total_cost=total_cost,
        )

    def _error_metrics(self, records: List[ExecutionRecord]) -> ErrorMetrics:
        errored = [r for r in records if r.has_error]
        patterns: Dict[str, ErrorPattern] = {}

        for record in errored:
            label = classify_error(record.error.message)
            pattern = patterns.setdefault(label, ErrorPattern(pattern=label))
            pattern.count += 1
            if record.agent.name not in pattern.affected_agents:
                pattern.affected_agents.append(record.agent.name)
            occurred = record.completed_at or record.started_at
            if pattern.last_occurrence is None or occurred > pattern.last_occurrence:
                pattern.last_occurrence = occurred

        for pattern in patterns.values():
            pattern.percentage = pattern.count / len(errored) * 100

        return ErrorMetrics(
            total=len(errored),
            rate=len(errored) / (len(records) or 1),
            by_code=dict(Counter(r.error.code or "unknown" for r in errored)),
            by_agent=dict(Counter(r.agent.name for r in errored)),
            patterns=sorted(patterns.values(), key=lambda p: p.count, reverse=True),
        )

    def _review_metrics(self, records: List[ExecutionRecord]) -> ReviewMetrics:
        by_status = {status.value: 0 for status in ReviewStatus}
        by_status.update(Counter(r.review_status.value for r in records))

        decided = (
            by_status[ReviewStatus.APPROVED.value]
            + by_status[ReviewStatus.REJECTED.value]
            + by_status[ReviewStatus.REVISION_NEEDED.value]
        )
        review_times = [
            (r.reviewed_at - r.completed_at).total_seconds() * 1000
            for r in records
            if r.reviewed_at and r.completed_at
        ]

        return ReviewMetrics(
            by_status=by_status,
            approval_rate=by_status[ReviewStatus.APPROVED.value] / decided if decided else 0.0,
            average_review_time_ms=_mean(review_times),
        )

    # Charts

    def generate_charts(self, records: List[ExecutionRecord], group_by: GroupBy = GroupBy.DAY) -> ChartData:
        executions, tokens, error_rate = self._time_series(records, group_by)
        return ChartData(
            executions_over_time=executions,
            tokens_over_time=tokens,
            error_rate_over_time=error_rate,
            quality_distribution=self._histogram(
                [r.quality_score for r in records if r.quality_score is not None],
                QUALITY_BUCKET_EDGES, QUALITY_BUCKETS,
            ),
            execution_time_distribution=self._histogram(
                [r.elapsed_ms for r in records if r.elapsed_ms is not None],
                TIME_BUCKET_EDGES, TIME_BUCKETS,
            ),
            department_comparison=self._department_comparison(records),
            agent_performance=self._agent_performance(records),
        )

    def _time_series(self, records: List[ExecutionRecord], group_by: GroupBy):
        if not records:
            return [], [], []

        starts: Dict[str, datetime] = {}
        rows = []
        for record in records:
            start = bucket_start(record.started_at, group_by)
            key = start.isoformat()
            starts[key] = start
            rows.append({
                "bucket": key,
                "tokens": record.token_usage.total_tokens if record.token_usage else 0,
                "error": 1 if record.has_error else 0,
            })

        grouped = (
            pd.DataFrame(rows)
            .groupby("bucket")
            .agg(executions=("tokens", "size"), tokens=("tokens", "sum"), errors=("error", "sum"))
            .sort_index()
        )

        executions, tokens, error_rate = [], [], []
        for key, row in grouped.iterrows():
            start = starts[key]
            label = bucket_label(start, group_by)
            count = int(row["executions"])
            executions.append(TimeSeriesPoint(timestamp=start, label=label, value=count))
            tokens.append(TimeSeriesPoint(timestamp=start, label=label, value=int(row["tokens"])))
            error_rate.append(TimeSeriesPoint(timestamp=start, label=label, value=int(row["errors"]) / count * 100))

        return executions, tokens, error_rate

    def _histogram(self, values: List[float], edges: List[float], buckets) -> List[HistogramBucket]:
        counts = [0] * len(buckets)
        if values:
            # Half-open buckets; values on an edge fall into the upper bucket
            indices = np.digitize(np.asarray(values, dtype=float), edges, right=False)
            for index in indices:
                counts[int(index)] += 1
        return [
            HistogramBucket(label=label, min=low, max=high, count=count)
            for (label, low, high), count in zip(buckets, counts)
        ]

    def _department_comparison(self, records: List[ExecutionRecord]) -> List[ComparisonEntry]:
        scored = [r for r in records if r.quality_score is not None]
        averages = _average_by(scored, _department_key, lambda r: r.quality_score)
        counts = Counter(_department_key(r) for r in records)
        entries = [ComparisonEntry(label=name, value=value, count=counts[name]) for name, value in averages.items()]
        return sorted(entries, key=lambda e: e.value, reverse=True)

    def _agent_performance(self, records: List[ExecutionRecord]) -> List[AgentPerformanceEntry]:
        groups: Dict[str, List[ExecutionRecord]] = defaultdict(list)
        for record in records:
            groups[record.agent.name].append(record)

        entries = []
        for name, agent_records in groups.items():
            scores = [r.quality_score for r in agent_records if r.quality_score is not None]
            times = [r.elapsed_ms for r in agent_records if r.elapsed_ms is not None]
            completed = sum(1 for r in agent_records if r.status == ExecutionStatus.COMPLETED)
            entries.append(AgentPerformanceEntry(
                agent_name=name,
                executions=len(agent_records),
                average_quality=_mean(scores),
                average_time_ms=_mean(times),
                success_rate=completed / len(agent_records),
            ))

        return sorted(entries, key=lambda e: (e.average_quality, e.executions), reverse=True)

    # Insights

    def generate_insights(self, metrics: AnalyticsMetrics) -> List[Insight]:
        insights: List[Insight] = []
        if metrics.executions.total == 0:
            return insights

        success_rate = metrics.executions.success_rate
        if success_rate < 0.8:
            insights.append(Insight(
                type=InsightType.WARNING,
                category=InsightCategory.RELIABILITY,
                title="Low Success Rate Detected",
                description=f"Only {success_rate * 100:.1f}% of executions completed successfully.",
                impact=Impact.HIGH,
                recommendation="Investigate failed executions and implement error handling improvements.",
            ))
        elif success_rate >= 0.95:
            insights.append(Insight(
                type=InsightType.SUCCESS,
                category=InsightCategory.RELIABILITY,
                title="Excellent Reliability",
                description=f"Success rate is {success_rate * 100:.1f}%.",
                impact=Impact.LOW,
            ))

        quality = metrics.quality
        if quality.scored_executions:
            if quality.average < LOW_QUALITY_THRESHOLD:
                insights.append(Insight(
                    type=InsightType.ERROR,
                    category=InsightCategory.QUALITY,
                    title="Quality Below Threshold",
                    description=f"Average quality score is {quality.average:.1f}, below the {LOW_QUALITY_THRESHOLD} threshold.",
                    impact=Impact.HIGH,
                    recommendation="Review agent instructions and consider retraining or prompt optimization.",
                ))
            elif quality.average >= 85:
                insights.append(Insight(
                    type=InsightType.SUCCESS,
                    category=InsightCategory.QUALITY,
                    title="High Quality Output",
                    description=f"Average quality score is {quality.average:.1f}.",
                    impact=Impact.LOW,
                ))

        if metrics.performance.average_ms > 30000:
            insights.append(Insight(
                type=InsightType.WARNING,
                category=InsightCategory.PERFORMANCE,
                title="Slow Execution Times",
                description=f"Average execution time is {metrics.performance.average_ms / 1000:.1f}s.",
                impact=Impact.MEDIUM,
                recommendation="Consider optimizing prompts, using parallel execution, or caching common results.",
            ))

        if metrics.tokens.total_cost > 100:
            insights.append(Insight(
                type=InsightType.INFO,
                category=InsightCategory.COST,
                title="High Token Usage",
                description=f"Total estimated cost is ${metrics.tokens.total_cost:.2f}.",
                impact=Impact.MEDIUM,
                recommendation="Implement caching strategies and optimize prompts to reduce costs.",
            ))

        if metrics.errors.rate > 0.1:
            insights.append(Insight(
                type=InsightType.ERROR,
                category=InsightCategory.RELIABILITY,
                title="High Error Rate",
                description=f"{metrics.errors.rate * 100:.1f}% of executions resulted in errors.",
                impact=Impact.HIGH,
                recommendation="Analyze error patterns and implement robust error handling.",
            ))

        return insights

    def generate_recommendations(self, metrics: AnalyticsMetrics, insights: List[Insight]) -> List[str]:
        recommendations = [
            i.recommendation for i in insights
            if i.impact == Impact.HIGH and i.recommendation
        ]

        low_departments = [name for name, score in metrics.quality.by_department.items() if score < LOW_QUALITY_THRESHOLD]
        if low_departments:
            recommendations.append(f"Focus quality improvement on: {', '.join(low_departments)}")

        low_agents = [name for name, score in metrics.quality.by_agent.items() if score < LOW_QUALITY_THRESHOLD]
        if low_agents:
            recommendations.append(f"Review and retrain the following agents: {', '.join(low_agents)}")

        return recommendations
