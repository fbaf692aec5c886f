"""
Tests for the audit analytics engine.

Covers metric aggregation, percentiles, histograms, time series, trend
direction, insight rules, recommendations and malformed-record handling.
"""

from datetime import datetime, timedelta

import pytest

from audit.analytics import (
    AuditAnalyticsEngine,
    bucket_start,
    classify_error,
    percentile_of_sorted,
    resolve_date_range,
)
from audit.query import AuditQuery
from audit.tracking import InMemoryExecutionStore, JSONLExecutionStore
from models.analytics import AnalyticsFilters, GroupBy, Impact, InsightType, Timeframe
from models.entities import (
    AgentRef,
    DepartmentRef,
    ErrorInfo,
    ExecutionRecord,
    ExecutionStatus,
    ReviewStatus,
    TokenUsage,
    utcnow,
)
from utils.errors import AggregationError


BASE_TIME = datetime(2026, 3, 2, 0, 0, 0)

STORY = DepartmentRef(id="dept-story", slug="story", name="Story")
AUDIO = DepartmentRef(id="dept-audio", slug="audio", name="Audio")

SCORES = [55, 62, 71, 80, 85, 90, 95]
ERRORS = ["Request timeout after 30s", "Rate limit exceeded", "socket closed"]


def _record(index: int, **kwargs) -> ExecutionRecord:
    even = index % 2 == 0
    failed = index >= len(SCORES)
    defaults = dict(
        id=f"exec-{index}",
        agent=AgentRef(id="plot" if even else "mixer", name="Plot Specialist" if even else "Mixer"),
        department=STORY if even else AUDIO,
        status=ExecutionStatus.FAILED if failed else ExecutionStatus.COMPLETED,
        quality_score=None if failed else SCORES[index],
        error=ErrorInfo(message=ERRORS[index - len(SCORES)], code="EXECUTION_ERROR") if failed else None,
        started_at=BASE_TIME + timedelta(hours=index * 6),
        execution_time_ms=(index + 1) * 100.0,
        token_usage=TokenUsage(input_tokens=100, output_tokens=50, estimated_cost=0.5),
    )
    defaults.update(kwargs)
    return ExecutionRecord(**defaults)


@pytest.fixture
def records():
    # 7 completed and scored, 3 failed, spread over three days
    return [_record(i) for i in range(10)]


@pytest.fixture
def engine():
    return AuditAnalyticsEngine()


class TestHelpers:

    def test_percentile_of_sorted(self):
        values = [float(v) for v in range(100, 1100, 100)]
        assert percentile_of_sorted(values, 0.5) == 600
        assert percentile_of_sorted(values, 0.95) == 1000
        assert percentile_of_sorted(values, 0.99) == 1000
        assert percentile_of_sorted([], 0.5) == 0.0

    def test_week_buckets_start_on_sunday(self):
        wednesday = datetime(2026, 3, 4, 15, 30)
        assert bucket_start(wednesday, GroupBy.WEEK) == datetime(2026, 3, 1)
        assert bucket_start(wednesday, GroupBy.MONTH) == datetime(2026, 3, 1)
        assert bucket_start(wednesday, GroupBy.HOUR) == datetime(2026, 3, 4, 15)

    @pytest.mark.parametrize("message,expected", [
        ("Request timeout after 30s", "Timeout Error"),
        ("Rate limit exceeded", "Rate Limit Error"),
        ("Network unreachable", "Network Error"),
        ("Max token count exceeded", "Token Limit Error"),
        ("Authentication failed", "Authentication Error"),
        ("socket closed", "Other Error"),
    ])
    def test_classify_error(self, message, expected):
        assert classify_error(message) == expected

    def test_resolve_date_range(self):
        now = datetime(2026, 3, 10)
        start, end = resolve_date_range(AnalyticsFilters(timeframe=Timeframe.LAST_7D), now=now)
        assert start == datetime(2026, 3, 3)
        assert end == now

        assert resolve_date_range(AnalyticsFilters(timeframe=Timeframe.ALL), now=now) == (None, None)


class TestMetrics:

    def test_execution_counts(self, engine, records):
        counts = engine.compute(records).metrics.executions

        assert counts.total == 10
        assert counts.by_status["completed"] == 7
        assert counts.by_status["failed"] == 3
        assert counts.by_status["timeout"] == 0
        assert counts.by_department == {"Story": 5, "Audio": 5}
        assert counts.success_rate == pytest.approx(0.7)

    def test_quality_metrics(self, engine, records):
        quality = engine.compute(records).metrics.quality

        assert quality.scored_executions == 7
        assert quality.average == pytest.approx(sum(SCORES) / 7)
        assert quality.median == 80
        assert quality.distribution.excellent == 2
        assert quality.distribution.good == 2
        assert quality.distribution.fair == 1
        assert quality.distribution.poor == 1
        assert quality.distribution.failing == 1
        assert quality.distribution.total == 7
        assert quality.by_department["Story"] == pytest.approx((55 + 71 + 85 + 95) / 4)

    def test_performance_percentiles(self, engine, records):
        performance = engine.compute(records).metrics.performance

        assert performance.average_ms == pytest.approx(550)
        assert performance.median_ms == 600
        assert performance.p95_ms == 1000
        assert performance.p99_ms == 1000

    def test_tokens(self, engine, records):
        tokens = engine.compute(records).metrics.tokens

        assert tokens.total_tokens == 1500
        assert tokens.average_per_execution == 150
        assert tokens.total_cost == pytest.approx(5.0)
        assert tokens.by_agent == {"Plot Specialist": 750, "Mixer": 750}

    def test_error_patterns(self, engine, records):
        errors = engine.compute(records).metrics.errors

        assert errors.total == 3
        assert errors.rate == pytest.approx(0.3)
        assert errors.by_code == {"EXECUTION_ERROR": 3}
        patterns = {p.pattern: p for p in errors.patterns}
        assert set(patterns) == {"Timeout Error", "Rate Limit Error", "Other Error"}
        assert patterns["Timeout Error"].percentage == pytest.approx(100 / 3)
        assert patterns["Timeout Error"].affected_agents == ["Mixer"]

    def test_review_approval_rate(self, engine):
        statuses = [
            ReviewStatus.APPROVED, ReviewStatus.APPROVED, ReviewStatus.REJECTED,
            ReviewStatus.REVISION_NEEDED, ReviewStatus.PENDING,
        ]
        records = [_record(i, review_status=s) for i, s in enumerate(statuses)]

        reviews = engine.compute(records).metrics.reviews

        assert reviews.approval_rate == 0.5
        assert reviews.by_status["pending"] == 1

    @pytest.mark.parametrize("scores,direction", [
        ([60, 70, 80], "improving"),
        ([80, 70, 60], "declining"),
        ([70, 70.5, 70], "stable"),
        ([70, 80], "insufficient_data"),
    ])
    def test_trend_direction(self, engine, scores, direction):
        records = [
            _record(i, quality_score=score, started_at=BASE_TIME + timedelta(days=i))
            for i, score in enumerate(scores)
        ]

        assert engine.compute(records).metrics.quality.trend_direction == direction


class TestCharts:

    def test_time_series_by_day(self, engine, records):
        charts = engine.compute(records, GroupBy.DAY).charts

        assert [p.label for p in charts.executions_over_time] == ["2026-03-02", "2026-03-03", "2026-03-04"]
        assert [p.value for p in charts.executions_over_time] == [4, 4, 2]
        assert [p.value for p in charts.tokens_over_time] == [600, 600, 300]
        assert [p.value for p in charts.error_rate_over_time] == [0, 25, 100]

    def test_histograms_cover_every_value(self, engine, records):
        charts = engine.compute(records).charts

        assert [b.count for b in charts.quality_distribution] == [0, 0, 1, 2, 4]
        assert sum(b.count for b in charts.quality_distribution) == 7
        assert [b.count for b in charts.execution_time_distribution] == [10, 0, 0, 0, 0]

    def test_bucket_edges_are_half_open(self, engine):
        records = [_record(i, quality_score=score) for i, score in enumerate([20, 80, 100])]

        buckets = engine.compute(records).charts.quality_distribution

        assert [b.count for b in buckets] == [0, 1, 0, 0, 2]

    def test_rankings(self, engine, records):
        charts = engine.compute(records).charts

        assert [e.label for e in charts.department_comparison] == ["Audio", "Story"]
        mixer = next(e for e in charts.agent_performance if e.agent_name == "Mixer")
        assert mixer.executions == 5
        assert mixer.success_rate == pytest.approx(0.6)


class TestInsights:

    def test_low_success_and_high_error_rate(self, engine, records):
        result = engine.compute(records)

        titles = {i.title: i for i in result.insights}
        assert titles["Low Success Rate Detected"].type == InsightType.WARNING
        assert titles["Low Success Rate Detected"].impact == Impact.HIGH
        assert titles["Low Success Rate Detected"].description == "Only 70.0% of executions completed successfully."
        assert titles["High Error Rate"].type == InsightType.ERROR
        assert "Quality Below Threshold" not in titles

        assert result.recommendations == [
            "Investigate failed executions and implement error handling improvements.",
            "Analyze error patterns and implement robust error handling.",
        ]

    def test_healthy_run(self, engine):
        records = [_record(i, quality_score=92, execution_time_ms=40000.0) for i in range(5)]

        titles = [i.title for i in engine.compute(records).insights]

        assert titles == ["Excellent Reliability", "High Quality Output", "Slow Execution Times"]

    def test_low_quality_recommendations(self, engine):
        records = [_record(i, quality_score=50) for i in range(4)]

        result = engine.compute(records)

        assert "Quality Below Threshold" in [i.title for i in result.insights]
        assert "Focus quality improvement on: Story, Audio" in result.recommendations
        assert "Review and retrain the following agents: Plot Specialist, Mixer" in result.recommendations

    def test_high_cost(self, engine):
        records = [_record(0, token_usage=TokenUsage(input_tokens=10, output_tokens=10, estimated_cost=150.0))]

        assert "High Token Usage" in [i.title for i in engine.compute(records).insights]

    def test_empty_input(self, engine):
        result = engine.compute([])

        assert result.metrics.executions.total == 0
        assert result.metrics.quality.average == 0.0
        assert result.insights == []
        assert result.recommendations == []
        assert result.charts.executions_over_time == []
        assert all(b.count == 0 for b in result.charts.quality_distribution)


class TestMalformedRecords:

    def test_malformed_records_are_skipped(self, engine, records, caplog):
        raw = [
            records[0].model_dump(),
            {"id": "no-agent", "status": "completed"},
            _record(1, id="too-good", quality_score=150),
            _record(2, id="negative", execution_time_ms=-5.0),
        ]

        result = engine.compute(raw)

        assert result.record_count == 1
        assert result.skipped_records == 3
        assert result.metrics.executions.total == 1
        assert "Skipping execution record" in caplog.text


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_requires_source(self, engine):
        with pytest.raises(AggregationError):
            await engine.analyze()

    @pytest.mark.asyncio
    async def test_analyze_through_query(self, records):
        store = InMemoryExecutionStore()
        for record in records:
            await store.create(record)
        engine = AuditAnalyticsEngine(AuditQuery(store))

        result = await engine.analyze(AnalyticsFilters(timeframe=Timeframe.ALL, department_ids=["audio"]))

        assert result.record_count == 5
        assert set(result.metrics.executions.by_department) == {"Audio"}

    @pytest.mark.asyncio
    async def test_timeframe_excludes_old_records(self):
        store = InMemoryExecutionStore()
        await store.create(_record(0, id="recent", started_at=utcnow() - timedelta(hours=1)))
        await store.create(_record(1, id="old", started_at=utcnow() - timedelta(days=3)))
        engine = AuditAnalyticsEngine(AuditQuery(store))

        result = await engine.analyze(AnalyticsFilters(timeframe=Timeframe.LAST_24H))

        assert result.record_count == 1

    @pytest.mark.asyncio
    async def test_record_cap_keeps_newest(self):
        store = InMemoryExecutionStore()
        for day in range(3):
            await store.create(_record(day, id=f"day-{day}", started_at=BASE_TIME + timedelta(days=day)))
        engine = AuditAnalyticsEngine(AuditQuery(store), max_records=2)

        result = await engine.analyze(AnalyticsFilters(timeframe=Timeframe.ALL))

        assert result.record_count == 2
        assert [p.label for p in result.charts.executions_over_time] == ["2026-03-03", "2026-03-04"]

    @pytest.mark.asyncio
    async def test_counts_unreadable_store_lines(self, tmp_path):
        path = tmp_path / "executions.jsonl"
        path.write_text("not json\n" + _record(0).model_dump_json() + "\n")
        engine = AuditAnalyticsEngine(AuditQuery(JSONLExecutionStore(path)))

        result = await engine.analyze(AnalyticsFilters(timeframe=Timeframe.ALL))

        assert result.record_count == 1
        assert result.skipped_records == 1

    @pytest.mark.asyncio
    async def test_empty_store(self):
        engine = AuditAnalyticsEngine(AuditQuery(InMemoryExecutionStore()))

        result = await engine.analyze()

        assert result.metrics.executions.total == 0
        assert result.insights == []
