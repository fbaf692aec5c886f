"""
Analytics result schemas.

Metrics, chart series and insights are derived on demand from execution
records and never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .entities import utcnow


class Timeframe(str, Enum):
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    LAST_90D = "90d"
    ALL = "all"


class GroupBy(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class AnalyticsFilters(BaseModel):
    timeframe: Timeframe = Timeframe.LAST_7D
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    project_id: Optional[str] = None
    department_ids: List[str] = Field(default_factory=list)
    agent_ids: List[str] = Field(default_factory=list)
    group_by: GroupBy = GroupBy.DAY


class ExecutionCounts(BaseModel):
    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_department: Dict[str, int] = Field(default_factory=dict)
    by_agent: Dict[str, int] = Field(default_factory=dict)
    success_rate: float = 0.0


class QualityDistribution(BaseModel):
    """Five score bands: excellent >=90, good 80-89, fair 70-79, poor 60-69, failing <60."""
    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0
    failing: int = 0

    @property
    def total(self) -> int:
        return self.excellent + self.good + self.fair + self.poor + self.failing


class TrendPoint(BaseModel):
    date: str
    value: float
    count: int = 0


class QualityMetrics(BaseModel):
    average: float = 0.0
    median: float = 0.0
    scored_executions: int = 0
    distribution: QualityDistribution = Field(default_factory=QualityDistribution)
    by_department: Dict[str, float] = Field(default_factory=dict)
    by_agent: Dict[str, float] = Field(default_factory=dict)
    trends: List[TrendPoint] = Field(default_factory=list)
    trend_direction: str = "insufficient_data"
    trend_slope: float = 0.0


class PerformanceStats(BaseModel):
    average_ms: float = 0.0
    median_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    by_department: Dict[str, float] = Field(default_factory=dict)
    by_agent: Dict[str, float] = Field(default_factory=dict)


class TokenMetrics(BaseModel):
    total_tokens: int = 0
    average_per_execution: float = 0.0
    by_department: Dict[str, int] = Field(default_factory=dict)
    by_agent: Dict[str, int] = Field(default_factory=dict)
    total_cost: float = 0.0


class ErrorPattern(BaseModel):
    pattern: str
    count: int = 0
    percentage: float = 0.0
    affected_agents: List[str] = Field(default_factory=list)
    last_occurrence: Optional[datetime] = None


class ErrorMetrics(BaseModel):
    total: int = 0
    rate: float = 0.0
    by_code: Dict[str, int] = Field(default_factory=dict)
    by_agent: Dict[str, int] = Field(default_factory=dict)
    patterns: List[ErrorPattern] = Field(default_factory=list)


class ReviewMetrics(BaseModel):
    by_status: Dict[str, int] = Field(default_factory=dict)
    approval_rate: float = 0.0
    average_review_time_ms: float = 0.0


class AnalyticsMetrics(BaseModel):
    executions: ExecutionCounts = Field(default_factory=ExecutionCounts)
    quality: QualityMetrics = Field(default_factory=QualityMetrics)
    performance: PerformanceStats = Field(default_factory=PerformanceStats)
    tokens: TokenMetrics = Field(default_factory=TokenMetrics)
    errors: ErrorMetrics = Field(default_factory=ErrorMetrics)
    reviews: ReviewMetrics = Field(default_factory=ReviewMetrics)


class TimeSeriesPoint(BaseModel):
    timestamp: datetime
    label: str
    value: float


class HistogramBucket(BaseModel):
    label: str
    min: float
    max: Optional[float] = None
    count: int = 0


class ComparisonEntry(BaseModel):
    label: str
    value: float
    count: int = 0


class AgentPerformanceEntry(BaseModel):
    agent_name: str
    executions: int = 0
    average_quality: float = 0.0
    average_time_ms: float = 0.0
    success_rate: float = 0.0


class ChartData(BaseModel):
    executions_over_time: List[TimeSeriesPoint] = Field(default_factory=list)
    tokens_over_time: List[TimeSeriesPoint] = Field(default_factory=list)
    error_rate_over_time: List[TimeSeriesPoint] = Field(default_factory=list)
    quality_distribution: List[HistogramBucket] = Field(default_factory=list)
    execution_time_distribution: List[HistogramBucket] = Field(default_factory=list)
    department_comparison: List[ComparisonEntry] = Field(default_factory=list)
    agent_performance: List[AgentPerformanceEntry] = Field(default_factory=list)


class InsightType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class InsightCategory(str, Enum):
    PERFORMANCE = "performance"
    QUALITY = "quality"
    COST = "cost"
    RELIABILITY = "reliability"


class Impact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Insight(BaseModel):
    type: InsightType
    category: InsightCategory
    title: str
    description: str
    impact: Impact
    recommendation: Optional[str] = None


class AnalyticsResult(BaseModel):
    metrics: AnalyticsMetrics = Field(default_factory=AnalyticsMetrics)
    charts: ChartData = Field(default_factory=ChartData)
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    record_count: int = 0
    skipped_records: int = 0
    generated_at: datetime = Field(default_factory=utcnow)
