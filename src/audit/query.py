"""
Audit queries over stored execution records.

Provides filtering, sorting, pagination and a summary block. This is the
read interface the analytics engine consumes.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from models.entities import ExecutionRecord, ExecutionStatus, ReviewStatus, to_naive_utc

from .tracking import ExecutionStore


logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 10000

SORT_FIELDS = {
    "started_at": lambda r: r.started_at,
    "completed_at": lambda r: r.completed_at or datetime.min,
    "quality_score": lambda r: r.quality_score if r.quality_score is not None else -1.0,
    "execution_time": lambda r: r.elapsed_ms if r.elapsed_ms is not None else -1.0,
    "tokens": lambda r: r.token_usage.total_tokens if r.token_usage else 0,
    "cost": lambda r: r.token_usage.estimated_cost if r.token_usage else 0.0,
}


class AuditQueryFilters(BaseModel):
    project_id: Optional[str] = None
    conversation_id: Optional[str] = None
    episode_id: Optional[str] = None
    department_ids: List[str] = Field(default_factory=list)
    agent_ids: List[str] = Field(default_factory=list)
    statuses: List[ExecutionStatus] = Field(default_factory=list)
    review_statuses: List[ReviewStatus] = Field(default_factory=list)
    min_quality: Optional[float] = None
    max_quality: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    has_errors: Optional[bool] = None
    min_execution_time_ms: Optional[float] = None
    max_execution_time_ms: Optional[float] = None
    tags: List[str] = Field(default_factory=list)

    @validator("start_date", "end_date")
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    def matches(self, record: ExecutionRecord) -> bool:
        if self.project_id and record.project_id != self.project_id:
            return False
        if self.conversation_id and record.conversation_id != self.conversation_id:
            return False
        if self.episode_id and record.episode_id != self.episode_id:
            return False
        if self.department_ids:
            department = record.department
            if department is None or not ({department.id, department.slug} & set(self.department_ids)):
                return False
        if self.agent_ids and record.agent.id not in self.agent_ids:
            return False
        if self.statuses and record.status not in self.statuses:
            return False
        if self.review_statuses and record.review_status not in self.review_statuses:
            return False
        if self.min_quality is not None or self.max_quality is not None:
            if record.quality_score is None:
                return False
            if self.min_quality is not None and record.quality_score < self.min_quality:
                return False
            if self.max_quality is not None and record.quality_score > self.max_quality:
                return False
        if self.start_date and record.started_at < self.start_date:
            return False
        if self.end_date and record.started_at > self.end_date:
            return False
        if self.has_errors is not None and record.has_error != self.has_errors:
            return False
        if self.min_execution_time_ms is not None or self.max_execution_time_ms is not None:
            elapsed = record.elapsed_ms
            if elapsed is None:
                return False
            if self.min_execution_time_ms is not None and elapsed < self.min_execution_time_ms:
                return False
            if self.max_execution_time_ms is not None and elapsed > self.max_execution_time_ms:
                return False
        if self.tags and not set(self.tags).issubset(record.tags):
            return False
        return True


class AuditQueryOptions(BaseModel):
    limit: int = Field(50, ge=1, le=MAX_QUERY_LIMIT)
    offset: int = Field(0, ge=0)
    sort_by: str = "started_at"
    sort_order: str = "desc"
    include_tool_calls: bool = True
    include_events: bool = True

    @validator("sort_by")
    def validate_sort_by(cls, v):
        if v not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {sorted(SORT_FIELDS)}")
        return v

    @validator("sort_order")
    def validate_sort_order(cls, v):
        if v not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")
        return v


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class AuditSummary(BaseModel):
    total_executions: int = 0
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    review_breakdown: Dict[str, int] = Field(default_factory=dict)
    average_quality: float = 0.0
    average_execution_time_ms: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    success_rate: float = 0.0


class AuditQueryResult(BaseModel):
    executions: List[ExecutionRecord] = Field(default_factory=list)
    pagination: Pagination
    summary: AuditSummary


class TimelineEntry(BaseModel):
    timestamp: datetime
    execution_id: str
    agent_name: str
    department: Optional[str] = None
    status: ExecutionStatus
    quality_score: Optional[float] = None
    review_status: ReviewStatus


def summarize(records: List[ExecutionRecord]) -> AuditSummary:
    """Totals and breakdowns over a set of records."""
    if not records:
        return AuditSummary()

    status_breakdown: Dict[str, int] = {}
    review_breakdown: Dict[str, int] = {}
    for record in records:
        status_breakdown[record.status.value] = status_breakdown.get(record.status.value, 0) + 1
        review_breakdown[record.review_status.value] = review_breakdown.get(record.review_status.value, 0) + 1

    scores = [r.quality_score for r in records if r.quality_score is not None]
    times = [r.elapsed_ms for r in records if r.elapsed_ms is not None]
    usages = [r.token_usage for r in records if r.token_usage is not None]

    return AuditSummary(
        total_executions=len(records),
        status_breakdown=status_breakdown,
        review_breakdown=review_breakdown,
        average_quality=sum(scores) / len(scores) if scores else 0.0,
        average_execution_time_ms=sum(times) / len(times) if times else 0.0,
        total_tokens=sum(u.total_tokens for u in usages),
        total_cost=sum(u.estimated_cost for u in usages),
        success_rate=status_breakdown.get(ExecutionStatus.COMPLETED.value, 0) / len(records),
    )


class AuditQuery:
    """Query interface over an execution store."""

    def __init__(self, store: ExecutionStore):
        self.store = store

    async def query(
        self,
        filters: Optional[AuditQueryFilters] = None,
        options: Optional[AuditQueryOptions] = None
    ) -> AuditQueryResult:
        filters = filters or AuditQueryFilters()
        options = options or AuditQueryOptions()

        records = [r for r in await self.store.list_records() if filters.matches(r)]
        records.sort(key=SORT_FIELDS[options.sort_by], reverse=options.sort_order == "desc")

        page = records[options.offset:options.offset + options.limit]
        if not options.include_tool_calls or not options.include_events:
            strip: Dict[str, Any] = {}
            if not options.include_tool_calls:
                strip["tool_calls"] = []
            if not options.include_events:
                strip["events"] = []
            page = [r.model_copy(update=strip) for r in page]

        logger.debug(
            f"Audit query matched {len(records)} executions",
            extra={"matched": len(records), "returned": len(page)}
        )

        return AuditQueryResult(
            executions=page,
            pagination=Pagination(
                total=len(records),
                limit=options.limit,
                offset=options.offset,
                has_more=options.offset + len(page) < len(records),
            ),
            summary=summarize(records),
        )

    async def timeline(self, project_id: Optional[str] = None) -> List[TimelineEntry]:
        """Chronological view of a project's executions."""
        result = await self.query(
            AuditQueryFilters(project_id=project_id),
            AuditQueryOptions(limit=MAX_QUERY_LIMIT, sort_order="asc", include_tool_calls=False, include_events=False),
        )
        return [
            TimelineEntry(
                timestamp=r.started_at,
                execution_id=r.id,
                agent_name=r.agent.name,
                department=r.department.slug if r.department else None,
                status=r.status,
                quality_score=r.quality_score,
                review_status=r.review_status,
            )
            for r in result.executions
        ]
