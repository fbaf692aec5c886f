"""
Entity models for agents, departments and execution records.

These Pydantic models are the typed boundary between the orchestration layer
and its repositories and stores:
- Agent / Department: registry entities
- ExecutionRecord: one capability invocation with its full lifecycle
- SpecialistResult: transient outcome of a specialist execution loop
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from utils.errors import QualityGateFailure


def utcnow() -> datetime:
    """Naive UTC timestamp used for every stored datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware datetimes to match."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class AgentLevel(str, Enum):
    """Position of an agent in the hierarchy."""
    MASTER = "master"
    DEPARTMENT_HEAD = "department-head"
    SPECIALIST = "specialist"


class ExecutionStatus(str, Enum):
    """Lifecycle of an execution record."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.TIMEOUT,
    ExecutionStatus.CANCELLED,
})


class ReviewStatus(str, Enum):
    """Department-head review outcome."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_NEEDED = "revision-needed"


class ExecutionSettings(BaseModel):
    """Per-agent invocation settings."""
    max_retries: Optional[int] = Field(None, ge=0, le=10)
    max_tokens: int = 16000
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    timeout_seconds: Optional[float] = Field(None, gt=0)


class PerformanceMetrics(BaseModel):
    """Running performance aggregate for an agent.

    ``success_rate`` is a percentage (0-100).
    """
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_execution_time_ms: float = 0.0
    success_rate: float = 0.0

    def record(self, success: bool, elapsed_ms: float) -> "PerformanceMetrics":
        """Return a copy of the aggregate with one more execution folded in."""
        total = self.total_executions + 1
        successful = self.successful_executions + (1 if success else 0)
        failed = self.failed_executions + (0 if success else 1)
        average = self.average_execution_time_ms + (elapsed_ms - self.average_execution_time_ms) / total
        return PerformanceMetrics(
            total_executions=total,
            successful_executions=successful,
            failed_executions=failed,
            average_execution_time_ms=average,
            success_rate=successful / total * 100,
        )


class Agent(BaseModel):
    """A registered executor in the hierarchy."""
    id: str
    name: str
    level: AgentLevel = AgentLevel.SPECIALIST
    department_id: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    specialization: Optional[str] = None
    description: str = ""
    execution_settings: ExecutionSettings = Field(default_factory=ExecutionSettings)
    passing_threshold: Optional[float] = Field(None, ge=0, le=100)
    requires_review: bool = True
    is_active: bool = True
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)

    @validator("department_id", always=True)
    def validate_department(cls, v, values):
        """Department heads and specialists must belong to a department."""
        if values.get("level") not in (None, AgentLevel.MASTER) and not v:
            raise ValueError("non-master agents must have a department_id")
        return v

    @validator("skills", pre=True)
    def normalize_skills(cls, v):
        return [str(skill).lower() for skill in (v or [])]

    @property
    def is_department_head(self) -> bool:
        return self.level == AgentLevel.DEPARTMENT_HEAD

    @property
    def label(self) -> str:
        return self.specialization or self.name


class CoordinationSettings(BaseModel):
    """Department-level coordination policy."""
    allow_parallel_execution: bool = True
    requires_department_head_review: bool = True
    min_quality_threshold: Optional[float] = Field(None, ge=0, le=100)
    max_retries: Optional[int] = Field(None, ge=0, le=10)


class Department(BaseModel):
    """A domain grouping with one head and several specialists."""
    id: str
    slug: str
    name: str
    description: str = ""
    is_active: bool = True
    coordination_settings: CoordinationSettings = Field(default_factory=CoordinationSettings)

    @validator("slug")
    def validate_slug(cls, v):
        if not v or not v.strip():
            raise ValueError("slug must not be empty")
        return v.strip().lower()


class AgentRef(BaseModel):
    """Denormalised agent reference stored on execution records."""
    id: str
    name: str
    is_department_head: bool = False

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentRef":
        return cls(id=agent.id, name=agent.name, is_department_head=agent.is_department_head)


class DepartmentRef(BaseModel):
    """Denormalised department reference stored on execution records."""
    id: str
    slug: str
    name: str

    @classmethod
    def from_department(cls, department: Department) -> "DepartmentRef":
        return cls(id=department.id, slug=department.slug, name=department.name)


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    @validator("total_tokens", always=True)
    def fill_total(cls, v, values):
        if not v:
            return values.get("input_tokens", 0) + values.get("output_tokens", 0)
        return v


class ErrorInfo(BaseModel):
    message: str
    code: Optional[str] = None
    stack: Optional[str] = None


class ToolCall(BaseModel):
    """One capability invocation made while executing a record."""
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    execution_time_ms: float = 0.0
    success: bool = True
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ExecutionEvent(BaseModel):
    """Lifecycle log entry."""
    type: str
    timestamp: datetime = Field(default_factory=utcnow)
    data: Dict[str, Any] = Field(default_factory=dict)


class ExecutionRecord(BaseModel):
    """A single agent execution with its lifecycle, scores and usage."""
    id: str = Field(default_factory=new_id)
    agent: AgentRef
    department: Optional[DepartmentRef] = None
    project_id: Optional[str] = None
    conversation_id: Optional[str] = None
    episode_id: Optional[str] = None
    prompt: str = ""
    output: Any = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    quality_score: Optional[float] = None
    quality_breakdown: Optional[Dict[str, float]] = None
    token_usage: Optional[TokenUsage] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    execution_time_ms: Optional[float] = None
    review_status: ReviewStatus = ReviewStatus.PENDING
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    retry_count: int = 0
    error: Optional[ErrorInfo] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    events: List[ExecutionEvent] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @validator("started_at", "completed_at", "reviewed_at")
    def normalize_timestamps(cls, v):
        return to_naive_utc(v)

    @property
    def elapsed_ms(self) -> Optional[float]:
        """Stored execution time, falling back to the timestamp delta."""
        if self.execution_time_ms is not None:
            return self.execution_time_ms
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds() * 1000
        return None

    @property
    def has_error(self) -> bool:
        return self.error is not None and bool(self.error.message)


class SpecialistResult(BaseModel):
    """Outcome of one specialist's execution loop."""
    agent_id: str
    agent_name: str
    specialization: Optional[str] = None
    output: Any = None
    quality_score: float = 0.0
    execution_time_ms: float = 0.0
    review_status: ReviewStatus = ReviewStatus.PENDING
    review_notes: str = ""
    attempts: int = 0
    threshold: float = 0.0
    execution_id: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.review_status == ReviewStatus.APPROVED

    def raise_for_status(self) -> "SpecialistResult":
        """Raise QualityGateFailure when the loop ended rejected."""
        if self.review_status == ReviewStatus.REJECTED:
            raise QualityGateFailure(
                f"{self.agent_name}: {self.review_notes}",
                score=self.quality_score,
                threshold=self.threshold,
                attempts=self.attempts,
            )
        return self
