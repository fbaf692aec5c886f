"""Result models produced by capabilities, departments and the master orchestrator."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from .entities import SpecialistResult, TokenUsage


class CapabilityResult(BaseModel):
    """What a capability invocation hands back to its caller."""
    output: Any = None
    quality_score: Optional[float] = None
    dimensions: Optional[Dict[str, float]] = None
    token_usage: Optional[TokenUsage] = None
    execution_time_ms: float = 0.0
    execution_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ComplexityLevel(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class RequestAnalysis(BaseModel):
    """Department-head view of an incoming request."""
    complexity: ComplexityLevel
    required_skills: List[str] = Field(default_factory=list)
    estimated_specialists: int = 1
    requires_specialists: bool = False
    word_count: int = 0


class DepartmentResultMetadata(BaseModel):
    analysis_time_ms: float = 0.0
    specialists_used: int = 0
    successful_specialists: int = 0
    failed_specialists: int = 0
    revision_needed_specialists: int = 0
    total_time_ms: float = 0.0


class DepartmentResult(BaseModel):
    """Output of one department coordinator run."""
    department_id: str
    department_slug: str
    department_name: str
    output: Any = None
    quality_score: float = 0.0
    analysis: Optional[RequestAnalysis] = None
    specialist_results: List[SpecialistResult] = Field(default_factory=list)
    metadata: DepartmentResultMetadata = Field(default_factory=DepartmentResultMetadata)
    head_execution_id: Optional[str] = None


class RouteInstruction(BaseModel):
    """One routing decision: which department handles which instructions."""
    department_id: str
    instructions: str
    relevance: float = Field(1.0, ge=0.0, le=1.0)


class DepartmentStatus(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"


class DepartmentReport(BaseModel):
    """Per-department entry of an orchestrator result.

    ``quality`` is on a 0-1 scale (department score / 100).
    """
    department_id: str
    status: DepartmentStatus
    relevance: float = 1.0
    quality: float = 0.0
    issues: List[str] = Field(default_factory=list)
    result: Optional[DepartmentResult] = None

    @validator("quality")
    def validate_quality(cls, v):
        if v < 0 or v > 1:
            raise ValueError("quality must be between 0 and 1")
        return v


class Recommendation(str, Enum):
    INGEST = "ingest"
    MODIFY = "modify"
    DISCARD = "discard"


class OrchestratorResult(BaseModel):
    """Aggregate outcome of a routed request."""
    prompt: str
    departments: List[DepartmentReport] = Field(default_factory=list)
    overall_quality: float = 0.0
    completeness: float = 0.0
    consistency: Optional[float] = None
    recommendation: Recommendation = Recommendation.DISCARD
    quality_gates: Dict[str, Any] = Field(default_factory=dict)
    execution_id: Optional[str] = None
    execution_time_ms: float = 0.0

    @property
    def failed_departments(self) -> List[DepartmentReport]:
        return [d for d in self.departments if d.status == DepartmentStatus.FAILED]
