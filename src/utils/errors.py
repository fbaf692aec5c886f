"""Error taxonomy shared by the orchestration and analytics layers."""

from typing import Any, Dict, Optional


class StudioError(Exception):
    """Base exception for orchestration and analytics errors."""

    code = "STUDIO_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class ValidationError(StudioError):
    """Malformed input: missing prompt, unknown capability, bad identifiers."""

    code = "VALIDATION_ERROR"


class DependencyNotFoundError(StudioError):
    """A department, department head or agent required for the request is missing."""

    code = "DEPENDENCY_NOT_FOUND"


class ExecutionError(StudioError):
    """An agent's capability invocation failed or timed out."""

    code = "EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        agent_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, details=details)
        self.agent_id = agent_id
        self.execution_id = execution_id


class QualityGateFailure(StudioError):
    """Output never reached the passing threshold within the retry budget.

    Raised only on request (see ``SpecialistResult.raise_for_status``); the
    execution loop itself reports this outcome as a rejected result.
    """

    code = "QUALITY_GATE_FAILED"

    def __init__(self, message: str, score: float = 0.0, threshold: float = 0.0, attempts: int = 0):
        super().__init__(message, details={"score": score, "threshold": threshold, "attempts": attempts})
        self.score = score
        self.threshold = threshold
        self.attempts = attempts


class AggregationError(StudioError):
    """A stored execution record could not be aggregated."""

    code = "AGGREGATION_ERROR"

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message, details={"record_id": record_id})
        self.record_id = record_id
