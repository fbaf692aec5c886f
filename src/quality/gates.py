"""
Quality gates applied to department reports and orchestration results.

Gate scores are on the 0-1 scale used by orchestrator results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from models.results import DepartmentReport, DepartmentStatus, OrchestratorResult, Recommendation


@dataclass
class QualityGate:
    name: str
    threshold: float
    passed: bool
    score: float
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "threshold": self.threshold,
            "passed": self.passed,
            "score": self.score,
            "issues": list(self.issues),
        }


def _clamp_unit(score: float) -> float:
    return max(0.0, min(1.0, score))


def validate_department_quality(report: DepartmentReport, threshold: float = 0.60) -> QualityGate:
    issues: List[str] = []
    score = report.quality

    if report.relevance < 0.5:
        issues.append("Low relevance to request")
        score -= 0.1

    result = report.result
    if report.status == DepartmentStatus.COMPLETE and result and result.specialist_results:
        if not any(s.approved for s in result.specialist_results):
            issues.append("No approved outputs from specialists")
            score -= 0.3

    issues.extend(report.issues)
    score = _clamp_unit(score)

    return QualityGate(
        name=f"{report.department_id} Department Quality",
        threshold=threshold,
        passed=score >= threshold,
        score=score,
        issues=issues,
    )


def validate_orchestrator_quality(result: OrchestratorResult, threshold: float = 0.75) -> QualityGate:
    issues: List[str] = []
    score = result.overall_quality

    if result.completeness < 0.8:
        issues.append("Incomplete department coverage")
        score -= 0.1

    # Unchecked consistency is not penalised
    if result.consistency is not None and result.consistency < 0.7:
        issues.append("Low cross-department consistency")
        score -= 0.1

    score = _clamp_unit(score)

    return QualityGate(
        name="Overall Orchestration Quality",
        threshold=threshold,
        passed=score >= threshold,
        score=score,
        issues=issues,
    )


def run_all_quality_gates(result: OrchestratorResult) -> Dict[str, Any]:
    """Run every department gate plus the overall gate."""
    gates = [validate_department_quality(report) for report in result.departments]
    gates.append(validate_orchestrator_quality(result))

    return {
        "passed": all(g.passed for g in gates),
        "gates": gates,
        "overall_score": result.overall_quality,
    }


def get_quality_recommendation(gates: List[QualityGate]) -> Dict[str, Any]:
    failed = [g for g in gates if not g.passed]
    if not failed:
        return {"action": Recommendation.INGEST, "reason": "All quality gates passed"}

    critical = [g for g in failed if g.score < 0.5]
    if critical:
        return {
            "action": Recommendation.DISCARD,
            "reason": f"Critical quality issues: {', '.join(g.name for g in critical)}",
        }

    return {
        "action": Recommendation.MODIFY,
        "reason": f"Quality issues need addressing: {', '.join('; '.join(g.issues) for g in failed)}",
    }
