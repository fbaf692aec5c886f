"""
Quality assessment: weight profiles, weighted scoring, thresholds and gates.
"""

from .scorer import QualityAssessmentEngine, calculate_weighted_score
from .thresholds import QualityDecision, get_quality_decision, resolve_threshold, review_status_for
from .weights import (
    BALANCED_WEIGHTS,
    DEPARTMENT_WEIGHTS,
    QualityDimension,
    ScoringWeights,
    load_weight_profiles,
    validate_weights,
)

__all__ = [
    "QualityAssessmentEngine",
    "calculate_weighted_score",
    "QualityDecision",
    "get_quality_decision",
    "resolve_threshold",
    "review_status_for",
    "BALANCED_WEIGHTS",
    "DEPARTMENT_WEIGHTS",
    "QualityDimension",
    "ScoringWeights",
    "load_weight_profiles",
    "validate_weights",
]
