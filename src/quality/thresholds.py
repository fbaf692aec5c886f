"""
Quality thresholds, decisions and review rules.

Scores are on a 0-100 scale throughout.
"""

from enum import Enum
from typing import Optional

from models.entities import ReviewStatus


MINIMUM_SCORE = 60
ACCEPTABLE_SCORE = 75
GOOD_SCORE = 90
EXCELLENT_SCORE = 95

CONSISTENCY_MINIMUM = 60
CONSISTENCY_ACCEPTABLE = 75
CONSISTENCY_GOOD = 85

DEFAULT_PASSING_THRESHOLD = 60
REVISION_MARGIN = 10


class QualityDecision(str, Enum):
    REJECT = "reject"
    RETRY = "retry"
    ACCEPT = "accept"
    EXEMPLARY = "exemplary"


def get_quality_decision(score: float, consistency: Optional[float] = None) -> QualityDecision:
    """Map an overall score and optional consistency score to a decision."""
    if score < MINIMUM_SCORE:
        return QualityDecision.REJECT
    if score < ACCEPTABLE_SCORE or (consistency is not None and consistency < CONSISTENCY_MINIMUM):
        return QualityDecision.RETRY
    if score >= GOOD_SCORE and (consistency is None or consistency >= CONSISTENCY_GOOD):
        return QualityDecision.EXEMPLARY
    return QualityDecision.ACCEPT


def get_score_label(score: float) -> str:
    if score >= EXCELLENT_SCORE:
        return "Excellent"
    if score >= GOOD_SCORE:
        return "Good"
    if score >= ACCEPTABLE_SCORE:
        return "Acceptable"
    if score >= MINIMUM_SCORE:
        return "Needs Improvement"
    return "Poor"


def resolve_threshold(agent_threshold: Optional[float], department_threshold: Optional[float]) -> float:
    """Agent setting first, then department setting, then the default."""
    if agent_threshold is not None:
        return agent_threshold
    if department_threshold is not None:
        return department_threshold
    return DEFAULT_PASSING_THRESHOLD


def review_status_for(score: float, threshold: float) -> ReviewStatus:
    """
    Department-head review rule.

    A threshold of 0 approves everything. Below the threshold is rejected;
    within REVISION_MARGIN above it needs revision; otherwise approved.
    """
    if threshold == 0:
        return ReviewStatus.APPROVED
    if score < threshold:
        return ReviewStatus.REJECTED
    if score < threshold + REVISION_MARGIN:
        return ReviewStatus.REVISION_NEEDED
    return ReviewStatus.APPROVED
