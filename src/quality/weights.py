"""
Scoring weight profiles for the quality assessment engine.

Each department weighs the six quality dimensions differently. Profiles must
sum to 1.0 (within 0.01); an invalid profile is rejected at load time and the
balanced profile is used in its place.
"""

import logging
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 0.01


class QualityDimension(str, Enum):
    CONFIDENCE = "confidence"
    COMPLETENESS = "completeness"
    RELEVANCE = "relevance"
    CONSISTENCY = "consistency"
    CREATIVITY = "creativity"
    TECHNICAL = "technical"


class ScoringWeights(BaseModel):
    """Weight vector over the quality dimensions."""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    completeness: float = Field(0.0, ge=0.0, le=1.0)
    relevance: float = Field(0.0, ge=0.0, le=1.0)
    consistency: float = Field(0.0, ge=0.0, le=1.0)
    creativity: float = Field(0.0, ge=0.0, le=1.0)
    technical: float = Field(0.0, ge=0.0, le=1.0)

    @property
    def total(self) -> float:
        return sum(self.as_dict().values())

    def as_dict(self) -> Dict[str, float]:
        return {dimension.value: getattr(self, dimension.value) for dimension in QualityDimension}

    def weight_for(self, dimension: Union[str, QualityDimension]) -> float:
        key = dimension.value if isinstance(dimension, QualityDimension) else str(dimension).lower()
        return getattr(self, key, 0.0)


BALANCED_WEIGHTS = ScoringWeights(
    confidence=0.15,
    completeness=0.20,
    relevance=0.20,
    consistency=0.20,
    creativity=0.15,
    technical=0.10,
)

DEPARTMENT_WEIGHTS: Dict[str, ScoringWeights] = {
    # Narrative work rewards originality and internal coherence
    "story": ScoringWeights(
        creativity=0.25, consistency=0.25, completeness=0.20,
        relevance=0.15, technical=0.10, confidence=0.05,
    ),
    "character": ScoringWeights(
        consistency=0.30, completeness=0.25, creativity=0.20,
        relevance=0.15, technical=0.05, confidence=0.05,
    ),
    "visual": ScoringWeights(
        technical=0.30, creativity=0.25, consistency=0.20,
        completeness=0.15, relevance=0.05, confidence=0.05,
    ),
    "video": ScoringWeights(
        technical=0.35, completeness=0.25, consistency=0.20,
        creativity=0.10, relevance=0.05, confidence=0.05,
    ),
    "audio": ScoringWeights(
        technical=0.40, completeness=0.25, consistency=0.20,
        creativity=0.10, relevance=0.03, confidence=0.02,
    ),
    "production": ScoringWeights(
        technical=0.30, completeness=0.30, relevance=0.20,
        consistency=0.15, creativity=0.03, confidence=0.02,
    ),
}


def validate_weights(weights: ScoringWeights) -> bool:
    """Return True when the weights sum to 1.0 within tolerance."""
    return abs(weights.total - 1.0) <= WEIGHT_SUM_TOLERANCE + 1e-9


def build_profiles(
    raw_profiles: Mapping[str, Any],
    base: Optional[Mapping[str, ScoringWeights]] = None
) -> Dict[str, ScoringWeights]:
    """
    Validate raw weight mappings and merge them over a base profile set.

    Args:
        raw_profiles: department slug -> mapping of dimension weights
        base: profiles to start from (defaults to the built-in departments)

    Returns:
        Lower-cased department slug -> ScoringWeights. Profiles that fail
        validation are replaced by the balanced profile with a warning.
    """
    profiles = {k.lower(): v for k, v in (DEPARTMENT_WEIGHTS if base is None else base).items()}

    for department, raw in raw_profiles.items():
        key = str(department).lower()
        try:
            weights = raw if isinstance(raw, ScoringWeights) else ScoringWeights(**(raw or {}))
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Invalid weight profile for '{key}', using balanced profile: {e}",
                extra={"department": key}
            )
            profiles[key] = BALANCED_WEIGHTS
            continue

        if not validate_weights(weights):
            logger.warning(
                f"Weight profile for '{key}' sums to {weights.total:.3f}, using balanced profile",
                extra={"department": key, "weight_sum": weights.total}
            )
            profiles[key] = BALANCED_WEIGHTS
            continue

        profiles[key] = weights

    return profiles


def load_weight_profiles(path: Union[str, Path]) -> Dict[str, ScoringWeights]:
    """Load department weight profiles from a YAML file.

    The file maps department slugs to dimension weights, optionally under a
    top-level ``departments`` key.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Weight file {path} must contain a mapping")

    raw_profiles = data.get("departments", data)
    logger.info(f"Loaded {len(raw_profiles)} weight profiles from {path}")
    return build_profiles(raw_profiles)


def clamp_score(score: float, minimum: float = 0.0, maximum: float = 100.0) -> float:
    return max(minimum, min(maximum, score))


def validate_score(score: Any) -> bool:
    """True for a finite number in 0-100."""
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return False
    return not math.isnan(score) and 0 <= score <= 100
