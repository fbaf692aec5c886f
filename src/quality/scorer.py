"""Weighted quality scoring over per-dimension scores."""

import logging
import math
from typing import Dict, Mapping, Optional, Union

from .weights import (
    BALANCED_WEIGHTS,
    DEPARTMENT_WEIGHTS,
    QualityDimension,
    ScoringWeights,
)


logger = logging.getLogger(__name__)

DimensionKey = Union[str, QualityDimension]


def calculate_weighted_score(dimensions: Mapping[DimensionKey, Optional[float]], weights: ScoringWeights) -> float:
    """
    Weighted mean over the dimensions that are present.

    Missing, None or NaN dimensions are left out of both the numerator and the
    denominator. Returns 0 when no recognised dimension is present.
    """
    weighted_sum = 0.0
    weight_total = 0.0

    for key, value in dimensions.items():
        if value is None or isinstance(value, bool):
            continue
        try:
            value = float(value)
        except (TypeError, ValueError):
            continue
        if math.isnan(value):
            continue

        name = key.value if isinstance(key, QualityDimension) else str(key).lower()
        if name not in QualityDimension._value2member_map_:
            continue

        weight = weights.weight_for(name)
        weighted_sum += value * weight
        weight_total += weight

    if weight_total == 0:
        return 0.0
    return weighted_sum / weight_total


class QualityAssessmentEngine:
    """
    Turns per-dimension scores into a single 0-100 score using the weight
    profile of the department that produced the output.
    """

    def __init__(
        self,
        profiles: Optional[Mapping[str, ScoringWeights]] = None,
        fallback: ScoringWeights = BALANCED_WEIGHTS
    ):
        source = DEPARTMENT_WEIGHTS if profiles is None else profiles
        self.profiles: Dict[str, ScoringWeights] = {k.lower(): v for k, v in source.items()}
        self.fallback = fallback

    def get_weights(self, department_id: Optional[str]) -> ScoringWeights:
        """Case-insensitive profile lookup with a warning on fallback."""
        key = (department_id or "").lower()
        weights = self.profiles.get(key)
        if weights is None:
            logger.warning(
                f"No weight profile for department '{department_id}', using balanced weights",
                extra={"department": department_id}
            )
            return self.fallback
        return weights

    def score(self, dimensions: Mapping[DimensionKey, Optional[float]], department_id: Optional[str]) -> float:
        return calculate_weighted_score(dimensions, self.get_weights(department_id))

    def breakdown(self, dimensions: Mapping[DimensionKey, Optional[float]], department_id: Optional[str]) -> Dict[str, float]:
        """Per-dimension weighted contributions, for quality_breakdown fields."""
        weights = self.get_weights(department_id)
        result = {}
        for key, value in dimensions.items():
            name = key.value if isinstance(key, QualityDimension) else str(key).lower()
            if value is None or name not in QualityDimension._value2member_map_:
                continue
            result[name] = float(value) * weights.weight_for(name)
        return result
