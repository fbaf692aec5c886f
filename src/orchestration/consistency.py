"""
Cross-department consistency checks.

The orchestrator reports ``consistency`` from a pluggable checker. The default
checker does not assess coherence and reports None, which quality gates treat
as unchecked. ScoreDispersionConsistencyChecker is a cheap heuristic over
department quality spread; a semantic checker comparing department outputs can
be supplied by implementing ConsistencyChecker.
"""

import logging
import statistics
from abc import ABC, abstractmethod
from typing import List, Optional

from models.results import DepartmentReport, DepartmentStatus


logger = logging.getLogger(__name__)


class ConsistencyChecker(ABC):

    @abstractmethod
    async def check(self, prompt: str, reports: List[DepartmentReport]) -> Optional[float]:
        """Return a 0-1 consistency score, or None when not assessed."""
        pass


class NullConsistencyChecker(ConsistencyChecker):
    """Reports consistency as not assessed."""

    async def check(self, prompt: str, reports: List[DepartmentReport]) -> Optional[float]:
        logger.debug("No consistency checker configured; consistency not assessed")
        return None


class ScoreDispersionConsistencyChecker(ConsistencyChecker):
    """1 - 2 * population stdev of completed department qualities."""

    async def check(self, prompt: str, reports: List[DepartmentReport]) -> Optional[float]:
        qualities = [r.quality for r in reports if r.status == DepartmentStatus.COMPLETE]
        if not qualities:
            return None
        if len(qualities) == 1:
            return 1.0
        return max(0.0, 1.0 - 2 * statistics.pstdev(qualities))
