"""
Orchestration package for routing requests across departments.

This package provides:
- MasterOrchestrator for running departments concurrently and scoring the result
- Routing capabilities (keyword table and LLM routing plan)
- Pluggable cross-department consistency checkers
"""

from .consistency import ConsistencyChecker, NullConsistencyChecker, ScoreDispersionConsistencyChecker
from .master import MasterOrchestrator, OrchestrationConfig, completeness, overall_quality, recommend
from .routing import KeywordRouter, LLMRouter, RoutingCapability, RoutingPlan

__all__ = [
    "MasterOrchestrator",
    "OrchestrationConfig",
    "overall_quality",
    "completeness",
    "recommend",
    "RoutingCapability",
    "KeywordRouter",
    "LLMRouter",
    "RoutingPlan",
    "ConsistencyChecker",
    "NullConsistencyChecker",
    "ScoreDispersionConsistencyChecker",
]
