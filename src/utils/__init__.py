"""
Utility modules: error taxonomy and LLM client.
"""

from .errors import (
    AggregationError,
    DependencyNotFoundError,
    ExecutionError,
    QualityGateFailure,
    StudioError,
    ValidationError,
)

__all__ = [
    'AggregationError',
    'DependencyNotFoundError',
    'ExecutionError',
    'QualityGateFailure',
    'StudioError',
    'ValidationError',
]
