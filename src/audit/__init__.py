"""
Execution tracking, audit queries and analytics.

This package provides:
- ExecutionStore backends (in-memory and JSONL)
- AuditQuery for filtered, paginated reads with a summary block
- AuditAnalyticsEngine for metrics, charts and insights
"""

from .analytics import AuditAnalyticsEngine
from .query import AuditQuery, AuditQueryFilters, AuditQueryOptions, AuditQueryResult, AuditSummary
from .tracking import ExecutionStore, InMemoryExecutionStore, JSONLExecutionStore

__all__ = [
    "AuditAnalyticsEngine",
    "AuditQuery",
    "AuditQueryFilters",
    "AuditQueryOptions",
    "AuditQueryResult",
    "AuditSummary",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "JSONLExecutionStore",
]
