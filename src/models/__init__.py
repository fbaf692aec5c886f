"""
Core data models for the department orchestration system.

This package contains:
- Registry and execution entities (agents, departments, execution records)
- Result schemas for capabilities, departments and the master orchestrator
- Analytics result schemas
"""

from .entities import (
    Agent,
    AgentLevel,
    AgentRef,
    CoordinationSettings,
    Department,
    DepartmentRef,
    ErrorInfo,
    ExecutionEvent,
    ExecutionRecord,
    ExecutionSettings,
    ExecutionStatus,
    PerformanceMetrics,
    ReviewStatus,
    SpecialistResult,
    TERMINAL_STATUSES,
    TokenUsage,
    ToolCall,
)
from .results import (
    CapabilityResult,
    ComplexityLevel,
    DepartmentReport,
    DepartmentResult,
    DepartmentResultMetadata,
    DepartmentStatus,
    OrchestratorResult,
    Recommendation,
    RequestAnalysis,
    RouteInstruction,
)

__all__ = [
    # Entities
    "Agent",
    "AgentLevel",
    "AgentRef",
    "CoordinationSettings",
    "Department",
    "DepartmentRef",
    "ErrorInfo",
    "ExecutionEvent",
    "ExecutionRecord",
    "ExecutionSettings",
    "ExecutionStatus",
    "PerformanceMetrics",
    "ReviewStatus",
    "SpecialistResult",
    "TERMINAL_STATUSES",
    "TokenUsage",
    "ToolCall",

    # Results
    "CapabilityResult",
    "ComplexityLevel",
    "DepartmentReport",
    "DepartmentResult",
    "DepartmentResultMetadata",
    "DepartmentStatus",
    "OrchestratorResult",
    "Recommendation",
    "RequestAnalysis",
    "RouteInstruction",
]
