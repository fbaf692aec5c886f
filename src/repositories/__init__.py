"""
Agent and department repositories.
"""

from .base import AgentFilter, AgentRepository, DepartmentRepository
from .loader import Registry, load_registry, parse_registry
from .memory import InMemoryAgentRepository, InMemoryDepartmentRepository

__all__ = [
    "AgentFilter",
    "AgentRepository",
    "DepartmentRepository",
    "InMemoryAgentRepository",
    "InMemoryDepartmentRepository",
    "Registry",
    "load_registry",
    "parse_registry",
]
