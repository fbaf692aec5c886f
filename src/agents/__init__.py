"""Agent execution: capability registry, tracked runner, specialist loop and department coordination

The built-in LLM capability lives in agents.capabilities and is imported from there.
"""

from .templates import PromptTemplate, TemplateManager, FileTemplateLoader, InMemoryTemplateLoader
from .registry import Capability, CapabilityRegistry, CapabilityInvoker, RegistryCapabilityInvoker
from .runner import AgentRunner
from .complexity import ComplexityAnalyzer, KeywordComplexityAnalyzer
from .specialist import SpecialistExecutionLoop
from .department import DepartmentCoordinator, department_quality

__all__ = [
    "PromptTemplate",
    "TemplateManager",
    "FileTemplateLoader",
    "InMemoryTemplateLoader",
    "Capability",
    "CapabilityRegistry",
    "CapabilityInvoker",
    "RegistryCapabilityInvoker",
    "AgentRunner",
    "ComplexityAnalyzer",
    "KeywordComplexityAnalyzer",
    "SpecialistExecutionLoop",
    "DepartmentCoordinator",
    "department_quality",
]
