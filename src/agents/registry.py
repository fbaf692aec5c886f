"""
Capability registry and invokers.

Capabilities are named async handlers registered at start-up. Agents list the
capabilities they use; ``validate_agents`` fails fast when an agent names a
capability that was never registered.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from models.entities import Agent
from models.results import CapabilityResult
from utils.errors import ExecutionError, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_CAPABILITY = "llm-completion"


class Capability(ABC):
    """A named unit of work an agent can perform."""

    name: str = ""
    description: str = ""

    @abstractmethod
    async def invoke(self, agent: Agent, prompt: str, context: Dict[str, Any]) -> CapabilityResult:
        """Run the capability; raise ExecutionError on failure."""
        pass


class CapabilityRegistry:
    """Static name -> capability mapping."""

    def __init__(self, capabilities: Optional[Iterable[Capability]] = None):
        self._capabilities: Dict[str, Capability] = {}
        for capability in capabilities or []:
            self.register(capability)

    def register(self, capability: Capability):
        if not capability.name:
            raise ValidationError("Capability must have a name")
        if capability.name in self._capabilities:
            raise ValidationError(f"Capability '{capability.name}' is already registered")
        self._capabilities[capability.name] = capability

    def get(self, name: str) -> Capability:
        try:
            return self._capabilities[name]
        except KeyError:
            raise ValidationError(f"Unknown capability '{name}'", details={"capability": name})

    def names(self) -> List[str]:
        return sorted(self._capabilities)

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def validate_agents(self, agents: Iterable[Agent], default: str = DEFAULT_CAPABILITY):
        """
        Check every agent's capabilities against the registry.

        Raises:
            ValidationError: listing each agent with unknown capabilities.
        """
        problems: Dict[str, List[str]] = {}
        for agent in agents:
            wanted = agent.capabilities or [default]
            unknown = [name for name in wanted if name not in self._capabilities]
            if unknown:
                problems[agent.id] = unknown

        if problems:
            summary = "; ".join(f"{agent_id}: {', '.join(names)}" for agent_id, names in sorted(problems.items()))
            raise ValidationError(f"Unknown capabilities: {summary}", details={"agents": problems})

        logger.info(f"Capability registry validated ({len(self._capabilities)} capabilities)")


class CapabilityInvoker(ABC):
    """Executes an agent against a prompt."""

    @abstractmethod
    async def invoke(self, agent: Agent, prompt: str, context: Dict[str, Any]) -> CapabilityResult:
        pass

    def capability_for(self, agent: Agent) -> str:
        return agent.capabilities[0] if agent.capabilities else DEFAULT_CAPABILITY


class RegistryCapabilityInvoker(CapabilityInvoker):
    """Dispatches an agent to its primary registered capability."""

    def __init__(self, registry: CapabilityRegistry, default: str = DEFAULT_CAPABILITY):
        self.registry = registry
        self.default = default

    def capability_for(self, agent: Agent) -> str:
        return agent.capabilities[0] if agent.capabilities else self.default

    async def invoke(self, agent: Agent, prompt: str, context: Dict[str, Any]) -> CapabilityResult:
        name = self.capability_for(agent)
        try:
            capability = self.registry.get(name)
        except ValidationError as e:
            raise ExecutionError(e.message, code="UNKNOWN_CAPABILITY", agent_id=agent.id)
        return await capability.invoke(agent, prompt, context)
