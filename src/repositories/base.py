"""Repository interfaces for agents and departments."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from models.entities import Agent, AgentLevel, Department, PerformanceMetrics


@dataclass
class AgentFilter:
    """Query over active agents.

    ``skills`` matches agents that carry any of the listed skills.
    """
    department_id: Optional[str] = None
    level: Optional[AgentLevel] = None
    is_department_head: Optional[bool] = None
    skills: List[str] = field(default_factory=list)
    include_inactive: bool = False

    def matches(self, agent: Agent) -> bool:
        if not self.include_inactive and not agent.is_active:
            return False
        if self.department_id is not None and agent.department_id != self.department_id:
            return False
        if self.level is not None and agent.level != self.level:
            return False
        if self.is_department_head is not None and agent.is_department_head != self.is_department_head:
            return False
        if self.skills:
            wanted = {s.lower() for s in self.skills}
            if not wanted.intersection(agent.skills):
                return False
        return True


class AgentRepository(ABC):
    """Source of agents and owner of their performance aggregates."""

    @abstractmethod
    async def get(self, agent_id: str) -> Optional[Agent]:
        pass

    @abstractmethod
    async def find_active(
        self,
        agent_filter: AgentFilter,
        sort_by: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Agent]:
        """Find agents matching the filter.

        ``sort_by`` is a field path such as ``performance.success_rate``;
        a leading ``-`` sorts descending.
        """
        pass

    @abstractmethod
    async def update_performance(self, agent_id: str, success: bool, elapsed_ms: float) -> PerformanceMetrics:
        """Fold one completed execution into the agent's aggregate atomically."""
        pass


class DepartmentRepository(ABC):

    @abstractmethod
    async def find_by_id(self, department_id: str) -> Optional[Department]:
        pass

    @abstractmethod
    async def find_by_slug(self, slug: str) -> Optional[Department]:
        pass

    @abstractmethod
    async def list_active(self) -> List[Department]:
        pass

    async def resolve(self, department_ref: str) -> Optional[Department]:
        """Look a department up by id, then by slug."""
        department = await self.find_by_id(department_ref)
        if department is None:
            department = await self.find_by_slug(department_ref)
        return department
