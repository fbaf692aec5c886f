"""
In-memory agent and department repositories.

Performance updates take a per-agent asyncio.Lock so concurrent executions of
the same agent never lose an update.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from models.entities import Agent, Department, PerformanceMetrics
from utils.errors import DependencyNotFoundError

from .base import AgentFilter, AgentRepository, DepartmentRepository


logger = logging.getLogger(__name__)


def _field_value(agent: Agent, path: str) -> Any:
    value: Any = agent
    for part in path.split("."):
        value = getattr(value, part)
    return value


class InMemoryAgentRepository(AgentRepository):

    def __init__(self, agents: Optional[Iterable[Agent]] = None):
        self._agents: Dict[str, Agent] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        for agent in agents or []:
            self.add(agent)

    def add(self, agent: Agent):
        self._agents[agent.id] = agent

    def all(self) -> List[Agent]:
        return list(self._agents.values())

    async def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    async def find_active(
        self,
        agent_filter: AgentFilter,
        sort_by: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Agent]:
        agents = [a for a in self._agents.values() if agent_filter.matches(a)]

        if sort_by:
            descending = sort_by.startswith("-")
            path = sort_by.lstrip("-")
            agents.sort(key=lambda a: _field_value(a, path), reverse=descending)

        if limit is not None:
            agents = agents[:limit]
        return agents

    async def update_performance(self, agent_id: str, success: bool, elapsed_ms: float) -> PerformanceMetrics:
        async with self._locks[agent_id]:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise DependencyNotFoundError(f"Agent {agent_id} not found", details={"agent_id": agent_id})

            updated = agent.performance.record(success, elapsed_ms)
            self._agents[agent_id] = agent.model_copy(update={"performance": updated})

        logger.debug(
            f"Updated performance for {agent_id}",
            extra={"agent_id": agent_id, "success": success, "elapsed_ms": elapsed_ms}
        )
        return updated


class InMemoryDepartmentRepository(DepartmentRepository):

    def __init__(self, departments: Optional[Iterable[Department]] = None):
        self._departments: Dict[str, Department] = {}
        for department in departments or []:
            self.add(department)

    def add(self, department: Department):
        self._departments[department.id] = department

    async def find_by_id(self, department_id: str) -> Optional[Department]:
        return self._departments.get(department_id)

    async def find_by_slug(self, slug: str) -> Optional[Department]:
        slug = slug.lower()
        for department in self._departments.values():
            if department.slug == slug:
                return department
        return None

    async def list_active(self) -> List[Department]:
        return [d for d in self._departments.values() if d.is_active]
