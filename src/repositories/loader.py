"""Load agent and department registries from YAML."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from models.entities import Agent, AgentLevel, Department
from utils.errors import ValidationError

from .memory import InMemoryAgentRepository, InMemoryDepartmentRepository


logger = logging.getLogger(__name__)


@dataclass
class Registry:
    departments: List[Department] = field(default_factory=list)
    agents: List[Agent] = field(default_factory=list)

    def agent_repository(self) -> InMemoryAgentRepository:
        return InMemoryAgentRepository(self.agents)

    def department_repository(self) -> InMemoryDepartmentRepository:
        return InMemoryDepartmentRepository(self.departments)


def parse_registry(data: dict) -> Registry:
    """
    Build a registry from a mapping with ``departments`` and ``agents`` lists.

    Raises:
        ValidationError: when an entry is malformed or an agent refers to an
            unknown department.
    """
    try:
        departments = [Department(**d) for d in data.get("departments", [])]
        agents = [Agent(**a) for a in data.get("agents", [])]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid registry entry: {e}")

    known = {d.id for d in departments}
    for agent in agents:
        if agent.level != AgentLevel.MASTER and agent.department_id not in known:
            raise ValidationError(
                f"Agent '{agent.id}' refers to unknown department '{agent.department_id}'",
                details={"agent_id": agent.id, "department_id": agent.department_id}
            )

    return Registry(departments=departments, agents=agents)


def load_registry(path: Union[str, Path]) -> Registry:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValidationError(f"Registry file {path} must contain a mapping")

    registry = parse_registry(data)
    logger.info(
        f"Loaded {len(registry.departments)} departments and {len(registry.agents)} agents from {path}"
    )
    return registry
