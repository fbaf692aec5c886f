"""Shared fixtures: a scripted capability and a wired department stack."""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agents.department import DepartmentCoordinator
from agents.registry import Capability, CapabilityRegistry, RegistryCapabilityInvoker
from agents.runner import AgentRunner
from agents.specialist import SpecialistExecutionLoop
from audit.tracking import ExecutionStore, InMemoryExecutionStore
from models.entities import Agent, AgentLevel, Department
from models.results import CapabilityResult
from quality.scorer import QualityAssessmentEngine
from repositories.memory import InMemoryAgentRepository, InMemoryDepartmentRepository


class ScriptedCapability(Capability):
    """
    Capability whose outcomes are scripted per agent.

    Each queued outcome is a score (returned as the capability's quality
    score), a CapabilityResult, or an exception to raise. Agents with an empty
    queue get ``default_score``.
    """

    name = "llm-completion"

    def __init__(self, scripts: Optional[Dict[str, List[Any]]] = None, default_score: float = 80.0):
        self.scripts = {agent_id: list(outcomes) for agent_id, outcomes in (scripts or {}).items()}
        self.default_score = default_score
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, agent: Agent, prompt: str, context: Dict[str, Any]) -> CapabilityResult:
        self.calls.append({"agent_id": agent.id, "prompt": prompt, "context": dict(context)})
        queue = self.scripts.get(agent.id)
        outcome = queue.pop(0) if queue else self.default_score

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, CapabilityResult):
            return outcome
        return CapabilityResult(output=f"{agent.name} draft {len(self.calls)}", quality_score=outcome)

    def prompts_for(self, agent_id: str) -> List[str]:
        return [call["prompt"] for call in self.calls if call["agent_id"] == agent_id]


@dataclass
class Stack:
    capability: Capability
    agents: InMemoryAgentRepository
    departments: InMemoryDepartmentRepository
    store: ExecutionStore
    runner: AgentRunner
    loop: SpecialistExecutionLoop
    coordinator: DepartmentCoordinator


def build_stack(
    departments: List[Department],
    agents: List[Agent],
    capability: Optional[Capability] = None,
    default_timeout: Optional[float] = None
) -> Stack:
    capability = capability or ScriptedCapability()
    agent_repo = InMemoryAgentRepository(agents)
    department_repo = InMemoryDepartmentRepository(departments)
    store = InMemoryExecutionStore()
    runner = AgentRunner(
        RegistryCapabilityInvoker(CapabilityRegistry([capability])),
        store,
        agent_repo,
        default_timeout=default_timeout,
    )
    loop = SpecialistExecutionLoop(runner, QualityAssessmentEngine())
    coordinator = DepartmentCoordinator(agent_repo, department_repo, runner, loop)
    return Stack(capability, agent_repo, department_repo, store, runner, loop, coordinator)


@pytest.fixture
def story_department():
    return Department(id="dept-story", slug="story", name="Story Department")


@pytest.fixture
def story_head():
    return Agent(
        id="story-head",
        name="Story Head",
        level=AgentLevel.DEPARTMENT_HEAD,
        department_id="dept-story",
        passing_threshold=60,
    )


@pytest.fixture
def story_specialists():
    return [
        Agent(id="plot-specialist", name="Plot Specialist", department_id="dept-story",
              specialization="plot", skills=["plot"], passing_threshold=60),
        Agent(id="dialogue-specialist", name="Dialogue Specialist", department_id="dept-story",
              specialization="dialogue", skills=["dialogue"], passing_threshold=60),
        Agent(id="theme-specialist", name="Theme Specialist", department_id="dept-story",
              specialization="theme", skills=["theme"], passing_threshold=60),
    ]


@pytest.fixture
def stack_factory():
    """Return build_stack so tests can wire their own capability."""
    return build_stack


@pytest.fixture
def scripted():
    """Return the ScriptedCapability class."""
    return ScriptedCapability
