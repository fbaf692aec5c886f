"""
Explicit service wiring.

Builds the orchestration stack (repositories, store, capability registry,
runner, specialist loop, department coordinator, router, orchestrator) and the
audit stack from Settings. Nothing here is global; callers own the returned
objects.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from agents.capabilities import LLMCompletionCapability
from agents.complexity import KeywordComplexityAnalyzer
from agents.department import DepartmentCoordinator
from agents.registry import CapabilityRegistry, RegistryCapabilityInvoker
from agents.runner import AgentRunner
from agents.specialist import SpecialistExecutionLoop
from agents.templates import FileTemplateLoader, TemplateManager
from audit.analytics import AuditAnalyticsEngine
from audit.query import AuditQuery
from audit.tracking import ExecutionStore, InMemoryExecutionStore, JSONLExecutionStore
from orchestration import (
    KeywordRouter,
    LLMRouter,
    MasterOrchestrator,
    NullConsistencyChecker,
    OrchestrationConfig,
    RoutingCapability,
)
from quality.grader import OutputGrader
from quality.scorer import QualityAssessmentEngine
from quality.weights import load_weight_profiles
from repositories.base import AgentRepository, DepartmentRepository
from repositories.loader import Registry
from utils.llm import LLMClient, create_llm_client

from .config import AuditConfig, Settings


logger = logging.getLogger(__name__)


@dataclass
class OrchestrationServices:
    agents: AgentRepository
    departments: DepartmentRepository
    store: ExecutionStore
    capabilities: CapabilityRegistry
    runner: AgentRunner
    engine: QualityAssessmentEngine
    loop: SpecialistExecutionLoop
    coordinator: DepartmentCoordinator
    router: RoutingCapability
    orchestrator: MasterOrchestrator


@dataclass
class AuditServices:
    store: ExecutionStore
    query: AuditQuery
    analytics: AuditAnalyticsEngine


def build_llm_client(settings: Settings) -> LLMClient:
    llm = settings.llm
    return create_llm_client(
        provider_type=llm.llm_provider,
        api_key=llm.api_key,
        model=llm.llm_model,
        max_retries=llm.max_retries,
        retry_delay=llm.retry_delay,
        timeout=llm.request_timeout,
    )


def build_store(audit: AuditConfig, persistent: bool = True) -> ExecutionStore:
    if persistent:
        return JSONLExecutionStore(audit.store_path)
    return InMemoryExecutionStore()


def build_services(
    settings: Settings,
    registry: Registry,
    llm_client: Optional[LLMClient] = None,
    store: Optional[ExecutionStore] = None,
    capabilities: Optional[CapabilityRegistry] = None
) -> OrchestrationServices:
    """
    Wire the orchestration stack for a loaded agent registry.

    When ``capabilities`` is not given, a registry holding the built-in
    ``llm-completion`` capability is built around ``llm_client`` (created from
    settings if missing). Every agent's capabilities are validated before
    anything runs.
    """
    config = settings.orchestration

    profiles = load_weight_profiles(config.weights_file) if config.weights_file else None
    engine = QualityAssessmentEngine(profiles)

    templates = TemplateManager(FileTemplateLoader(config.templates_dir) if config.templates_dir else None)

    if capabilities is None:
        llm_client = llm_client or build_llm_client(settings)
        grader = OutputGrader(llm_client, engine, templates)
        capabilities = CapabilityRegistry([LLMCompletionCapability(llm_client, grader)])
    capabilities.validate_agents(registry.agents)

    agents = registry.agent_repository()
    departments = registry.department_repository()
    store = store or build_store(settings.audit)

    runner = AgentRunner(
        RegistryCapabilityInvoker(capabilities),
        store,
        agents,
        default_timeout=config.attempt_timeout_seconds,
    )
    loop = SpecialistExecutionLoop(
        runner,
        engine,
        templates,
        default_threshold=config.default_passing_threshold,
        default_max_retries=config.default_max_retries,
    )
    coordinator = DepartmentCoordinator(
        agents,
        departments,
        runner,
        loop,
        analyzer=KeywordComplexityAnalyzer(),
        templates=templates,
        max_concurrent_specialists=config.max_concurrent_specialists,
    )

    if config.router == "llm":
        router: RoutingCapability = LLMRouter(llm_client or build_llm_client(settings), departments, templates)
    else:
        router = KeywordRouter(departments)

    orchestrator = MasterOrchestrator(
        router,
        coordinator,
        agents,
        store,
        consistency_checker=NullConsistencyChecker(),
        config=OrchestrationConfig(max_concurrent_departments=config.max_concurrent_departments),
    )

    logger.info(
        f"Services ready: {len(registry.departments)} departments, {len(registry.agents)} agents",
        extra={"router": config.router, "capabilities": capabilities.names()}
    )

    return OrchestrationServices(
        agents=agents,
        departments=departments,
        store=store,
        capabilities=capabilities,
        runner=runner,
        engine=engine,
        loop=loop,
        coordinator=coordinator,
        router=router,
        orchestrator=orchestrator,
    )


def build_audit_services(settings: Settings, store: Optional[ExecutionStore] = None) -> AuditServices:
    store = store or build_store(settings.audit)
    query = AuditQuery(store)
    return AuditServices(
        store=store,
        query=query,
        analytics=AuditAnalyticsEngine(query, max_records=settings.audit.max_records),
    )
