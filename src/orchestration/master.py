"""
Master orchestrator for routing a request across departments.

Routes the request, runs one department coordinator per routed department
concurrently, converts department failures into failed reports and folds the
department outcomes into overall quality, completeness, consistency and an
ingest / modify / discard recommendation.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, validator

from agents.department import DepartmentCoordinator
from audit.tracking import ExecutionStore
from models.entities import (
    Agent,
    AgentLevel,
    AgentRef,
    ErrorInfo,
    ExecutionEvent,
    ExecutionRecord,
    ExecutionStatus,
    utcnow,
)
from models.results import (
    DepartmentReport,
    DepartmentStatus,
    OrchestratorResult,
    Recommendation,
    RouteInstruction,
)
from quality.gates import get_quality_recommendation, run_all_quality_gates
from repositories.base import AgentFilter, AgentRepository
from utils.errors import ValidationError

from .consistency import ConsistencyChecker, NullConsistencyChecker
from .routing import RoutingCapability


logger = logging.getLogger(__name__)


class OrchestrationConfig(BaseModel):
    """Configuration for master orchestration."""

    max_concurrent_departments: int = 6

    # Departments at or above this relevance count towards completeness
    relevance_threshold: float = 0.3

    ingest_threshold: float = 0.75
    modify_threshold: float = 0.5

    run_quality_gates: bool = True
    track_progress: bool = True

    @validator('max_concurrent_departments')
    def validate_concurrency_limits(cls, v):
        if v < 1 or v > 50:
            raise ValueError("Concurrency limits must be between 1 and 50")
        return v

    @validator('relevance_threshold', 'ingest_threshold', 'modify_threshold')
    def validate_fraction(cls, v):
        if v < 0 or v > 1:
            raise ValueError("Thresholds must be between 0 and 1")
        return v


def overall_quality(reports: List[DepartmentReport]) -> float:
    if not reports:
        return 0.0
    return sum(r.quality for r in reports) / len(reports)


def completeness(reports: List[DepartmentReport], relevance_threshold: float = 0.3) -> float:
    relevant = [r for r in reports if r.relevance >= relevance_threshold]
    if not relevant:
        return 0.0
    complete = sum(1 for r in reports if r.status == DepartmentStatus.COMPLETE)
    return min(1.0, complete / len(relevant))


def recommend(quality: float, ingest_threshold: float = 0.75, modify_threshold: float = 0.5) -> Recommendation:
    if quality >= ingest_threshold:
        return Recommendation.INGEST
    if quality >= modify_threshold:
        return Recommendation.MODIFY
    return Recommendation.DISCARD


class MasterOrchestrator:
    """
    Top-level coordinator over departments.

    When a master agent is registered and progress tracking is enabled, the
    whole request gets its own execution record whose event log shows each
    department starting and finishing while its siblings still run.
    """

    def __init__(
        self,
        router: RoutingCapability,
        coordinator: DepartmentCoordinator,
        agents: AgentRepository,
        store: ExecutionStore,
        consistency_checker: Optional[ConsistencyChecker] = None,
        config: Optional[OrchestrationConfig] = None
    ):
        self.router = router
        self.coordinator = coordinator
        self.agents = agents
        self.store = store
        self.consistency_checker = consistency_checker or NullConsistencyChecker()
        self.config = config or OrchestrationConfig()

    async def orchestrate(
        self,
        prompt: str,
        project_context: Optional[Dict[str, Any]] = None
    ) -> OrchestratorResult:
        """
        Route a request and run every routed department.

        Args:
            prompt: the user request
            project_context: project metadata; ``project_id``,
                ``conversation_id``, ``episode_id`` and ``tags`` are copied
                onto execution records

        Raises:
            ValidationError: empty prompt
            ExecutionError: routing failed
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty")

        project_context = project_context or {}
        context = {
            key: project_context[key]
            for key in ("project_id", "conversation_id", "episode_id", "tags")
            if key in project_context
        }
        context["project_context"] = json.dumps(project_context, default=str)

        start_time = time.time()
        master = await self._find_master() if self.config.track_progress else None
        progress_id = await self._start_progress(master, prompt, context) if master else None

        try:
            routes = await self.router.route(prompt, project_context)
            await self._event(progress_id, "routed", {
                "departments": [r.department_id for r in routes],
            })

            reports = await self._run_departments(routes, prompt, context, progress_id)

            quality = overall_quality(reports)
            result = OrchestratorResult(
                prompt=prompt,
                departments=reports,
                overall_quality=quality,
                completeness=completeness(reports, self.config.relevance_threshold),
                consistency=await self.consistency_checker.check(prompt, reports),
                recommendation=recommend(quality, self.config.ingest_threshold, self.config.modify_threshold),
                execution_id=progress_id,
            )

            if self.config.run_quality_gates:
                gates = run_all_quality_gates(result)
                advice = get_quality_recommendation(gates["gates"])
                result.quality_gates = {
                    "passed": gates["passed"],
                    "overall_score": gates["overall_score"],
                    "gates": [g.to_dict() for g in gates["gates"]],
                    "action": advice["action"].value,
                    "reason": advice["reason"],
                }

            result.execution_time_ms = (time.time() - start_time) * 1000

        except Exception as e:
            logger.error(f"Orchestration failed: {e}", exc_info=True)
            if progress_id:
                await self._finish_progress(master, progress_id, start_time, error=e)
            raise

        if progress_id:
            await self._finish_progress(master, progress_id, start_time, result=result)

        logger.info(
            f"Orchestration completed: {len(reports)} department(s), "
            f"quality {result.overall_quality:.2f}, recommendation {result.recommendation.value}",
            extra={
                "execution_time_ms": result.execution_time_ms,
                "failed_departments": [r.department_id for r in result.failed_departments],
            }
        )
        return result

    async def _run_departments(
        self,
        routes: List[RouteInstruction],
        prompt: str,
        context: Dict[str, Any],
        progress_id: Optional[str]
    ) -> List[DepartmentReport]:
        semaphore = asyncio.Semaphore(self.config.max_concurrent_departments)

        async def run_with_semaphore(route: RouteInstruction) -> DepartmentReport:
            async with semaphore:
                return await self._run_department(route, context, progress_id)

        # _run_department converts every failure, so gather never sees one
        return list(await asyncio.gather(*(run_with_semaphore(r) for r in routes)))

    async def _run_department(
        self,
        route: RouteInstruction,
        context: Dict[str, Any],
        progress_id: Optional[str]
    ) -> DepartmentReport:
        await self._event(progress_id, "department_started", {"department_id": route.department_id})

        try:
            department_result = await self.coordinator.process(route.department_id, route.instructions, context)
            report = DepartmentReport(
                department_id=department_result.department_id,
                status=DepartmentStatus.COMPLETE,
                relevance=route.relevance,
                quality=department_result.quality_score / 100,
                result=department_result,
            )

        except Exception as e:
            logger.error(
                f"Department {route.department_id} failed: {e}",
                exc_info=True,
                extra={"department_id": route.department_id, "error_type": type(e).__name__}
            )
            await self._event(progress_id, "department_failed", {
                "department_id": route.department_id,
                "error": str(e),
            })
            return DepartmentReport(
                department_id=route.department_id,
                status=DepartmentStatus.FAILED,
                relevance=route.relevance,
                issues=[str(e)],
            )

        await self._event(progress_id, "department_completed", {
            "department_id": report.department_id,
            "quality": report.quality,
            "output": department_result.output,
        })
        return report

    async def _find_master(self) -> Optional[Agent]:
        masters = await self.agents.find_active(AgentFilter(level=AgentLevel.MASTER), limit=1)
        return masters[0] if masters else None

    async def _start_progress(self, master: Agent, prompt: str, context: Dict[str, Any]) -> str:
        record = await self.store.create(ExecutionRecord(
            agent=AgentRef.from_agent(master),
            project_id=context.get("project_id"),
            conversation_id=context.get("conversation_id"),
            episode_id=context.get("episode_id"),
            prompt=prompt,
            tags=list(context.get("tags", [])),
        ))
        await self.store.update(record.id, status=ExecutionStatus.RUNNING, started_at=utcnow())
        return record.id

    async def _event(self, progress_id: Optional[str], event_type: str, data: Dict[str, Any]):
        if progress_id:
            await self.store.append_event(progress_id, ExecutionEvent(type=event_type, data=data))

    async def _finish_progress(
        self,
        master: Agent,
        progress_id: str,
        start_time: float,
        result: Optional[OrchestratorResult] = None,
        error: Optional[Exception] = None
    ):
        elapsed_ms = (time.time() - start_time) * 1000

        if error is not None:
            await self.store.update(
                progress_id,
                status=ExecutionStatus.FAILED,
                error=ErrorInfo(message=str(error), code=getattr(error, "code", None) or type(error).__name__),
                completed_at=utcnow(),
                execution_time_ms=elapsed_ms,
            )
        else:
            await self.store.update(
                progress_id,
                status=ExecutionStatus.COMPLETED,
                output={
                    "recommendation": result.recommendation.value,
                    "overall_quality": result.overall_quality,
                    "completeness": result.completeness,
                    "departments": [
                        {"department_id": r.department_id, "status": r.status.value, "quality": r.quality}
                        for r in result.departments
                    ],
                },
                quality_score=round(result.overall_quality * 100, 2),
                completed_at=utcnow(),
                execution_time_ms=elapsed_ms,
            )
        await self.agents.update_performance(master.id, error is None, elapsed_ms)
