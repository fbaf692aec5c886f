"""
Department coordinator.

A department head sizes the request, fans it out to specialists, reviews their
outputs against the department threshold and synthesizes the approved work
into the department result.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from models.entities import Agent, Department, ReviewStatus, SpecialistResult
from models.results import DepartmentResult, DepartmentResultMetadata, RequestAnalysis
from quality.thresholds import resolve_threshold, review_status_for
from repositories.base import AgentFilter, AgentRepository, DepartmentRepository
from utils.errors import DependencyNotFoundError, ValidationError

from .complexity import ComplexityAnalyzer, KeywordComplexityAnalyzer
from .runner import AgentRunner
from .specialist import SpecialistExecutionLoop, format_score
from .templates import TemplateManager, to_json_block


logger = logging.getLogger(__name__)

HEAD_ONLY_QUALITY = 85


def department_quality(results: List[SpecialistResult]) -> int:
    """
    0-100 department score.

    Head-only runs score HEAD_ONLY_QUALITY. Otherwise 60% approval rate and
    40% mean specialist score, both on a 0-100 scale.
    """
    if not results:
        return HEAD_ONLY_QUALITY
    approval_rate = sum(1 for r in results if r.review_status == ReviewStatus.APPROVED) / len(results) * 100
    mean_score = sum(r.quality_score for r in results) / len(results)
    return round(approval_rate * 0.6 + mean_score * 0.4)


class DepartmentCoordinator:
    """Runs a request through one department's head and specialists."""

    def __init__(
        self,
        agents: AgentRepository,
        departments: DepartmentRepository,
        runner: AgentRunner,
        loop: SpecialistExecutionLoop,
        analyzer: Optional[ComplexityAnalyzer] = None,
        templates: Optional[TemplateManager] = None,
        max_concurrent_specialists: int = 5
    ):
        self.agents = agents
        self.departments = departments
        self.runner = runner
        self.loop = loop
        self.analyzer = analyzer or KeywordComplexityAnalyzer()
        self.templates = templates or TemplateManager()
        self.max_concurrent_specialists = max_concurrent_specialists

    async def process(
        self,
        department_id: str,
        prompt: str,
        context: Optional[Dict[str, Any]] = None,
        requires_specialists: bool = True
    ) -> DepartmentResult:
        """
        Process a request within a department.

        Args:
            department_id: department id or slug
            prompt: instructions for the department
            context: request-scoped context (project, conversation, tags)
            requires_specialists: False forces a head-only run

        Raises:
            ValidationError: empty prompt
            DependencyNotFoundError: unknown department or no active head
            ExecutionError: the department head's invocation failed
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Department prompt must not be empty", details={"department_id": department_id})

        start_time = time.time()

        department = await self.departments.resolve(department_id)
        if department is None or not department.is_active:
            raise DependencyNotFoundError(
                f"Department {department_id} not found", details={"department_id": department_id}
            )
        head = await self._find_head(department)

        context = {**(context or {}), "department_id": department.id, "department_slug": department.slug}

        analysis_start = time.time()
        analysis = self.analyzer.analyze(prompt)
        analysis_time_ms = (time.time() - analysis_start) * 1000

        logger.info(
            f"{department.name}: {analysis.complexity.value} request, "
            f"up to {analysis.estimated_specialists} specialist(s)",
            extra={"department_id": department.id, "skills": analysis.required_skills}
        )

        results: List[SpecialistResult] = []
        if requires_specialists and analysis.requires_specialists:
            specialists = await self._select_specialists(department, analysis)
            if specialists:
                results = await self._run_specialists(specialists, prompt, context, department)
                results = await self._review(head, department, results)

        synthesis_prompt = await self._synthesis_prompt(prompt, results) if results else prompt
        head_result = await self.runner.execute(head, synthesis_prompt, context, department)

        quality = department_quality(results)
        await self.runner.assess(head_result.execution_id, quality_score=quality)

        approved = sum(1 for r in results if r.review_status == ReviewStatus.APPROVED)
        revision = sum(1 for r in results if r.review_status == ReviewStatus.REVISION_NEEDED)

        return DepartmentResult(
            department_id=department.id,
            department_slug=department.slug,
            department_name=department.name,
            output=head_result.output,
            quality_score=quality,
            analysis=analysis,
            specialist_results=results,
            head_execution_id=head_result.execution_id,
            metadata=DepartmentResultMetadata(
                analysis_time_ms=analysis_time_ms,
                specialists_used=len(results),
                successful_specialists=approved,
                failed_specialists=len(results) - approved - revision,
                revision_needed_specialists=revision,
                total_time_ms=(time.time() - start_time) * 1000,
            ),
        )

    async def _find_head(self, department: Department) -> Agent:
        heads = await self.agents.find_active(
            AgentFilter(department_id=department.id, is_department_head=True), limit=1
        )
        if not heads:
            raise DependencyNotFoundError(
                f"No active department head for {department.name}", details={"department_id": department.id}
            )
        return heads[0]

    async def _select_specialists(self, department: Department, analysis: RequestAnalysis) -> List[Agent]:
        """Active non-head agents, best success rate first, skill-filtered when possible."""
        base_filter = AgentFilter(department_id=department.id, is_department_head=False)
        sort_by = "-performance.success_rate"

        specialists: List[Agent] = []
        if analysis.required_skills:
            specialists = await self.agents.find_active(
                AgentFilter(department_id=department.id, is_department_head=False, skills=analysis.required_skills),
                sort_by=sort_by,
                limit=analysis.estimated_specialists,
            )
        if not specialists:
            specialists = await self.agents.find_active(base_filter, sort_by=sort_by, limit=analysis.estimated_specialists)
        return specialists

    async def _run_specialists(
        self,
        specialists: List[Agent],
        prompt: str,
        context: Dict[str, Any],
        department: Department
    ) -> List[SpecialistResult]:
        limit = self.max_concurrent_specialists
        if not department.coordination_settings.allow_parallel_execution:
            limit = 1
        semaphore = asyncio.Semaphore(limit)

        async def bounded(agent: Agent) -> SpecialistResult:
            async with semaphore:
                return await self.loop.run(agent, prompt, context, department)

        outcomes = await asyncio.gather(*(bounded(a) for a in specialists), return_exceptions=True)

        results: List[SpecialistResult] = []
        for agent, outcome in zip(specialists, outcomes):
            if isinstance(outcome, SpecialistResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(
                f"Specialist {agent.name} crashed: {outcome}",
                extra={"agent_id": agent.id, "error_type": type(outcome).__name__}
            )
            results.append(SpecialistResult(
                agent_id=agent.id,
                agent_name=agent.name,
                specialization=agent.specialization,
                review_status=ReviewStatus.REJECTED,
                review_notes=f"Specialist execution error: {outcome}",
            ))
        return results

    async def _review(self, head: Agent, department: Department, results: List[SpecialistResult]) -> List[SpecialistResult]:
        threshold = resolve_threshold(head.passing_threshold, department.coordination_settings.min_quality_threshold)

        reviewed = []
        for result in results:
            status = review_status_for(result.quality_score, threshold)
            if threshold == 0:
                notes = "Auto-approved (no threshold set)"
            elif status == ReviewStatus.REJECTED:
                notes = f"Quality score {format_score(result.quality_score)} below threshold {format_score(threshold)}"
            elif status == ReviewStatus.REVISION_NEEDED:
                notes = f"Quality score {format_score(result.quality_score)} is acceptable but could be improved"
            else:
                notes = "Approved by department head"

            if result.execution_id:
                await self.runner.assess(result.execution_id, review_status=status, review_notes=notes)
            reviewed.append(result.model_copy(update={"review_status": status, "review_notes": notes}))

        return reviewed

    async def _synthesis_prompt(self, prompt: str, results: List[SpecialistResult]) -> str:
        approved = [r for r in results if r.review_status == ReviewStatus.APPROVED]
        sections = []
        for index, result in enumerate(approved, start=1):
            sections.append(
                f"## Specialist {index}: {result.agent_name} ({result.specialization or 'general'})\n"
                f"Quality Score: {format_score(result.quality_score)}\n"
                f"Output:\n{to_json_block(result.output)}"
            )
        if not sections:
            sections.append("No specialist output was approved. Produce the result directly from the request.")

        return await self.templates.render_template("department_synthesis", {
            "original_prompt": prompt,
            "specialist_sections": "\n\n".join(sections),
        })
