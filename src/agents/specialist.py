"""
Specialist execution loop.

Runs one specialist against its instructions until the output passes the
agent's threshold or the retry budget is spent. Each retry carries the
previous output and every piece of feedback collected so far.

States: ATTEMPTING(n) for n in 0..max_retries, then APPROVED or REJECTED.
"""

import logging
import math
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from models.entities import Agent, Department, ReviewStatus, SpecialistResult
from models.results import CapabilityResult
from quality.scorer import QualityAssessmentEngine
from quality.thresholds import DEFAULT_PASSING_THRESHOLD
from quality.weights import clamp_score, validate_score
from utils.errors import ExecutionError

from .runner import AgentRunner
from .templates import TemplateManager, to_json_block


logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


class LoopState(Enum):
    ATTEMPTING = "attempting"
    APPROVED = "approved"
    REJECTED = "rejected"


def format_score(value: float) -> str:
    return f"{value:.0f}" if float(value).is_integer() else f"{value:.1f}"


class SpecialistExecutionLoop:
    """Retry-with-feedback execution for a single specialist."""

    def __init__(
        self,
        runner: AgentRunner,
        engine: QualityAssessmentEngine,
        templates: Optional[TemplateManager] = None,
        default_threshold: float = DEFAULT_PASSING_THRESHOLD,
        default_max_retries: int = DEFAULT_MAX_RETRIES
    ):
        self.runner = runner
        self.engine = engine
        self.templates = templates or TemplateManager()
        self.default_threshold = default_threshold
        self.default_max_retries = default_max_retries

    def max_retries_for(self, agent: Agent, department: Optional[Department] = None) -> int:
        if agent.execution_settings.max_retries is not None:
            return agent.execution_settings.max_retries
        if department is not None and department.coordination_settings.max_retries is not None:
            return department.coordination_settings.max_retries
        return self.default_max_retries

    def threshold_for(self, agent: Agent) -> float:
        return agent.passing_threshold if agent.passing_threshold is not None else self.default_threshold

    def score(self, result: CapabilityResult, department_slug: Optional[str]) -> float:
        """Capability-supplied score, else the weighted dimensions, else 0."""
        if result.quality_score is not None:
            if validate_score(result.quality_score):
                return result.quality_score
            logger.warning(
                f"Capability returned out-of-range quality score {result.quality_score!r}",
                extra={"execution_id": result.execution_id}
            )
            return 0.0 if math.isnan(result.quality_score) else clamp_score(result.quality_score)
        if result.dimensions:
            return self.engine.score(result.dimensions, department_slug)
        return 0.0

    async def run(
        self,
        agent: Agent,
        prompt: str,
        context: Optional[Dict[str, Any]] = None,
        department: Optional[Department] = None
    ) -> SpecialistResult:
        """
        Execute the specialist until approved or out of retries.

        Never raises for invocation or quality failures; those end in a
        REJECTED result carrying the last output and score.
        """
        context = context or {}
        max_retries = self.max_retries_for(agent, department)
        threshold = self.threshold_for(agent)
        department_slug = department.slug if department else context.get("department_slug")

        feedback: List[str] = []
        last_output: Any = None
        last_score = 0.0
        last_error: Optional[ExecutionError] = None
        last_execution_id: Optional[str] = None
        state = LoopState.ATTEMPTING
        attempts = 0
        start_time = time.time()

        while state == LoopState.ATTEMPTING:
            attempt = attempts
            attempts += 1
            attempt_prompt = prompt if attempt == 0 else await self._retry_prompt(prompt, last_output, feedback)

            try:
                result = await self.runner.execute(agent, attempt_prompt, context, department, retry_count=attempt)
            except ExecutionError as e:
                last_error = e
                last_execution_id = e.execution_id or last_execution_id
                feedback.append(f"Execution failed: {e.message}. Please retry.")
                logger.warning(
                    f"Attempt {attempt + 1} failed for {agent.name}: {e.message}",
                    extra={"agent_id": agent.id, "attempt": attempt + 1}
                )
                if attempt >= max_retries:
                    state = LoopState.REJECTED
                continue

            last_error = None
            last_output = result.output
            last_execution_id = result.execution_id
            last_score = self.score(result, department_slug)
            passed = threshold == 0 or last_score >= threshold

            await self.runner.assess(
                result.execution_id,
                quality_score=last_score,
                quality_breakdown=self.engine.breakdown(result.dimensions, department_slug) if result.dimensions else None,
                review_status=ReviewStatus.APPROVED if passed else ReviewStatus.REVISION_NEEDED,
            )

            if passed:
                state = LoopState.APPROVED
            else:
                feedback.append(
                    f"Quality score {format_score(last_score)} below threshold {format_score(threshold)}. "
                    f"Improve quality, relevance, and consistency."
                )
                if attempt >= max_retries:
                    state = LoopState.REJECTED

        elapsed_ms = (time.time() - start_time) * 1000

        if state == LoopState.APPROVED:
            notes = "Approved on first attempt" if attempts == 1 else f"Approved after {attempts - 1} retries"
            review_status = ReviewStatus.APPROVED
        else:
            reason = last_error.message if last_error else "Quality threshold not met"
            notes = f"Failed after {max_retries} retries. {reason}"
            review_status = ReviewStatus.REJECTED
            if last_error is None and last_execution_id:
                await self.runner.assess(last_execution_id, review_status=ReviewStatus.REJECTED, review_notes=notes)

        logger.info(
            f"Specialist {agent.name} {state.value} after {attempts} attempt(s)",
            extra={"agent_id": agent.id, "attempts": attempts, "quality_score": last_score, "threshold": threshold}
        )

        return SpecialistResult(
            agent_id=agent.id,
            agent_name=agent.name,
            specialization=agent.specialization,
            output=last_output,
            quality_score=last_score,
            execution_time_ms=elapsed_ms,
            review_status=review_status,
            review_notes=notes,
            attempts=attempts,
            threshold=threshold,
            execution_id=last_execution_id,
        )

    async def _retry_prompt(self, prompt: str, last_output: Any, feedback: List[str]) -> str:
        return await self.templates.render_template("specialist_retry", {
            "original_prompt": prompt,
            "previous_output": to_json_block(last_output if last_output is not None else "No output"),
            "feedback_history": "\n".join(f"Attempt {i}: {line}" for i, line in enumerate(feedback, start=1)),
        })
