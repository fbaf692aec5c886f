"""Built-in capabilities."""

import logging
import time
from typing import Any, Dict, Optional

from models.entities import Agent, TokenUsage
from models.results import CapabilityResult
from quality.grader import OutputGrader
from utils.errors import ExecutionError
from utils.llm import LLMClient, LLMError, estimate_cost

from .registry import DEFAULT_CAPABILITY, Capability


logger = logging.getLogger(__name__)


def build_agent_prompt(agent: Agent, prompt: str, context: Dict[str, Any]) -> str:
    """Prefix the request with the agent's role."""
    role = agent.description or f"You are {agent.name}"
    if agent.specialization:
        role += f", specializing in {agent.specialization}"
    sections = [role.rstrip(".") + "."]

    project = context.get("project_context")
    if project:
        sections.append(f"PROJECT CONTEXT:\n{project}")
    sections.append(prompt)
    return "\n\n".join(sections)


class LLMCompletionCapability(Capability):
    """Single LLM completion, optionally graded over the quality dimensions."""

    name = DEFAULT_CAPABILITY
    description = "Complete the request with the configured LLM provider"

    def __init__(self, llm_client: LLMClient, grader: Optional[OutputGrader] = None):
        self.llm_client = llm_client
        self.grader = grader

    async def invoke(self, agent: Agent, prompt: str, context: Dict[str, Any]) -> CapabilityResult:
        start_time = time.time()
        settings = agent.execution_settings

        try:
            response = await self.llm_client.call(
                prompt=build_agent_prompt(agent, prompt, context),
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                metadata={"agent_id": agent.id},
            )
        except LLMError as e:
            raise ExecutionError(str(e), code=type(e).__name__, agent_id=agent.id)

        usage = response.token_usage or {}
        token_usage = TokenUsage(
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )
        token_usage.estimated_cost = estimate_cost(token_usage.total_tokens, response.model or self.llm_client.model)

        dimensions = None
        if self.grader is not None and agent.requires_review:
            department = context.get("department_slug") or agent.department_id or ""
            try:
                assessment = await self.grader.grade(prompt, response.content, department)
                dimensions = assessment.dimensions
            except LLMError as e:
                logger.warning(
                    f"Grading failed for {agent.id}, output left unscored: {e}",
                    extra={"agent_id": agent.id}
                )

        return CapabilityResult(
            output=response.content,
            dimensions=dimensions,
            token_usage=token_usage,
            execution_time_ms=(time.time() - start_time) * 1000,
            metadata={"model": response.model},
        )
