"""
Tracked agent execution.

Wraps a single capability invocation with an execution record, a per-attempt
timeout and the agent's performance aggregate.
"""

import asyncio
import logging
import time
import traceback
from typing import Any, Dict, Optional

from audit.tracking import ExecutionStore
from models.entities import (
    Agent,
    AgentRef,
    Department,
    DepartmentRef,
    ErrorInfo,
    ExecutionRecord,
    ExecutionStatus,
    ReviewStatus,
    ToolCall,
    utcnow,
)
from models.results import CapabilityResult
from repositories.base import AgentRepository
from utils.errors import ExecutionError

from .registry import CapabilityInvoker


logger = logging.getLogger(__name__)


class AgentRunner:
    """
    Executes agents through a capability invoker with full tracking.

    Every call to ``execute``:
    - creates an execution record and moves it to running
    - applies the agent's timeout (or the runner default)
    - records the capability call and the final status
    - folds the outcome into the agent's performance aggregate once
    """

    def __init__(
        self,
        invoker: CapabilityInvoker,
        store: ExecutionStore,
        agents: AgentRepository,
        default_timeout: Optional[float] = None
    ):
        self.invoker = invoker
        self.store = store
        self.agents = agents
        self.default_timeout = default_timeout

    async def execute(
        self,
        agent: Agent,
        prompt: str,
        context: Optional[Dict[str, Any]] = None,
        department: Optional[Department] = None,
        retry_count: int = 0
    ) -> CapabilityResult:
        """
        Run one capability invocation for ``agent``.

        Returns:
            The capability result with ``execution_id`` and elapsed time set.

        Raises:
            ExecutionError: the invocation failed or timed out.
        """
        context = context or {}
        record = await self.store.create(ExecutionRecord(
            agent=AgentRef.from_agent(agent),
            department=DepartmentRef.from_department(department) if department else None,
            project_id=context.get("project_id"),
            conversation_id=context.get("conversation_id"),
            episode_id=context.get("episode_id"),
            prompt=prompt,
            retry_count=retry_count,
            tags=list(context.get("tags", [])),
        ))
        await self.store.update(record.id, status=ExecutionStatus.RUNNING, started_at=utcnow())

        capability = self.invoker.capability_for(agent)
        timeout = agent.execution_settings.timeout_seconds or self.default_timeout
        start_time = time.time()

        try:
            invocation = self.invoker.invoke(agent, prompt, context)
            if timeout:
                result = await asyncio.wait_for(invocation, timeout=timeout)
            else:
                result = await invocation

        except asyncio.TimeoutError:
            message = f"Execution timed out after {timeout}s"
            await self._fail(record.id, agent, capability, start_time, ExecutionStatus.TIMEOUT, message, "TIMEOUT")
            raise ExecutionError(message, code="TIMEOUT", agent_id=agent.id, execution_id=record.id)

        except asyncio.CancelledError:
            await self._fail(record.id, agent, capability, start_time, ExecutionStatus.CANCELLED, "Execution cancelled", "CANCELLED")
            raise

        except ExecutionError as e:
            await self._fail(record.id, agent, capability, start_time, ExecutionStatus.FAILED, e.message, e.code,
                             stack=traceback.format_exc())
            e.agent_id = e.agent_id or agent.id
            e.execution_id = record.id
            raise

        except Exception as e:
            await self._fail(record.id, agent, capability, start_time, ExecutionStatus.FAILED, str(e), type(e).__name__,
                             stack=traceback.format_exc())
            raise ExecutionError(str(e), code=type(e).__name__, agent_id=agent.id, execution_id=record.id) from e

        elapsed_ms = (time.time() - start_time) * 1000
        await self.store.append_tool_call(record.id, ToolCall(
            tool_name=capability,
            input={"prompt_length": len(prompt)},
            output=result.output if isinstance(result.output, (str, int, float, dict, list)) else str(result.output),
            execution_time_ms=elapsed_ms,
        ))
        await self.store.update(
            record.id,
            status=ExecutionStatus.COMPLETED,
            output=result.output,
            token_usage=result.token_usage,
            completed_at=utcnow(),
            execution_time_ms=elapsed_ms,
        )
        await self.agents.update_performance(agent.id, True, elapsed_ms)

        logger.info(
            f"Execution completed for {agent.name}",
            extra={"agent_id": agent.id, "execution_id": record.id, "execution_time_ms": elapsed_ms}
        )
        return result.model_copy(update={"execution_id": record.id, "execution_time_ms": elapsed_ms})

    async def assess(
        self,
        execution_id: str,
        quality_score: Optional[float] = None,
        quality_breakdown: Optional[Dict[str, float]] = None,
        review_status: Optional[ReviewStatus] = None,
        review_notes: Optional[str] = None
    ):
        """Attach a quality assessment and/or review outcome to a finished execution."""
        fields: Dict[str, Any] = {}
        if quality_score is not None:
            fields["quality_score"] = quality_score
        if quality_breakdown:
            fields["quality_breakdown"] = quality_breakdown
        if review_status is not None:
            fields["review_status"] = review_status
            fields["reviewed_at"] = utcnow()
        if review_notes is not None:
            fields["review_notes"] = review_notes
        if fields:
            await self.store.update(execution_id, **fields)

    async def _fail(
        self,
        execution_id: str,
        agent: Agent,
        capability: str,
        start_time: float,
        status: ExecutionStatus,
        message: str,
        code: Optional[str],
        stack: Optional[str] = None
    ):
        elapsed_ms = (time.time() - start_time) * 1000
        await self.store.append_tool_call(execution_id, ToolCall(
            tool_name=capability,
            execution_time_ms=elapsed_ms,
            success=False,
            error=message,
        ))
        await self.store.update(
            execution_id,
            status=status,
            error=ErrorInfo(message=message, code=code, stack=stack),
            completed_at=utcnow(),
            execution_time_ms=elapsed_ms,
        )
        await self.agents.update_performance(agent.id, False, elapsed_ms)

        logger.warning(
            f"Execution {status.value} for {agent.name}: {message}",
            extra={"agent_id": agent.id, "execution_id": execution_id, "error_code": code}
        )
