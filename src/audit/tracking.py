"""
Execution tracking store.

Keeps one ExecutionRecord per capability invocation with its status
lifecycle, tool calls and event log. Two backends are provided: an in-memory
store and a JSONL store that appends a snapshot line per mutation (the last
snapshot of a record wins when the file is read back).
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from models.entities import (
    ExecutionEvent,
    ExecutionRecord,
    ExecutionStatus,
    ToolCall,
)
from utils.errors import DependencyNotFoundError, ValidationError


logger = logging.getLogger(__name__)

# Fields that may still change once a record is terminal: the assessment of
# an execution happens after the invocation itself has finished.
ASSESSMENT_FIELDS = frozenset({
    "quality_score",
    "quality_breakdown",
    "review_status",
    "reviewed_at",
    "review_notes",
    "retry_count",
    "tags",
})

ALLOWED_TRANSITIONS = {
    ExecutionStatus.PENDING: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.RUNNING: {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.TIMEOUT,
        ExecutionStatus.CANCELLED,
    },
}


class ExecutionStore(ABC):
    """Abstract base class for execution record storage backends."""

    def __init__(self):
        self._lock = asyncio.Lock()
        # Persisted entries that could not be loaded
        self.skipped_records = 0

    @abstractmethod
    async def _read(self, execution_id: str) -> Optional[ExecutionRecord]:
        pass

    @abstractmethod
    async def _write(self, record: ExecutionRecord) -> None:
        pass

    @abstractmethod
    async def list_records(self) -> List[ExecutionRecord]:
        """All stored records in creation order."""
        pass

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        return await self._read(execution_id)

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        async with self._lock:
            if await self._read(record.id) is not None:
                raise ValidationError(f"Execution {record.id} already exists", details={"execution_id": record.id})
            await self._write(record)

        logger.debug(
            f"Created execution {record.id}",
            extra={"execution_id": record.id, "agent_id": record.agent.id, "status": record.status.value}
        )
        return record

    async def update(self, execution_id: str, **fields: Any) -> ExecutionRecord:
        """
        Apply field updates to a record.

        Raises:
            DependencyNotFoundError: unknown execution id
            ValidationError: illegal status transition, or a non-assessment
                field changed on a terminal record
        """
        async with self._lock:
            record = await self._require(execution_id)

            if record.status.is_terminal:
                locked = set(fields) - ASSESSMENT_FIELDS
                if locked:
                    raise ValidationError(
                        f"Execution {execution_id} is {record.status.value}; cannot update {sorted(locked)}",
                        details={"execution_id": execution_id}
                    )

            new_status = fields.get("status")
            if new_status is not None:
                new_status = ExecutionStatus(new_status)
                if new_status not in ALLOWED_TRANSITIONS.get(record.status, set()):
                    raise ValidationError(
                        f"Illegal status transition {record.status.value} -> {new_status.value}",
                        details={"execution_id": execution_id}
                    )
                fields["status"] = new_status

            try:
                updated = ExecutionRecord.model_validate({**record.model_dump(), **fields})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid update for execution {execution_id}: {e}")

            await self._write(updated)
            return updated

    async def append_event(self, execution_id: str, event: ExecutionEvent) -> ExecutionRecord:
        async with self._lock:
            record = await self._require(execution_id)
            updated = record.model_copy(update={"events": [*record.events, event]})
            await self._write(updated)
            return updated

    async def append_tool_call(self, execution_id: str, call: ToolCall) -> ExecutionRecord:
        async with self._lock:
            record = await self._require(execution_id)
            if record.status.is_terminal:
                raise ValidationError(
                    f"Execution {execution_id} is {record.status.value}; cannot append tool calls",
                    details={"execution_id": execution_id}
                )
            updated = record.model_copy(update={"tool_calls": [*record.tool_calls, call]})
            await self._write(updated)
            return updated

    async def _require(self, execution_id: str) -> ExecutionRecord:
        record = await self._read(execution_id)
        if record is None:
            raise DependencyNotFoundError(
                f"Execution {execution_id} not found", details={"execution_id": execution_id}
            )
        return record


class InMemoryExecutionStore(ExecutionStore):

    def __init__(self):
        super().__init__()
        self._records: Dict[str, ExecutionRecord] = {}

    async def _read(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    async def _write(self, record: ExecutionRecord) -> None:
        self._records[record.id] = record

    async def list_records(self) -> List[ExecutionRecord]:
        return list(self._records.values())


class JSONLExecutionStore(ExecutionStore):
    """JSONL-backed store; every mutation appends a full snapshot line."""

    def __init__(self, path: Union[str, Path] = "runs/executions.jsonl"):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._records: Dict[str, ExecutionRecord] = self._load()

    def _load(self) -> Dict[str, ExecutionRecord]:
        records: Dict[str, ExecutionRecord] = {}
        if not self.path.exists():
            return records

        with open(self.path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    record = ExecutionRecord.model_validate(json.loads(line))
                except (json.JSONDecodeError, PydanticValidationError) as e:
                    logger.warning(
                        f"Skipping malformed line {line_number} in {self.path}: {e}",
                        extra={"path": str(self.path), "line": line_number}
                    )
                    self.skipped_records += 1
                    continue
                records[record.id] = record

        logger.info(f"Loaded {len(records)} executions from {self.path}")
        return records

    async def _read(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    async def _write(self, record: ExecutionRecord) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
        self._records[record.id] = record

    async def list_records(self) -> List[ExecutionRecord]:
        return list(self._records.values())
