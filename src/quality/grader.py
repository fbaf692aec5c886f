"""LLM-backed grading of an output over the six quality dimensions."""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from agents.templates import TemplateManager, to_json_block
from utils.llm import LLMClient, LLMResponse, ResponseFormatError

from .scorer import QualityAssessmentEngine
from .weights import QualityDimension, clamp_score


logger = logging.getLogger(__name__)


class DimensionAssessment(BaseModel):
    """Structured grading response."""
    confidence: float = 0
    completeness: float = 0
    relevance: float = 0
    consistency: float = 0
    creativity: float = 0
    technical: float = 0
    feedback: str = ""


class QualityAssessment(BaseModel):
    dimensions: Dict[str, float] = Field(default_factory=dict)
    overall_score: float = 0.0
    feedback: str = ""


class OutputGrader:
    """Asks the model for dimension scores and folds them with the department weights."""

    def __init__(
        self,
        llm_client: LLMClient,
        engine: QualityAssessmentEngine,
        templates: Optional[TemplateManager] = None
    ):
        self.llm_client = llm_client
        self.engine = engine
        self.templates = templates or TemplateManager()

    async def grade(self, prompt: str, output: Any, department: str) -> QualityAssessment:
        grading_prompt = await self.templates.render_template("quality_grading", {
            "department": department,
            "prompt": prompt,
            "output": output if isinstance(output, str) else to_json_block(output),
        })

        result = await self.llm_client.call(
            prompt=grading_prompt,
            response_format=DimensionAssessment,
            temperature=0.0,
        )
        if isinstance(result, LLMResponse):
            raise ResponseFormatError("Grading response contained no JSON object")

        dimensions = {
            d.value: clamp_score(float(getattr(result, d.value)))
            for d in QualityDimension
        }
        overall = self.engine.score(dimensions, department)

        logger.debug(
            f"Graded {department} output at {overall:.1f}",
            extra={"department": department, "dimensions": dimensions}
        )
        return QualityAssessment(dimensions=dimensions, overall_score=overall, feedback=result.feedback)
