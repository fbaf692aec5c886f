"""Routing: decide which departments handle a request and with what instructions."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from agents.templates import TemplateManager
from models.results import RouteInstruction
from repositories.base import DepartmentRepository
from utils.errors import ExecutionError
from utils.llm import LLMClient, LLMError, LLMResponse


logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENT_KEYWORDS: Dict[str, List[str]] = {
    "story": ["story", "plot", "narrative", "scene", "episode", "script", "dialogue"],
    "character": ["character", "protagonist", "villain", "personality", "backstory", "hero"],
    "visual": ["visual", "image", "art", "color", "style", "design", "illustration", "concept"],
    "video": ["video", "animation", "shot", "camera", "footage", "storyboard"],
    "audio": ["audio", "music", "sound", "voice", "soundtrack"],
    "production": ["production", "schedule", "budget", "pipeline", "delivery", "timeline"],
}

# Relevance assigned when no keyword matched and the request is broadcast
BROADCAST_RELEVANCE = 0.3


class RoutingCapability(ABC):

    @abstractmethod
    async def route(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> List[RouteInstruction]:
        pass


class KeywordRouter(RoutingCapability):
    """
    Routes by keyword hits per department slug.

    Relevance grows with the number of distinct keyword hits. When nothing
    matches, every active department receives the request at
    BROADCAST_RELEVANCE.
    """

    def __init__(
        self,
        departments: DepartmentRepository,
        keywords: Optional[Mapping[str, Sequence[str]]] = None
    ):
        self.departments = departments
        self.keywords = {k.lower(): list(v) for k, v in (keywords or DEFAULT_DEPARTMENT_KEYWORDS).items()}

    async def route(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> List[RouteInstruction]:
        active = await self.departments.list_active()
        lowered = prompt.lower()

        routes = []
        for department in active:
            words = self.keywords.get(department.slug, [])
            hits = sum(1 for word in words if re.search(rf"\b{re.escape(word)}", lowered))
            if hits:
                routes.append(RouteInstruction(
                    department_id=department.id,
                    instructions=prompt,
                    relevance=min(1.0, 0.4 + 0.2 * hits),
                ))

        if not routes:
            routes = [
                RouteInstruction(department_id=d.id, instructions=prompt, relevance=BROADCAST_RELEVANCE)
                for d in active
            ]

        logger.info(
            f"Routed request to {len(routes)} department(s)",
            extra={"departments": [r.department_id for r in routes]}
        )
        return routes


class RoutingPlan(BaseModel):
    routes: List[RouteInstruction] = Field(default_factory=list)


class LLMRouter(RoutingCapability):
    """Asks the model for a routing plan over the active departments."""

    def __init__(
        self,
        llm_client: LLMClient,
        departments: DepartmentRepository,
        templates: Optional[TemplateManager] = None
    ):
        self.llm_client = llm_client
        self.departments = departments
        self.templates = templates or TemplateManager()

    async def route(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> List[RouteInstruction]:
        active = await self.departments.list_active()
        known = {d.id for d in active} | {d.slug for d in active}
        by_slug = {d.slug: d.id for d in active}

        routing_prompt = await self.templates.render_template("department_routing", {
            "departments": "\n".join(f"- {d.id} ({d.slug}): {d.description or d.name}" for d in active),
            "prompt": prompt,
            "context": json.dumps(context or {}, default=str),
        })

        try:
            plan = await self.llm_client.call(prompt=routing_prompt, response_format=RoutingPlan, temperature=0.0)
        except LLMError as e:
            raise ExecutionError(f"Routing failed: {e}", code="ROUTING_FAILED")
        if isinstance(plan, LLMResponse):
            raise ExecutionError("Routing response contained no plan", code="ROUTING_FAILED")

        routes = []
        for route in plan.routes:
            if route.department_id not in known:
                logger.warning(f"Routing plan named unknown department '{route.department_id}', dropping it")
                continue
            department_id = by_slug.get(route.department_id, route.department_id)
            routes.append(route.model_copy(update={"department_id": department_id}))
        return routes
