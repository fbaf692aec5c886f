"""Tests for routing capabilities and consistency checkers."""

import pytest
from unittest.mock import AsyncMock

from models.entities import Department
from models.results import DepartmentReport, DepartmentStatus, RouteInstruction
from orchestration.consistency import NullConsistencyChecker, ScoreDispersionConsistencyChecker
from orchestration.routing import BROADCAST_RELEVANCE, KeywordRouter, LLMRouter, RoutingPlan
from repositories.memory import InMemoryDepartmentRepository
from utils.errors import ExecutionError
from utils.llm import LLMClient, LLMResponse, RateLimitError


@pytest.fixture
def departments():
    return InMemoryDepartmentRepository([
        Department(id="dept-story", slug="story", name="Story"),
        Department(id="dept-audio", slug="audio", name="Audio"),
        Department(id="dept-visual", slug="visual", name="Visual", is_active=False),
    ])


class TestKeywordRouter:

    @pytest.mark.asyncio
    async def test_routes_matching_departments(self, departments):
        router = KeywordRouter(departments)

        routes = await router.route("Record the lead voice and the music")

        assert [r.department_id for r in routes] == ["dept-audio"]
        assert routes[0].relevance == pytest.approx(0.8)
        assert routes[0].instructions == "Record the lead voice and the music"

    @pytest.mark.asyncio
    async def test_relevance_is_capped(self, departments):
        router = KeywordRouter(departments)

        routes = await router.route("story plot narrative scene episode script dialogue")

        assert routes[0].relevance == 1.0

    @pytest.mark.asyncio
    async def test_broadcasts_when_nothing_matches(self, departments):
        router = KeywordRouter(departments)

        routes = await router.route("Make it good")

        assert sorted(r.department_id for r in routes) == ["dept-audio", "dept-story"]
        assert all(r.relevance == BROADCAST_RELEVANCE for r in routes)

    @pytest.mark.asyncio
    async def test_inactive_departments_are_skipped(self, departments):
        router = KeywordRouter(departments)

        routes = await router.route("Design the visual style")

        assert "dept-visual" not in [r.department_id for r in routes]


class TestLLMRouter:

    @pytest.mark.asyncio
    async def test_maps_slugs_and_drops_unknown_departments(self, departments):
        client = AsyncMock(spec=LLMClient)
        client.call.return_value = RoutingPlan(routes=[
            RouteInstruction(department_id="story", instructions="Outline the pilot", relevance=0.9),
            RouteInstruction(department_id="dept-audio", instructions="Score the opening", relevance=0.4),
            RouteInstruction(department_id="marketing", instructions="Plan a launch"),
        ])
        router = LLMRouter(client, departments)

        routes = await router.route("Pilot with an opening theme", {"project_id": "p1"})

        assert [r.department_id for r in routes] == ["dept-story", "dept-audio"]
        assert routes[0].instructions == "Outline the pilot"

        sent_prompt = client.call.call_args.kwargs["prompt"]
        assert "dept-story (story)" in sent_prompt
        assert '"project_id": "p1"' in sent_prompt
        assert client.call.call_args.kwargs["response_format"] is RoutingPlan

    @pytest.mark.asyncio
    async def test_llm_error_becomes_execution_error(self, departments):
        client = AsyncMock(spec=LLMClient)
        client.call.side_effect = RateLimitError("slow down")
        router = LLMRouter(client, departments)

        with pytest.raises(ExecutionError) as exc_info:
            await router.route("Anything")

        assert exc_info.value.code == "ROUTING_FAILED"

    @pytest.mark.asyncio
    async def test_unparsed_response_is_an_error(self, departments):
        client = AsyncMock(spec=LLMClient)
        client.call.return_value = LLMResponse(content="no json here")
        router = LLMRouter(client, departments)

        with pytest.raises(ExecutionError):
            await router.route("Anything")


class TestConsistencyCheckers:

    def _report(self, quality, status=DepartmentStatus.COMPLETE):
        return DepartmentReport(department_id="d", status=status, quality=quality)

    @pytest.mark.asyncio
    async def test_null_checker_reports_unchecked(self):
        assert await NullConsistencyChecker().check("p", [self._report(0.9)]) is None

    @pytest.mark.asyncio
    async def test_dispersion_checker(self):
        checker = ScoreDispersionConsistencyChecker()

        assert await checker.check("p", []) is None
        assert await checker.check("p", [self._report(0.7)]) == 1.0
        assert await checker.check("p", [self._report(0.8), self._report(0.8)]) == pytest.approx(1.0)
        # pstdev of 0.9 and 0.5 is 0.2
        assert await checker.check("p", [self._report(0.9), self._report(0.5)]) == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_dispersion_ignores_failed_departments(self):
        checker = ScoreDispersionConsistencyChecker()
        reports = [self._report(0.8), self._report(0.0, DepartmentStatus.FAILED)]

        assert await checker.check("p", reports) == 1.0
