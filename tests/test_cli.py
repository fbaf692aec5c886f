"""Tests for service wiring and the command-line interface."""

import os
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from agents.registry import CapabilityRegistry
from audit.tracking import InMemoryExecutionStore, JSONLExecutionStore
from models.entities import ExecutionStatus
from models.results import DepartmentStatus, Recommendation
from orchestration import KeywordRouter
from repositories.loader import parse_registry
from studio_departments.cli import app, console as cli_console
from studio_departments.config import Settings
from studio_departments.services import build_audit_services, build_services, build_store
from utils.errors import ValidationError


REGISTRY = {
    "departments": [
        {"id": "dept-story", "slug": "story", "name": "Story"},
        {"id": "dept-audio", "slug": "audio", "name": "Audio"},
    ],
    "agents": [
        {"id": "showrunner", "name": "Showrunner", "level": "master"},
        {"id": "head-writer", "name": "Head Writer", "level": "department-head", "department_id": "dept-story"},
        {"id": "plot", "name": "Plot Specialist", "department_id": "dept-story", "skills": ["plot"]},
        {"id": "audio-lead", "name": "Audio Lead", "level": "department-head", "department_id": "dept-audio"},
    ],
}

runner = CliRunner()


@pytest.fixture
def settings():
    with patch.dict(os.environ, {}, clear=True):
        yield Settings.load()


class TestServices:

    @pytest.mark.asyncio
    async def test_build_services_runs_a_request(self, settings, scripted):
        capability = scripted()
        store = InMemoryExecutionStore()

        services = build_services(
            settings, parse_registry(REGISTRY), store=store, capabilities=CapabilityRegistry([capability])
        )
        result = await services.orchestrator.orchestrate("Outline the pilot script", {"project_id": "proj-1"})

        assert isinstance(services.router, KeywordRouter)
        [report] = result.departments
        assert report.department_id == "dept-story"
        assert report.status == DepartmentStatus.COMPLETE
        assert report.quality == pytest.approx(0.85)
        assert result.recommendation == Recommendation.INGEST
        assert result.execution_id is not None

        master = await store.get(result.execution_id)
        assert master.status == ExecutionStatus.COMPLETED
        assert master.project_id == "proj-1"

    def test_unknown_capabilities_fail_fast(self, settings):
        registry = parse_registry({
            "departments": [{"id": "dept-story", "slug": "story", "name": "Story"}],
            "agents": [{"id": "plot", "name": "Plot", "department_id": "dept-story", "capabilities": ["render"]}],
        })

        with pytest.raises(ValidationError, match="render"):
            build_services(settings, registry, store=InMemoryExecutionStore(), capabilities=CapabilityRegistry())

    def test_store_selection(self, settings, tmp_path):
        settings.audit.store_path = str(tmp_path / "runs.jsonl")

        assert isinstance(build_store(settings.audit), JSONLExecutionStore)
        assert isinstance(build_store(settings.audit, persistent=False), InMemoryExecutionStore)

        audit = build_audit_services(settings)
        assert audit.analytics.max_records == 10000
        assert audit.query.store is audit.store


class TestCLI:

    @pytest.fixture(autouse=True)
    def wide_console(self, monkeypatch):
        # Keep table cells on one line
        monkeypatch.setattr(cli_console, "width", 200)

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_weights(self, tmp_path):
        path = tmp_path / "weights.yaml"
        path.write_text(yaml.safe_dump({"departments": {"marketing": {"relevance": 0.6, "creativity": 0.4}}}))

        result = runner.invoke(app, ["weights", "--file", str(path)])

        assert result.exit_code == 0
        assert "marketing" in result.stdout
        assert "balanced" in result.stdout

    def test_analyze_empty_store(self, tmp_path):
        result = runner.invoke(app, ["analyze", "--store", str(tmp_path / "runs.jsonl"), "--timeframe", "all"])

        assert result.exit_code == 0
        assert "Executions" in result.stdout

    def test_analyze_rejects_unknown_timeframe(self, tmp_path):
        result = runner.invoke(app, ["analyze", "--store", str(tmp_path / "runs.jsonl"), "--timeframe", "1y"])

        assert result.exit_code == 2

    def test_orchestrate_with_missing_registry(self, tmp_path):
        result = runner.invoke(app, ["orchestrate", "Outline the pilot", "--registry", str(tmp_path / "none.yaml")])

        assert result.exit_code == 1
        assert "Orchestration failed" in result.stdout
