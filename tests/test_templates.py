"""Tests for prompt templates and template overrides."""

import json

import pytest
import yaml

from agents.templates import (
    DEPARTMENT_ROUTING,
    SPECIALIST_RETRY,
    FileTemplateLoader,
    PromptTemplate,
    TemplateManager,
    to_json_block,
)


class TestPromptTemplate:

    def test_render(self):
        rendered = SPECIALIST_RETRY.render(
            original_prompt="Outline the pilot",
            previous_output='"Act one"',
            feedback_history="1. Too short",
        )

        assert rendered.startswith("ORIGINAL REQUEST:\nOutline the pilot")
        assert "PREVIOUS ATTEMPT FAILED:\n\"Act one\"" in rendered
        assert "1. Too short" in rendered

    def test_missing_required_variable(self):
        with pytest.raises(ValueError, match="Missing required variables"):
            SPECIALIST_RETRY.render(original_prompt="Outline the pilot")

    def test_optional_variable_default(self):
        rendered = DEPARTMENT_ROUTING.render(departments="dept-story (story)", prompt="Pilot")

        assert "PROJECT CONTEXT:\n{}" in rendered

    def test_undeclared_placeholder(self):
        template = PromptTemplate(name="loose", template="Hello $who")

        with pytest.raises(ValueError, match="Template rendering failed"):
            template.render()


class TestTemplateManager:

    @pytest.mark.asyncio
    async def test_builtin_templates(self):
        manager = TemplateManager()

        rendered = await manager.render_template(
            "quality_grading", {"department": "audio", "prompt": "Mix", "output": "Stems"}
        )

        assert "output of the audio department" in rendered

    @pytest.mark.asyncio
    async def test_unknown_template(self):
        with pytest.raises(KeyError):
            await TemplateManager().get_template("nope")

    @pytest.mark.asyncio
    async def test_file_overrides_shadow_builtins(self, tmp_path):
        (tmp_path / "quality_grading.yaml").write_text(yaml.safe_dump({
            "template": "Grade this $department output: $output",
            "description": "Short grading prompt",
            "variables": [
                {"name": "department", "description": "slug"},
                {"name": "output", "description": "output"},
            ],
            "version": 2,
        }))
        (tmp_path / "department_synthesis.json").write_text(json.dumps({
            "template": "Merge: $specialist_sections",
        }))
        (tmp_path / "notes.txt").write_text("Plain $text")
        manager = TemplateManager(FileTemplateLoader(tmp_path))

        grading = await manager.get_template("quality_grading")
        assert grading.version == "2"
        assert await manager.render_template(
            "quality_grading", {"department": "audio", "output": "Stems"}
        ) == "Grade this audio output: Stems"

        assert await manager.render_template("department_synthesis", {"specialist_sections": "A"}) == "Merge: A"

        # not overridden
        retry = await manager.get_template("specialist_retry")
        assert retry is SPECIALIST_RETRY

        assert await FileTemplateLoader(tmp_path).list_templates() == [
            "department_synthesis", "notes", "quality_grading",
        ]

    @pytest.mark.asyncio
    async def test_templates_are_cached(self, tmp_path):
        manager = TemplateManager(FileTemplateLoader(tmp_path))

        first = await manager.get_template("specialist_retry")
        (tmp_path / "specialist_retry.txt").write_text("Try again: $original_prompt")

        assert await manager.get_template("specialist_retry") is first

        manager.clear_cache()
        assert (await manager.get_template("specialist_retry")).template == "Try again: $original_prompt"

    @pytest.mark.asyncio
    async def test_missing_directory_lists_nothing(self, tmp_path):
        assert await FileTemplateLoader(tmp_path / "missing").list_templates() == []


def test_to_json_block():
    assert to_json_block({"acts": 3}) == '{\n  "acts": 3\n}'
