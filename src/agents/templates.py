"""Prompt templates for retries, synthesis, grading and routing."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional, Union

import yaml


class TemplateFormat(Enum):
    """Supported template formats."""
    STRING = "string"
    YAML = "yaml"
    JSON = "json"


@dataclass
class PromptVariable:
    """A variable in a prompt template."""
    name: str
    description: str
    required: bool = True
    default_value: Optional[Any] = None


@dataclass
class PromptTemplate:
    """A prompt template with its variables."""
    name: str
    template: str
    description: str = ""
    variables: List[PromptVariable] = field(default_factory=list)
    format: TemplateFormat = TemplateFormat.STRING
    version: str = "1.0"

    def render(self, **kwargs) -> str:
        """Render the template with provided variables."""
        required = {var.name for var in self.variables if var.required}
        missing = required - set(kwargs)
        if missing:
            raise ValueError(f"Missing required variables: {sorted(missing)}")

        render_vars = dict(kwargs)
        for var in self.variables:
            if var.name not in render_vars and var.default_value is not None:
                render_vars[var.name] = var.default_value

        try:
            return Template(self.template).substitute(render_vars).strip()
        except KeyError as e:
            raise ValueError(f"Template rendering failed: missing variable {e}")


class TemplateLoader(ABC):
    """Abstract base class for template loaders."""

    @abstractmethod
    async def load_template(self, template_name: str) -> PromptTemplate:
        pass

    @abstractmethod
    async def list_templates(self) -> List[str]:
        pass


class FileTemplateLoader(TemplateLoader):
    """Load template overrides from a directory of .yaml/.json/.txt files."""

    EXTENSIONS = (".yaml", ".yml", ".json", ".txt")

    def __init__(self, templates_dir: Union[str, Path]):
        self.templates_dir = Path(templates_dir)

    async def load_template(self, template_name: str) -> PromptTemplate:
        for ext in self.EXTENSIONS:
            template_path = self.templates_dir / f"{template_name}{ext}"
            if template_path.exists():
                return self._load_from_file(template_path)

        raise FileNotFoundError(f"Template '{template_name}' not found in {self.templates_dir}")

    async def list_templates(self) -> List[str]:
        if not self.templates_dir.exists():
            return []
        names = {p.stem for ext in self.EXTENSIONS for p in self.templates_dir.glob(f"*{ext}")}
        return sorted(names)

    def _load_from_file(self, template_path: Path) -> PromptTemplate:
        content = template_path.read_text(encoding="utf-8")

        if template_path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
            fmt = TemplateFormat.YAML
        elif template_path.suffix == ".json":
            data = json.loads(content)
            fmt = TemplateFormat.JSON
        else:
            return PromptTemplate(name=template_path.stem, template=content)

        return PromptTemplate(
            name=template_path.stem,
            template=data["template"],
            description=data.get("description", ""),
            variables=[PromptVariable(**v) for v in data.get("variables", [])],
            format=fmt,
            version=str(data.get("version", "1.0")),
        )


class InMemoryTemplateLoader(TemplateLoader):
    """In-memory loader holding the built-in templates."""

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    def add_template(self, template: PromptTemplate):
        self.templates[template.name] = template

    async def load_template(self, template_name: str) -> PromptTemplate:
        if template_name not in self.templates:
            raise KeyError(f"Template '{template_name}' not found")
        return self.templates[template_name]

    async def list_templates(self) -> List[str]:
        return list(self.templates.keys())


SPECIALIST_RETRY = PromptTemplate(
    name="specialist_retry",
    template="""
ORIGINAL REQUEST:
$original_prompt

PREVIOUS ATTEMPT FAILED:
$previous_output

FEEDBACK FROM PREVIOUS ATTEMPTS:
$feedback_history

INSTRUCTIONS:
Please retry the task with improvements based on the feedback above.
Focus on increasing quality, relevance, and consistency.
""",
    description="Retry prompt carrying the previous output and all accumulated feedback",
    variables=[
        PromptVariable("original_prompt", "The specialist's original instructions"),
        PromptVariable("previous_output", "JSON rendering of the last output"),
        PromptVariable("feedback_history", "Numbered feedback lines, one per failed attempt"),
    ],
)

DEPARTMENT_SYNTHESIS = PromptTemplate(
    name="department_synthesis",
    template="""
Original request: $original_prompt

You are the department head. Review and synthesize the following specialist outputs into a cohesive final result:

$specialist_sections

Please synthesize these outputs into a cohesive, high-quality final result that addresses the original request.
""",
    description="Department-head synthesis over approved specialist outputs",
    variables=[
        PromptVariable("original_prompt", "The department's instructions"),
        PromptVariable("specialist_sections", "One section per approved specialist output"),
    ],
)

QUALITY_GRADING = PromptTemplate(
    name="quality_grading",
    template="""
You are grading the output of the $department department for the request below.

REQUEST:
$prompt

OUTPUT:
$output

Score each dimension from 0 to 100:
- confidence: how certain and well-supported the output is
- completeness: whether every part of the request is addressed
- relevance: how closely the output follows the request
- consistency: internal coherence and agreement with the project context
- creativity: originality of the ideas
- technical: craft and correctness for this department

Respond with JSON only:
{"confidence": 0, "completeness": 0, "relevance": 0, "consistency": 0, "creativity": 0, "technical": 0, "feedback": "..."}
""",
    description="Structured six-dimension quality grading",
    variables=[
        PromptVariable("department", "Department slug"),
        PromptVariable("prompt", "Request that produced the output"),
        PromptVariable("output", "Output to grade"),
    ],
)

DEPARTMENT_ROUTING = PromptTemplate(
    name="department_routing",
    template="""
You coordinate the following departments:
$departments

Decide which departments should work on the request below. For each one,
write focused instructions and a relevance between 0 and 1.

REQUEST:
$prompt

PROJECT CONTEXT:
$context

Respond with JSON only:
{"routes": [{"department_id": "...", "instructions": "...", "relevance": 0.0}]}
""",
    description="Master routing plan over the active departments",
    variables=[
        PromptVariable("departments", "One line per department: id, slug and description"),
        PromptVariable("prompt", "User request"),
        PromptVariable("context", "JSON project context", False, "{}"),
    ],
)

BUILTIN_TEMPLATES = (SPECIALIST_RETRY, DEPARTMENT_SYNTHESIS, QUALITY_GRADING, DEPARTMENT_ROUTING)


class TemplateManager:
    """Template lookup with caching; file overrides shadow built-ins."""

    def __init__(self, override_loader: Optional[TemplateLoader] = None):
        self.builtin_loader = InMemoryTemplateLoader()
        for template in BUILTIN_TEMPLATES:
            self.builtin_loader.add_template(template)
        self.override_loader = override_loader
        self.template_cache: Dict[str, PromptTemplate] = {}

    async def get_template(self, template_name: str) -> PromptTemplate:
        if template_name in self.template_cache:
            return self.template_cache[template_name]

        template = None
        if self.override_loader is not None:
            try:
                template = await self.override_loader.load_template(template_name)
            except (FileNotFoundError, KeyError):
                template = None
        if template is None:
            template = await self.builtin_loader.load_template(template_name)

        self.template_cache[template_name] = template
        return template

    async def render_template(self, template_name: str, variables: Dict[str, Any]) -> str:
        template = await self.get_template(template_name)
        return template.render(**variables)

    def clear_cache(self):
        self.template_cache.clear()


def to_json_block(value: Any) -> str:
    """Pretty JSON for embedding outputs in prompts."""
    return json.dumps(value, indent=2, default=str)
