"""
Clause2Case
Prompt Registry.

YAML-based prompt template management with:
    - Built-in default templates
    - Optional overrides loaded from PROMPTS_DIR/*.yaml
    - {{variable}} rendering
    - Version tracking

Usage:
    from clause2case.ai.prompt_registry import PromptRegistry
    registry = PromptRegistry()
    messages = registry.render("test_case_generator",
                               document_title="Refund Policy",
                               document_type="Handbook",
                               context="...", requirements="")
"""

import logging
import os
import re
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

# Default prompts directory
_PROMPTS_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "prompts",
)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Variables are replaced using {{variable_name}} syntax; unknown
        placeholders are left as-is.

        Returns:
            List of message dicts: [{"role": "system", "content": "..."}, ...]
        """
        system_rendered = self._substitute(self.system, variables)
        user_rendered = self._substitute(self.user, variables)

        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        """Replace {{var}} placeholders with values."""
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """
    Registry for loading and managing prompt templates.

    YAML files in the prompts directory override built-in templates with the
    same name and version.
    """

    def __init__(self, prompts_dir: str | None = None):
        self._prompts_dir = prompts_dir or _PROMPTS_DIR
        self._templates: dict[str, dict[str, PromptTemplate]] = {}  # name → {version → template}
        self._load_defaults()
        self._load_from_dir()

    def _load_defaults(self):
        for tpl in _DEFAULT_TEMPLATES:
            self._register(tpl)

    def _load_from_dir(self):
        """Load prompt templates from YAML files."""
        prompts_path = Path(self._prompts_dir)
        if not prompts_path.exists():
            logger.debug("Prompts directory not found: %s. Using defaults only.", self._prompts_dir)
            return

        for yaml_file in sorted(prompts_path.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Failed to load prompt %s: %s", yaml_file.name, e)
                continue
            if not data or not isinstance(data, dict):
                continue

            tpl = PromptTemplate(
                name=data.get("name", yaml_file.stem),
                version=str(data.get("version", "v1")),
                system=data.get("system", ""),
                user=data.get("user", ""),
                description=data.get("description", ""),
                metadata=data.get("metadata", {}),
            )
            self._register(tpl)
            logger.info("Loaded prompt template: %s (%s) from %s",
                        tpl.name, tpl.version, yaml_file.name)

    def _register(self, template: PromptTemplate):
        self._templates.setdefault(template.name, {})[template.version] = template

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        """Get a prompt template by name and version."""
        return self._templates.get(name, {}).get(version)

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """
        Render a prompt template with variables.

        Raises:
            KeyError: If template not found.
        """
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for versions in self._templates.values() for tpl in versions.values()]


# ── Built-in Default Templates ────────────────────────────────────────────────

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="test_case_generator",
        version="v1",
        description="Generate structured test cases from business document context",
        system=(
            "You are an expert QA engineer who writes test cases for business software.\n"
            "Generate test cases from the provided document context.\n\n"
            "Requirements:\n"
            "- Produce 10 to 15 test cases\n"
            "- Cover the categories in roughly this mix: functional 40%, edge_case 30%, "
            "compliance 20%, integration 10%\n"
            "- Every test case has between 5 and 10 concrete, executable steps\n"
            "- Each step is a single user or system action a tester can perform\n"
            "- priority is one of: high, medium, low\n"
            "- Base every test case on rules, thresholds and workflows stated in the context\n\n"
            "Respond ONLY with valid JSON in exactly this shape:\n"
            "{\n"
            '  "testCases": [\n'
            "    {\n"
            '      "title": "Short descriptive title",\n'
            '      "description": "What the test verifies",\n'
            '      "category": "functional|compliance|integration|edge_case",\n'
            '      "priority": "high|medium|low",\n'
            '      "steps": ["Step 1", "Step 2", "Step 3", "Step 4", "Step 5"],\n'
            '      "expectedResult": "Observable outcome",\n'
            '      "tags": ["tag1", "tag2"]\n'
            "    }\n"
            "  ]\n"
            "}\n"
            "Do not wrap the JSON in markdown and do not add commentary."
        ),
        user=(
            "Document: {{document_title}}\n"
            "Document Type: {{document_type}}\n\n"
            "Relevant Context:\n{{context}}\n\n"
            "Additional Requirements: {{requirements}}\n\n"
            "Generate the test cases now."
        ),
    ),
]
