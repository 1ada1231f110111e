"""Prompt templating for remote jobs.

Turns a ``TaskDescriptor`` into the prompt text and branch name sent to
the agent backend. Kept out of the orchestration core: the dispatcher
only calls ``build_prompt``/``branch_name`` on whatever builder it was
given, so tests can substitute a trivial one.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping

import jinja2

from relay.core.models import TaskCategory, TaskDescriptor

CATEGORY_TEMPLATES: dict[TaskCategory, str] = {
    TaskCategory.FEATURE: """\
Develop a new feature for {{ project }}: {{ description }}
{% if preamble %}
{{ preamble }}
{% endif %}
Implement it following the existing code patterns and architecture:
- Follow the existing naming conventions
- Include proper error handling
- Add unit tests where applicable
- Update documentation if needed

Feature requirements: {{ description }}
""",
    TaskCategory.BUG: """\
Fix a bug in {{ project }}: {{ description }}

Analyze the issue and implement a complete fix:
- Identify the root cause
- Add or update tests to prevent regression
- Make sure the fix does not break existing functionality

Bug description: {{ description }}
""",
    TaskCategory.PERFORMANCE: """\
Optimize performance in {{ project }}: {{ description }}

- Identify the bottlenecks
- Implement optimizations without changing behaviour
- Measure and document the improvement

Performance issue: {{ description }}
""",
    TaskCategory.TESTS: """\
Add comprehensive tests for {{ project }}: {{ description }}

- Unit tests, plus integration tests where applicable
- Mock external dependencies
- Cover edge cases and error conditions

Test requirements: {{ description }}
""",
    TaskCategory.DOCS: """\
Update documentation for {{ project }}: {{ description }}

- README and API documentation
- Integration and troubleshooting guides

Documentation update: {{ description }}
""",
    TaskCategory.REFACTOR: """\
Refactor code in {{ project }}: {{ description }}

- Improve readability and separation of concerns
- Remove duplication
- Keep behaviour unchanged

Refactoring scope: {{ description }}
""",
    TaskCategory.SECURITY: """\
Security review for {{ project }}: {{ description }}

- Identify the exposure and its impact
- Implement protective measures with tests
- Document any operational follow-up

Security check: {{ description }}
""",
}

# Extra instructions for catalog areas that need more than the category template.
AREA_PREAMBLES: dict[str, str] = {
    "controls": "Input handling must be responsive, configurable and covered by tests.",
    "tabs": "The page must be fully functional, responsive and accessible. No placeholders.",
    "engine": "Keep the rendering loop within its frame budget.",
}

BRANCH_PREFIXES: dict[TaskCategory, str] = {
    TaskCategory.FEATURE: "feature",
    TaskCategory.BUG: "fix",
    TaskCategory.PERFORMANCE: "perf",
    TaskCategory.TESTS: "test",
    TaskCategory.DOCS: "docs",
    TaskCategory.REFACTOR: "refactor",
    TaskCategory.SECURITY: "security",
}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"


def slugify(text: str, max_length: int = 30) -> str:
    """Lower-case, dash-separated, at most ``max_length`` characters."""
    slug = _SLUG_RE.sub("-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "task"


class PromptBuilder:
    """Render prompts and branch names for tasks.

    Args:
        project: Project name substituted into every template.
        templates: Per-category overrides of ``CATEGORY_TEMPLATES``.
        preambles: Per-area overrides of ``AREA_PREAMBLES``.
        jinja_env: Optional custom Jinja2 environment.
    """

    def __init__(
        self,
        project: str = "the project",
        templates: Mapping[TaskCategory, str] | None = None,
        preambles: Mapping[str, str] | None = None,
        jinja_env: jinja2.Environment | None = None,
    ) -> None:
        self.project = project
        self.env = jinja_env or jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        sources = {**CATEGORY_TEMPLATES, **(templates or {})}
        self._templates = {
            category: self.env.from_string(source) for category, source in sources.items()
        }
        self._preambles = {**AREA_PREAMBLES, **(preambles or {})}

    def build_prompt(self, task: TaskDescriptor) -> str:
        template = self._templates[task.category]
        return template.render(
            project=self.project,
            description=task.description,
            preamble=self._preambles.get(task.area or "", ""),
            priority=task.priority.value,
            area=task.area or "",
        ).strip() + "\n"

    def branch_name(self, task: TaskDescriptor) -> str:
        """``<prefix>/<area>-<slug>-<base36 ms>``; the suffix keeps retries distinct."""
        prefix = BRANCH_PREFIXES[task.category]
        area = f"{slugify(task.area, 20)}-" if task.area else ""
        suffix = _base36(time.time_ns() // 1_000_000)
        return f"{prefix}/{area}{slugify(task.description)}-{suffix}"


__all__ = [
    "AREA_PREAMBLES",
    "BRANCH_PREFIXES",
    "CATEGORY_TEMPLATES",
    "PromptBuilder",
    "slugify",
]
