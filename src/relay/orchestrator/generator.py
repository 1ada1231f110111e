"""Task generator backed by a declarative YAML catalog.

The catalog maps each operating mode to named sections of entries.
``TaskGenerator.generate`` turns the selected sections into fresh
``TaskDescriptor`` objects on every call; the "already satisfied"
predicate filters the baseline catalog only, the aggressive catalog is
always emitted in full.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from importlib import resources
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from relay.core.config import OperatingMode
from relay.core.errors import ConfigurationError
from relay.core.logging import get_logger
from relay.core.models import Priority, TaskCategory, TaskDescriptor
from relay.prompts.templating import slugify

_logger = get_logger("orchestrator.generator")

DEFAULT_CATALOG = "default.yaml"


class CatalogEntry(BaseModel):
    """One catalog item."""

    key: str = Field(default="", description="Stable id; defaults to a slug of the description")
    description: str = Field(min_length=1)
    category: TaskCategory = TaskCategory.FEATURE
    priority: Priority = Priority.MEDIUM
    area: str | None = None

    @model_validator(mode="after")
    def _default_key(self) -> CatalogEntry:
        if not self.key:
            self.key = slugify(self.description, max_length=60)
        return self


class TaskCatalog(BaseModel):
    """Sections of catalog entries for each operating mode."""

    baseline: dict[str, list[CatalogEntry]] = Field(default_factory=dict)
    aggressive: dict[str, list[CatalogEntry]] = Field(default_factory=dict)

    def sections(self, mode: OperatingMode) -> dict[str, list[CatalogEntry]]:
        return self.aggressive if mode is OperatingMode.AGGRESSIVE else self.baseline

    def entry_count(self) -> int:
        return sum(len(entries) for entries in (*self.baseline.values(), *self.aggressive.values()))

    @classmethod
    def from_text(cls, text: str, source: str = "<string>") -> TaskCatalog:
        """Parse a catalog document.

        Raises:
            ConfigurationError: If the document is empty, malformed, or
                has no entries at all.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Task catalog {source} is not valid YAML: {e}") from e
        if not data:
            raise ConfigurationError(f"Task catalog {source} is empty")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Task catalog {source} must contain a mapping")
        try:
            catalog = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Task catalog {source} is invalid: {e}") from e
        if catalog.entry_count() == 0:
            raise ConfigurationError(f"Task catalog {source} has no entries")
        return catalog

    @classmethod
    def from_yaml(cls, path: Path) -> TaskCatalog:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read task catalog {path}: {e}") from e
        return cls.from_text(text, source=str(path))

    @classmethod
    def load_default(cls) -> TaskCatalog:
        """The catalog bundled with the package."""
        resource = resources.files("relay.catalogs").joinpath(DEFAULT_CATALOG)
        return cls.from_text(resource.read_text(encoding="utf-8"), source=DEFAULT_CATALOG)

    @classmethod
    def load(cls, path: Path | None = None) -> TaskCatalog:
        return cls.load_default() if path is None else cls.from_yaml(path)


SatisfiedPredicate = Callable[[CatalogEntry], bool]


def satisfied_by_keys(keys: Iterable[str]) -> SatisfiedPredicate:
    """Predicate that treats the listed catalog keys as already implemented."""
    done = frozenset(keys)
    return lambda entry: entry.key in done


class TaskGenerator:
    """Emits task descriptors from a ``TaskCatalog``."""

    def __init__(
        self,
        catalog: TaskCatalog,
        satisfied: SatisfiedPredicate | None = None,
    ) -> None:
        self.catalog = catalog
        self.satisfied = satisfied

    def generate(
        self,
        mode: OperatingMode | str,
        sections: Iterable[str] | None = None,
    ) -> list[TaskDescriptor]:
        """Build tasks for ``mode`` from ``sections`` (all sections if empty).

        Raises:
            ConfigurationError: If a requested section is not in the catalog.
        """
        mode = OperatingMode(mode)
        available = self.catalog.sections(mode)
        names = list(sections or available.keys())
        missing = [name for name in names if name not in available]
        if missing:
            raise ConfigurationError(
                f"Task catalog has no {mode.value} section(s) {missing}; "
                f"available: {sorted(available)}"
            )

        tasks: list[TaskDescriptor] = []
        skipped = 0
        for name in names:
            for entry in available[name]:
                if (
                    mode is OperatingMode.BASELINE
                    and self.satisfied is not None
                    and self.satisfied(entry)
                ):
                    skipped += 1
                    continue
                tasks.append(
                    TaskDescriptor(
                        description=entry.description,
                        category=entry.category,
                        priority=entry.priority,
                        area=entry.area or name,
                    )
                )

        _logger.debug(
            "generator.tasks_generated",
            mode=mode.value,
            sections=names,
            count=len(tasks),
            skipped=skipped,
        )
        return tasks


__all__ = [
    "CatalogEntry",
    "SatisfiedPredicate",
    "TaskCatalog",
    "TaskGenerator",
    "satisfied_by_keys",
]
