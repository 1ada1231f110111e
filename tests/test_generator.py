"""Tests for relay.orchestrator.generator and the bundled catalog."""

from __future__ import annotations

from pathlib import Path

import pytest

from relay.core.config import OperatingMode
from relay.core.errors import ConfigurationError
from relay.core.models import Priority, TaskCategory
from relay.orchestrator.generator import (
    TaskCatalog,
    TaskGenerator,
    satisfied_by_keys,
)


class TestDefaultCatalog:
    """The catalog shipped in relay/catalogs/default.yaml."""

    def test_loads(self):
        catalog = TaskCatalog.load_default()
        assert set(catalog.baseline) == {"development", "quality"}
        assert set(catalog.aggressive) == {"features", "controls", "tabs", "security"}

    def test_baseline_is_short_and_aggressive_is_long(self):
        generator = TaskGenerator(TaskCatalog.load_default())
        baseline = generator.generate(OperatingMode.BASELINE)
        aggressive = generator.generate(OperatingMode.AGGRESSIVE)
        assert len(baseline) == 9
        assert len(aggressive) == 61

    def test_tabs_section(self):
        tasks = TaskGenerator(TaskCatalog.load_default()).generate("aggressive", ["tabs"])
        assert len(tasks) == 20
        assert all(t.area == "tabs" for t in tasks)
        assert all(t.priority is Priority.CRITICAL for t in tasks)

    def test_security_section_category(self):
        tasks = TaskGenerator(TaskCatalog.load_default()).generate("aggressive", ["security"])
        assert tasks and all(t.category is TaskCategory.SECURITY for t in tasks)


class TestGenerate:
    """Section selection and the satisfied predicate."""

    def test_fresh_descriptors_each_call(self, small_catalog: TaskCatalog):
        generator = TaskGenerator(small_catalog)
        first = generator.generate("baseline")
        second = generator.generate("baseline")
        assert [t.description for t in first] == [t.description for t in second]
        assert all(a is not b for a, b in zip(first, second, strict=True))

    def test_area_defaults_to_section_name(self, small_catalog: TaskCatalog):
        tasks = TaskGenerator(small_catalog).generate("aggressive", ["features", "controls"])
        assert [t.area for t in tasks] == ["engine", "engine", "controls"]

    def test_satisfied_filters_baseline(self, small_catalog: TaskCatalog):
        generator = TaskGenerator(small_catalog, satisfied=satisfied_by_keys(["engine", "tests"]))
        tasks = generator.generate("baseline")
        assert [t.description for t in tasks] == ["Implement game server"]

    def test_satisfied_ignored_in_aggressive(self, small_catalog: TaskCatalog):
        generator = TaskGenerator(small_catalog, satisfied=lambda entry: True)
        assert len(generator.generate("aggressive")) == 5
        assert generator.generate("baseline") == []

    def test_unknown_section_is_configuration_error(self, small_catalog: TaskCatalog):
        with pytest.raises(ConfigurationError, match="no aggressive section"):
            TaskGenerator(small_catalog).generate("aggressive", ["missing"])

    def test_entry_key_defaults_to_slug(self, small_catalog: TaskCatalog):
        entry = small_catalog.aggressive["controls"][0]
        assert entry.key == "implement-wasd-movement"


class TestCatalogLoading:
    """Error handling for catalog files."""

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            TaskCatalog.from_yaml(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("text", ["", "baseline: {}\naggressive: {}\n"])
    def test_empty_catalog(self, text: str):
        with pytest.raises(ConfigurationError):
            TaskCatalog.from_text(text)

    def test_invalid_entry(self):
        with pytest.raises(ConfigurationError, match="invalid"):
            TaskCatalog.from_text("baseline:\n  dev:\n    - {description: x, category: gardening}\n")

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            TaskCatalog.from_text("- just\n- a list\n")

    def test_load_from_path(self, tmp_path: Path):
        path = tmp_path / "catalog.yaml"
        path.write_text("baseline:\n  dev:\n    - {description: Write docs, category: docs}\n")
        catalog = TaskCatalog.load(path)
        tasks = TaskGenerator(catalog).generate("baseline")
        assert tasks[0].category is TaskCategory.DOCS
        assert tasks[0].area == "dev"
