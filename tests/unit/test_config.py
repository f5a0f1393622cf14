from pathlib import Path

import pytest
from pydantic import ValidationError

from vellum.config import (
    ConfigLoadError,
    LogFormat,
    LoggingConfig,
    LogLevel,
    TemplateOptions,
    copy_value,
    deep_merge,
    default_rename_key,
    read_data_file,
)


class TestTemplateOptions:
    def test_defaults(self) -> None:
        options = TemplateOptions()

        assert options.silent is False
        assert options.default_engines is True
        assert options.default_collections is True
        assert options.view_engine == "*"
        assert options.layout_delims == ("{%", "%}")
        assert options.layout_tag == "body"
        assert options.layout_ext is None
        assert options.merge_partials is False
        assert options.prefer_locals is False
        assert options.rename_key("a/b/c.md") == "c.md"
        assert options.logging == LoggingConfig()

    def test_layout_ext_gets_a_dot(self) -> None:
        assert TemplateOptions(layout_ext="hbs").layout_ext == ".hbs"
        assert TemplateOptions(layout_ext=".hbs").layout_ext == ".hbs"
        assert TemplateOptions(layout_ext="").layout_ext is None

    def test_extra_keys_are_allowed(self) -> None:
        options = TemplateOptions.model_validate({"theme": "dark"})

        assert options.model_extra == {"theme": "dark"}

    def test_assignment_is_validated(self) -> None:
        options = TemplateOptions()

        with pytest.raises(ValidationError):
            options.layout_delims = ("{{", "")

    def test_callables(self) -> None:
        def merge(app: object, locals: dict[str, object]) -> dict[str, object]:
            return {}

        options = TemplateOptions(merge_partials=merge, rename_key=str.upper)

        assert options.merge_partials is merge
        assert options.rename_key("a.md") == "A.MD"


class TestLoggingConfig:
    def test_defaults(self) -> None:
        config = LoggingConfig()

        assert config.level is LogLevel.WARNING
        assert config.format is LogFormat.TEXT
        assert config.file == ""

    def test_frozen(self) -> None:
        config = LoggingConfig()

        with pytest.raises(ValidationError):
            config.level = LogLevel.DEBUG  # pyright: ignore[reportAttributeAccessIssue]

    def test_parses_strings(self) -> None:
        config = LoggingConfig.model_validate({"level": "debug", "format": "json"})

        assert config.level is LogLevel.DEBUG
        assert config.format is LogFormat.JSON


class TestDefaultRenameKey:
    def test_basename(self) -> None:
        assert default_rename_key("docs/guide/intro.md") == "intro.md"
        assert default_rename_key("intro.md") == "intro.md"


class TestReadDataFile:
    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        _ = path.write_text("a: 1\nb:\n  - x\n")

        assert read_data_file(path) == {"a": 1, "b": ["x"]}

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        _ = path.write_text("")

        assert read_data_file(path) == {}

    def test_yaml_error_location(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        _ = path.write_text("a: [1, 2\n")

        with pytest.raises(ConfigLoadError, match="Failed to parse YAML file") as exc_info:
            _ = read_data_file(path)

        assert exc_info.value.path == path
        assert exc_info.value.line is not None

    def test_bad_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        _ = path.write_text("a = \n")

        with pytest.raises(ConfigLoadError, match="Failed to parse TOML file"):
            _ = read_data_file(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        _ = path.write_text("[1, 2]")

        with pytest.raises(ConfigLoadError, match="mapping at the top level"):
            _ = read_data_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            _ = read_data_file(tmp_path / "missing.json")


class TestDeepMerge:
    def test_nested_merge(self) -> None:
        base = {"a": {"x": 1, "y": 2}, "b": [1, 2]}
        override = {"a": {"y": 3}, "b": [3]}

        assert deep_merge(base, override) == {"a": {"x": 1, "y": 3}, "b": [3]}

    def test_inputs_are_not_modified(self) -> None:
        base = {"a": {"x": 1}}
        override = {"a": {"y": 2}}

        merged = deep_merge(base, override)
        merged["a"]["z"] = 3

        assert base == {"a": {"x": 1}}
        assert override == {"a": {"y": 2}}

    def test_copy_value_is_independent(self) -> None:
        original = {"a": [{"b": 1}]}

        copied = copy_value(original)
        copied["a"][0]["b"] = 2

        assert original == {"a": [{"b": 1}]}
