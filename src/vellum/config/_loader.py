# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Data file loading and merging for the global data store."""

from __future__ import annotations

import json
import tomllib
from typing import TYPE_CHECKING, Any

import yaml

from vellum.exceptions import ConfigLoadError

if TYPE_CHECKING:
    from pathlib import Path


def read_data_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a JSON, YAML or TOML data file.

    Args:
        path: Path to the data file. The format is chosen by extension.

    Returns:
        Parsed content as dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigLoadError: If the file cannot be parsed, has an unsupported
            extension, or does not contain a mapping at the top level.
    """
    suffix = path.suffix.lower()
    if suffix == ".toml":
        try:
            with path.open("rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Failed to parse TOML file: {e}"
            # lineno and colno are only set on Python 3.14+
            raise ConfigLoadError(
                msg,
                path=path,
                line=getattr(e, "lineno", None),
                column=getattr(e, "colno", None),
            ) from e

    text = path.read_text(encoding="utf-8")
    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            msg = f"Failed to parse JSON file: {e.msg}"
            raise ConfigLoadError(msg, path=path, line=e.lineno, column=e.colno) from e
    elif suffix in {".yaml", ".yml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            msg = f"Failed to parse YAML file: {e}"
            raise ConfigLoadError(
                msg,
                path=path,
                line=mark.line + 1 if mark is not None else None,
                column=mark.column + 1 if mark is not None else None,
            ) from e
    else:
        msg = f"Unsupported data file type: {path.suffix or path.name}"
        raise ConfigLoadError(msg, path=path)

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = "Data file must contain a mapping at the top level"
        raise ConfigLoadError(msg, path=path)
    return data


def deep_merge(
    base: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    override: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Deep merge two data dictionaries.

    Merges `override` into `base`, returning a new dictionary. Neither input
    is modified.

    Args:
        base: Base data (lower precedence).
        override: Override data (higher precedence).

    Returns:
        Merged dictionary.

    Merge rules:
        - Dictionaries are recursively merged
        - Arrays are replaced entirely (no element-wise merge)
        - Scalars are replaced with override value
        - Missing keys in override preserve base values
    """
    result: dict[str, Any] = {k: copy_value(v) for k, v in base.items()}  # pyright: ignore[reportExplicitAny]

    for key, override_val in override.items():
        base_val = result.get(key)
        if isinstance(base_val, dict) and isinstance(override_val, dict):
            result[key] = deep_merge(base_val, override_val)
        else:
            result[key] = copy_value(override_val)

    return result


def copy_value(value: Any) -> Any:  # pyright: ignore[reportExplicitAny]
    """Create a deep copy of nested dicts and lists.

    Args:
        value: The value to copy.

    Returns:
        A copy whose containers are independent of the original.
    """
    if isinstance(value, dict):
        return {k: copy_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_value(item) for item in value]
    return value
