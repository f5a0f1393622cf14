"""Option models for Vellum.

This module provides the Pydantic models holding app-wide options:
layout delimiters, partial merging policy, context precedence, routing
flags and logging settings.
"""

from collections.abc import Callable
from enum import StrEnum
from pathlib import PurePosixPath
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


def default_rename_key(key: str) -> str:
    """Reduce a lookup key to its final path segment."""
    return PurePosixPath(key).name or key


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty writes to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.TEXT
    file: str = ""


class TemplateOptions(BaseModel):
    """App-wide options.

    Unknown keys are accepted and kept as extra attributes so callers and
    middleware can stash their own settings alongside the built-in ones.

    Attributes:
        silent: Collect render-time errors on ``App.errors`` instead of raising.
        default_engines: Register the pass-through engine as the ``*`` catch-all.
        default_collections: Create ``pages``, ``layouts`` and ``partials``.
        default_helpers: Create a rendering helper for every partial collection.
        view_engine: Extension used when a view has no engine of its own.
        layout_delims: Open and close delimiters around the body marker.
        layout_tag: Name of the body marker inside a layout.
        layout_ext: Extension appended to layout names that lack one.
        default_layout: Layout used by renderable views that declare none.
        merge_layouts: Which layout collections are merged for lookups.
        merge_partials: Flatten partials under ``partials`` (True), keep one
            namespace per collection (False), or a custom merge callable.
        merge_context: Custom callable replacing the built-in context merge.
        prefer_locals: Let front-matter ``data`` override ``locals``.
        rename_key: Maps a lookup key to a normalized view key.
        case_sensitive_routing: Match middleware patterns case-sensitively.
        strict_routing: Do not tolerate a trailing slash when matching.
        logging: Logging settings.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        validate_assignment=True,
        extra="allow",
        arbitrary_types_allowed=True,
    )

    silent: bool = False
    default_engines: bool = True
    default_collections: bool = True
    default_helpers: bool = True
    view_engine: str = "*"
    layout_delims: tuple[str, str] = ("{%", "%}")
    layout_tag: str = Field(default="body", min_length=1)
    layout_ext: str | None = None
    default_layout: str | None = None
    merge_layouts: bool | list[str] | None = None
    merge_partials: bool | Callable[..., Any] = False  # pyright: ignore[reportExplicitAny]
    merge_context: Callable[..., Any] | None = None  # pyright: ignore[reportExplicitAny]
    prefer_locals: bool = False
    rename_key: Callable[[str], str] = default_rename_key
    case_sensitive_routing: bool = False
    strict_routing: bool = False
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("layout_delims")
    @classmethod
    def _check_delims(cls, value: tuple[str, str]) -> tuple[str, str]:
        if not all(value):
            msg = "layout delimiters must be non-empty strings"
            raise ValueError(msg)
        return value

    @field_validator("layout_ext")
    @classmethod
    def _normalize_ext(cls, value: str | None) -> str | None:
        if not value:
            return None
        return value if value.startswith(".") else f".{value}"
