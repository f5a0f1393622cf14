"""Vellum configuration.

This module provides the option models used by an ``App`` and the helpers
that load global data files into its data store.

Example:
    >>> from vellum.config import TemplateOptions
    >>> options = TemplateOptions(merge_partials=True)
    >>> options.layout_tag
    'body'
"""

from vellum.exceptions import ConfigError, ConfigLoadError, ConfigValidationError

from ._loader import copy_value, deep_merge, read_data_file
from ._models import (
    LogFormat,
    LoggingConfig,
    LogLevel,
    TemplateOptions,
    default_rename_key,
)

__all__ = [
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "TemplateOptions",
    "copy_value",
    "deep_merge",
    "default_rename_key",
    "read_data_file",
]
