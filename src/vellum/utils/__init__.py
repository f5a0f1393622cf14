"""Shared utilities for Vellum."""

from ._inflect import is_plural, pluralize, singularize
from ._logging import LogFormatType, create_logger

__all__ = [
    "LogFormatType",
    "create_logger",
    "is_plural",
    "pluralize",
    "singularize",
]
