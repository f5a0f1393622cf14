"""Vellum exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class VellumError(Exception):
    """Base exception for Vellum errors."""


class ConfigError(VellumError):
    """Raised for invalid arguments to registration and configuration APIs."""


class ConfigLoadError(ConfigError):
    """Raised when a data or configuration file cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when an option value fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: object,
        expected: str,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: object = value
        self.expected: str = expected


class NotFoundError(VellumError, KeyError):
    """Raised when a collection, view or engine cannot be found.

    Attributes:
        name: The key or extension that could not be resolved.
        collection: The collection that was searched, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        name: str | None = None,
        collection: str | None = None,
    ) -> None:
        """Initialize with error message and lookup context.

        Args:
            message: Human-readable error message.
            name: The key or extension that could not be resolved.
            collection: The collection that was searched, if any.
        """
        super().__init__(message)
        self.name: str | None = name
        self.collection: str | None = collection

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class MiddlewareError(VellumError):
    """Raised when a middleware handler aborts its chain.

    Attributes:
        hook: The lifecycle hook being dispatched.
        path: Path of the view that was being handled.
        cause: The error passed to ``next_`` or raised by the handler.
    """

    def __init__(
        self,
        message: str,
        *,
        hook: str,
        path: str,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize with error message and dispatch context."""
        super().__init__(message)
        self.hook: str = hook
        self.path: str = path
        self.cause: BaseException | None = cause


class EngineError(VellumError):
    """Raised when an engine adapter fails to compile or render.

    Attributes:
        engine: The extension the engine is registered under.
        path: Path of the view being processed.
        cause: The original exception raised by the adapter.
    """

    def __init__(
        self,
        message: str,
        *,
        engine: str,
        path: str,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize with error message and engine context."""
        super().__init__(message)
        self.engine: str = engine
        self.path: str = path
        self.cause: BaseException | None = cause
