"""Template engine adapters and the registry selecting them by extension.

An engine is any object with a ``render(template, context, callback=None)``
method. ``compile(content, options)`` and ``render_sync(template, context)``
are optional: without ``compile`` the raw content is passed to ``render``,
and without ``render_sync`` synchronous rendering calls ``render`` with no
callback and uses its return value.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from vellum.exceptions import ConfigError, NotFoundError

if TYPE_CHECKING:
    from jinja2 import Environment

type EngineCallback = Callable[[BaseException | None, str | None], object]

CATCH_ALL = "*"


@runtime_checkable
class Engine(Protocol):
    """Minimal engine interface."""

    def render(
        self,
        template: Any,  # pyright: ignore[reportExplicitAny]
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        callback: EngineCallback | None = None,
    ) -> str | None: ...


def normalize_ext(ext: str) -> str:
    """Normalize an extension to ``.ext`` form; ``*`` and ``.*`` mean catch-all.

    Examples:
        >>> normalize_ext("HBS")
        '.hbs'
        >>> normalize_ext(".*")
        '*'
    """
    ext = ext.strip().lower()
    if ext in {CATCH_ALL, f".{CATCH_ALL}"}:
        return CATCH_ALL
    if not ext or ext == ".":
        msg = "engine extension must be a non-empty string"
        raise ConfigError(msg)
    return ext if ext.startswith(".") else f".{ext}"


@dataclass(slots=True)
class RegisteredEngine:
    """An engine bound to an extension together with its options.

    Attributes:
        ext: Normalized extension the engine is registered under.
        engine: The engine adapter.
        options: Options given at registration.
    """

    ext: str
    engine: Engine
    options: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]

    @property
    def name(self) -> str:
        return type(self.engine).__name__

    def compile(self, content: str, options: Mapping[str, Any]) -> object:  # pyright: ignore[reportExplicitAny]
        """Compile ``content``, or return it unchanged if the engine cannot compile."""
        compile_ = getattr(self.engine, "compile", None)
        if compile_ is None:
            return content
        return compile_(content, {**self.options, **options})

    def render(
        self,
        template: object,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        callback: EngineCallback,
    ) -> None:
        """Render in callback style."""
        _ = self.engine.render(template, context, callback)

    def render_sync(self, template: object, context: Mapping[str, Any]) -> str:  # pyright: ignore[reportExplicitAny]
        """Render and return the result directly."""
        render_sync = getattr(self.engine, "render_sync", None)
        result = (
            render_sync(template, context)
            if render_sync is not None
            else self.engine.render(template, context)
        )
        return "" if result is None else str(result)


class EngineRegistry:
    """Engines registered by file extension."""

    def __init__(self) -> None:
        self._engines: dict[str, RegisteredEngine] = {}

    def __contains__(self, ext: object) -> bool:
        return isinstance(ext, str) and normalize_ext(ext) in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    @property
    def extensions(self) -> list[str]:
        return list(self._engines)

    def register(
        self,
        exts: str | Iterable[str],
        engine: object,
        **options: Any,  # pyright: ignore[reportExplicitAny]
    ) -> list[RegisteredEngine]:
        """Register ``engine`` for one or more extensions.

        Raises:
            ConfigError: If the engine has no callable ``render``, or an
                optional ``compile``/``render_sync`` attribute is not callable.
        """
        if not callable(getattr(engine, "render", None)):
            msg = f"engine {type(engine).__name__} must define a render method"
            raise ConfigError(msg)
        for optional in ("compile", "render_sync"):
            attr = getattr(engine, optional, None)
            if attr is not None and not callable(attr):
                msg = f"engine {type(engine).__name__}.{optional} must be callable"
                raise ConfigError(msg)

        ext_list = [exts] if isinstance(exts, str) else list(exts)
        if not ext_list:
            msg = "engine needs at least one extension"
            raise ConfigError(msg)
        registered: list[RegisteredEngine] = []
        for ext in ext_list:
            entry = RegisteredEngine(ext=normalize_ext(ext), engine=engine, options=dict(options))  # pyright: ignore[reportArgumentType]
            self._engines[entry.ext] = entry
            registered.append(entry)
        return registered

    def get(self, ext: str | None) -> RegisteredEngine:
        """Return the engine for ``ext``, falling back to the catch-all.

        Raises:
            NotFoundError: If neither ``ext`` nor ``*`` is registered.
        """
        if ext:
            entry = self._engines.get(normalize_ext(ext))
            if entry is not None:
                return entry
        entry = self._engines.get(CATCH_ALL)
        if entry is None:
            msg = f"no engine registered for {ext!r}"
            raise NotFoundError(msg, name=ext)
        return entry


class NoopEngine:
    """Returns content unchanged."""

    def compile(self, content: str, options: Mapping[str, Any] | None = None) -> str:  # pyright: ignore[reportExplicitAny]  # noqa: ARG002
        return content

    def render(
        self,
        template: object,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]  # noqa: ARG002
        callback: EngineCallback | None = None,
    ) -> str | None:
        result = str(template)
        if callback is not None:
            _ = callback(None, result)
            return None
        return result


@dataclass(slots=True, frozen=True)
class EnvironmentConfig:
    """Configuration for Jinja2 Environment.

    Attributes:
        autoescape: Enable autoescaping (default: False for markdown/text templates).
        trim_blocks: Remove first newline after a block tag.
        lstrip_blocks: Strip leading whitespace before block tags.
        keep_trailing_newline: Preserve trailing newline in templates.
    """

    autoescape: bool = False
    trim_blocks: bool = False
    lstrip_blocks: bool = False
    keep_trailing_newline: bool = True


def create_environment(config: EnvironmentConfig | None = None) -> Environment:
    """Create a Jinja2 Environment for string templates.

    Views are loaded through collections, so the environment has no template
    loader; templates are compiled from view content with ``from_string``.

    Args:
        config: Optional environment configuration. If None, uses defaults.

    Returns:
        Configured Jinja2 Environment.
    """
    from jinja2 import Environment  # noqa: PLC0415

    if config is None:
        config = EnvironmentConfig()

    return Environment(
        autoescape=config.autoescape,  # noqa: S701
        trim_blocks=config.trim_blocks,
        lstrip_blocks=config.lstrip_blocks,
        keep_trailing_newline=config.keep_trailing_newline,
    )


class Jinja2Engine:
    """Engine adapter rendering view content as Jinja2 templates.

    Helpers passed in the compile options are exposed as template globals, so
    ``{{ partial("nav") }}`` calls the default partial helper.
    """

    def __init__(
        self,
        config: EnvironmentConfig | None = None,
        *,
        environment: Environment | None = None,
    ) -> None:
        self.env: Environment = environment or create_environment(config)

    def compile(self, content: str, options: Mapping[str, Any] | None = None) -> object:  # pyright: ignore[reportExplicitAny]
        helpers = dict((options or {}).get("helpers") or {})
        return self.env.from_string(content, globals=helpers)

    def render_sync(self, template: object, context: Mapping[str, Any]) -> str:  # pyright: ignore[reportExplicitAny]
        compiled = self.compile(template) if isinstance(template, str) else template
        return compiled.render(dict(context))  # pyright: ignore[reportAttributeAccessIssue, reportUnknownMemberType, reportUnknownVariableType]

    def render(
        self,
        template: object,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        callback: EngineCallback | None = None,
    ) -> str | None:
        if callback is None:
            return self.render_sync(template, context)
        try:
            result = self.render_sync(template, context)
        except Exception as e:  # noqa: BLE001
            _ = callback(e, None)
            return None
        _ = callback(None, result)
        return None
