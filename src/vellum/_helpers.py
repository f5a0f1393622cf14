"""Template helpers and the default partial helper."""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from vellum.exceptions import ConfigError

if TYPE_CHECKING:
    from ._app import App

type Helper = Callable[..., Any]  # pyright: ignore[reportExplicitAny]


@dataclass(frozen=True, slots=True)
class HelperContext:
    """Passed as the first argument to every helper call.

    Attributes:
        app: The app performing the render.
        context: The render context of the view being compiled.
        options: The compile options.
    """

    app: App
    context: Mapping[str, Any]  # pyright: ignore[reportExplicitAny]
    options: Mapping[str, Any]  # pyright: ignore[reportExplicitAny]


class HelperRegistry:
    """Helpers by name."""

    def __init__(self) -> None:
        self._helpers: dict[str, Helper] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._helpers

    def __len__(self) -> int:
        return len(self._helpers)

    def __iter__(self) -> Iterator[str]:
        return iter(self._helpers)

    def add(self, name: str, fn: Helper) -> None:
        """Register ``fn`` as helper ``name``, replacing any existing one.

        Raises:
            ConfigError: If the name is not an identifier or fn is not callable.
        """
        if not isinstance(name, str) or not name.isidentifier():  # pyright: ignore[reportUnnecessaryIsInstance]
            msg = f"helper name must be an identifier, got {name!r}"
            raise ConfigError(msg)
        if not callable(fn):
            msg = f"helper {name!r} must be callable"
            raise ConfigError(msg)
        self._helpers[name] = fn

    def add_many(self, helpers: Mapping[str, Helper]) -> None:
        for name, fn in helpers.items():
            self.add(name, fn)

    def get(self, name: str) -> Helper | None:
        return self._helpers.get(name)

    def bind(
        self,
        app: App,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        options: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
    ) -> dict[str, Callable[..., Any]]:  # pyright: ignore[reportExplicitAny]
        """Bind every helper to a HelperContext for one compile."""
        ctx = HelperContext(app=app, context=context, options=options or {})
        return {name: functools.partial(fn, ctx) for name, fn in self._helpers.items()}


def partial_helper(collection: str) -> Helper:
    """Build the default helper rendering a view from ``collection``.

    The returned helper is called from templates as ``partial(name, **locals)``
    and returns the partial's rendered content.
    """

    def render_partial(
        ctx: HelperContext,
        name: str,
        /,
        **locals: Any,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> str:
        return ctx.app.render_partial(collection, name, ctx.context, locals)

    render_partial.__name__ = f"render_{collection}"
    return render_partial
