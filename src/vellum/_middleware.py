"""Path-matched middleware dispatch for view lifecycle hooks.

Handlers are registered against a path pattern and a hook (or ``all``). When
a hook is dispatched for a view, every handler whose pattern matches the
view's path runs in registration order. Each handler receives the view and a
``next_`` function; calling ``next_()`` advances the chain and calling
``next_(err)`` aborts it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, Self

from vellum.enums import Hook
from vellum.exceptions import ConfigError, MiddlewareError

from ._matcher import PathPattern, PatternLike, compile_pattern

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._view import View


class Next(Protocol):
    """Continuation passed to middleware handlers."""

    def __call__(self, err: BaseException | str | None = None, /) -> None: ...


type Handler = Callable[[View, Next], object]
type DispatchCallback = Callable[[MiddlewareError | None, View], object]


@dataclass(frozen=True, slots=True)
class Layer:
    """Handlers registered for one pattern and hook.

    Attributes:
        pattern: The compiled path pattern.
        hook: The hook the handlers run on, or ``Hook.ALL``.
        handlers: Handlers in registration order.
    """

    pattern: PathPattern
    hook: Hook
    handlers: tuple[Handler, ...]

    def applies_to(self, hook: Hook) -> bool:
        """Return True if this layer runs when ``hook`` is dispatched."""
        return self.hook is Hook.ALL or self.hook is hook


@dataclass(slots=True)
class _ChainState:
    index: int = 0
    finished: bool = False
    returned: bool = False
    error: MiddlewareError | None = None
    steps: list[tuple[Handler, dict[str, str]]] = field(default_factory=list)


def coerce_hook(hook: Hook | str) -> Hook:
    """Convert a hook name to a Hook, raising ConfigError for unknown names."""
    try:
        return Hook(hook)
    except ValueError:
        valid = ", ".join(h.value for h in Hook)
        msg = f"unknown hook {hook!r}; expected one of: {valid}"
        raise ConfigError(msg) from None


def _flatten(handlers: Iterable[object]) -> list[Handler]:
    flat: list[Handler] = []
    for item in handlers:
        if isinstance(item, (list, tuple)):
            flat.extend(_flatten(item))  # pyright: ignore[reportUnknownArgumentType]
        elif callable(item):
            flat.append(item)  # pyright: ignore[reportArgumentType]
        else:
            msg = f"middleware handlers must be callable, got {type(item).__name__}"
            raise ConfigError(msg)
    return flat


class Route:
    """Builder registering handlers against one pattern."""

    def __init__(self, router: Router, pattern: PatternLike) -> None:
        self.router: Router = router
        self.pattern: PatternLike = pattern

    def all(self, *handlers: Handler | Iterable[Handler]) -> Self:
        """Register handlers that run on every hook."""
        _ = self.router.on(Hook.ALL, self.pattern, *handlers)
        return self

    def on(self, hook: Hook | str, *handlers: Handler | Iterable[Handler]) -> Self:
        """Register handlers for a single hook."""
        _ = self.router.on(hook, self.pattern, *handlers)
        return self


class Router:
    """Registry of middleware layers and the dispatcher running them."""

    def __init__(
        self,
        *,
        case_sensitive: bool = False,
        strict: bool = False,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.case_sensitive: bool = case_sensitive
        self.strict: bool = strict
        self.layers: list[Layer] = []
        self._logger: FilteringBoundLogger | None = logger

    def __len__(self) -> int:
        return len(self.layers)

    def use(
        self,
        pattern: PatternLike | Handler | Iterable[Handler] = None,
        *handlers: Handler | Iterable[Handler],
    ) -> Self:
        """Register handlers that run on every hook.

        When the first argument is a handler (or a list of handlers) the
        pattern defaults to ``"/"``, which matches every path.

        Raises:
            ConfigError: If no handlers are given.
        """
        if callable(pattern) or isinstance(pattern, (list, tuple)):
            handlers = (pattern, *handlers)  # pyright: ignore[reportAssignmentType]
            pattern = "/"
        return self.on(Hook.ALL, pattern, *handlers)  # pyright: ignore[reportArgumentType]

    def on(
        self,
        hook: Hook | str,
        pattern: PatternLike,
        *handlers: Handler | Iterable[Handler],
    ) -> Self:
        """Register handlers for ``hook`` on paths matching ``pattern``.

        Raises:
            ConfigError: If the hook is unknown, no handlers are given, or a
                handler is not callable.
        """
        resolved = coerce_hook(hook)
        flat = _flatten(handlers)
        if not flat:
            msg = f"expects middleware functions for pattern {pattern!r}"
            raise ConfigError(msg)
        try:
            compiled = compile_pattern(
                pattern, case_sensitive=self.case_sensitive, strict=self.strict
            )
        except TypeError as e:
            raise ConfigError(str(e)) from e
        self.layers.append(Layer(pattern=compiled, hook=resolved, handlers=tuple(flat)))
        if self._logger is not None:
            self._logger.debug(
                "Middleware registered",
                hook=resolved.value,
                pattern=str(pattern),
                handlers=len(flat),
            )
        return self

    def route(self, pattern: PatternLike) -> Route:
        """Return a Route builder for ``pattern``."""
        return Route(self, pattern)

    def stack(self, hook: Hook | str, path: str) -> list[tuple[Handler, dict[str, str]]]:
        """Return the handlers that apply to ``path`` for ``hook``, in order."""
        resolved = coerce_hook(hook)
        steps: list[tuple[Handler, dict[str, str]]] = []
        for layer in self.layers:
            if not layer.applies_to(resolved):
                continue
            params = layer.pattern.match(path)
            if params is None:
                continue
            steps.extend((handler, params) for handler in layer.handlers)
        return steps

    def handle(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
    ) -> MiddlewareError | None:
        """Dispatch ``hook`` for ``view`` without the already-handled guard."""
        return self.dispatch(hook, view, callback)

    def dispatch_once(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
    ) -> MiddlewareError | None:
        """Dispatch ``hook`` unless the view was already handled for it."""
        return self.dispatch(hook, view, callback, once=True)

    def dispatch(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
        *,
        once: bool = False,
    ) -> MiddlewareError | None:
        """Run the middleware stack for ``hook`` against ``view``.

        Handlers run sequentially. A handler calling ``next_(err)`` or raising
        aborts the chain; the error is delivered to ``callback`` as a
        MiddlewareError. Without a callback the error is logged and swallowed.
        On success the view is marked handled for ``hook``.

        A view already running ``hook`` is not re-entered: the nested dispatch
        completes immediately without running any handler.

        Args:
            hook: The hook to dispatch.
            view: The view to pass through the stack.
            callback: Called as ``callback(err, view)`` once the chain ends.
            once: Skip the dispatch if the view is already handled for ``hook``.

        Returns:
            The error if the chain completed synchronously with one, else None.
        """
        resolved = coerce_hook(hook)

        if (once and resolved in view.handled) or resolved in view.running:
            if self._logger is not None:
                self._logger.debug(
                    "Dispatch skipped",
                    hook=resolved.value,
                    path=view.path,
                    reason="handled" if resolved in view.handled else "running",
                )
            if callback is not None:
                _ = callback(None, view)
            return None

        state = _ChainState(steps=self.stack(resolved, view.path))
        view.method = resolved
        view.running.add(resolved)

        def complete() -> None:
            view.running.discard(resolved)
            if state.error is None:
                view.handled.add(resolved)
            elif callback is None and self._logger is not None:
                self._logger.error(
                    "Middleware error",
                    hook=resolved.value,
                    path=view.path,
                    error=str(state.error.cause or state.error),
                )
            if callback is not None:
                _ = callback(state.error, view)

        def finish(error: MiddlewareError | None) -> None:
            if state.finished:
                return
            state.finished = True
            state.error = error
            # Deferred handlers complete the chain after dispatch returned
            if state.returned:
                complete()

        def next_(err: BaseException | str | None = None, /) -> None:
            if state.finished:
                return
            if err:
                finish(_wrap_error(resolved, view, err))
                return
            if state.index >= len(state.steps):
                finish(None)
                return
            handler, params = state.steps[state.index]
            state.index += 1
            view.params = params
            try:
                _ = handler(view, next_)
            except Exception as exc:  # noqa: BLE001
                finish(_wrap_error(resolved, view, exc))

        next_()
        state.returned = True
        if state.finished:
            complete()
            return state.error
        return None


def _wrap_error(hook: Hook, view: View, err: BaseException | str) -> MiddlewareError:
    if isinstance(err, MiddlewareError):
        return err
    cause = err if isinstance(err, BaseException) else None
    msg = f"{hook.value} middleware failed for {view.path!r}: {err}"
    return MiddlewareError(msg, hook=hook.value, path=view.path, cause=cause)
