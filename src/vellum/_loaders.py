"""Named loader stacks and normalization of loaded values into views.

A loader is a function turning caller arguments into view records. Loaders
are registered by name and composed into stacks: the first loader receives
the arguments given to ``Collection.add`` and every following loader
receives the previous loader's return value. The final value is normalized
into views by :func:`views_from_args`.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from vellum.enums import LoaderKind
from vellum.exceptions import ConfigError, NotFoundError

from ._frontmatter import parse_frontmatter
from ._view import VIEW_FIELDS, View

type LoaderFn = Callable[..., Any]  # pyright: ignore[reportExplicitAny]
type LoaderRef = str | LoaderFn | Loader | Iterable[str | LoaderFn | Loader]


@dataclass(frozen=True, slots=True)
class Loader:
    """A loader function and its calling convention.

    Attributes:
        name: Registered name, or the function's name for inline loaders.
        fn: The loader function.
        kind: How the function produces its value.
    """

    name: str
    fn: LoaderFn
    kind: LoaderKind = LoaderKind.SYNC


def infer_kind(fn: LoaderFn) -> LoaderKind:
    """Infer the calling convention of a loader function."""
    if inspect.isasyncgenfunction(fn) or inspect.isgeneratorfunction(fn):
        return LoaderKind.STREAM
    if inspect.iscoroutinefunction(fn):
        return LoaderKind.ASYNC
    return LoaderKind.SYNC


def _function_name(fn: LoaderFn) -> str:
    return getattr(fn, "__name__", None) or type(fn).__name__


class LoaderRegistry:
    """Loader stacks registered by name."""

    def __init__(self) -> None:
        self._stacks: dict[str, list[Loader]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._stacks

    def __len__(self) -> int:
        return len(self._stacks)

    @property
    def names(self) -> list[str]:
        return list(self._stacks)

    def register(
        self,
        name: str,
        *fns: LoaderRef,
        kind: LoaderKind | str | None = None,
    ) -> list[Loader]:
        """Register a loader stack under ``name``.

        Entries may be functions or names of loaders registered earlier, so a
        stack can be built on top of another one.

        Args:
            name: Name of the stack.
            *fns: Loader functions, loader names, or lists of either.
            kind: Calling convention for the given functions. Inferred from
                each function when omitted.

        Returns:
            The resolved stack.

        Raises:
            ConfigError: If the name is empty, no loader is given, or an entry
                is neither callable nor a registered name.
        """
        if not name or not isinstance(name, str):  # pyright: ignore[reportUnnecessaryIsInstance]
            msg = "loader name must be a non-empty string"
            raise ConfigError(msg)
        resolved_kind = LoaderKind(kind) if kind is not None else None
        stack = self.resolve(fns, kind=resolved_kind, default_name=name)
        if not stack:
            msg = f"loader {name!r} needs at least one function"
            raise ConfigError(msg)
        self._stacks[name] = stack
        return stack

    def get(self, name: str) -> list[Loader]:
        """Return the stack registered as ``name``.

        Raises:
            NotFoundError: If no loader is registered under ``name``.
        """
        try:
            return list(self._stacks[name])
        except KeyError:
            msg = f"loader {name!r} is not registered"
            raise NotFoundError(msg, name=name) from None

    def resolve(
        self,
        refs: Iterable[LoaderRef],
        *,
        kind: LoaderKind | None = None,
        default_name: str | None = None,
    ) -> list[Loader]:
        """Flatten loader references into a list of Loaders."""
        stack: list[Loader] = []
        for ref in refs:
            if isinstance(ref, Loader):
                stack.append(ref)
            elif isinstance(ref, str):
                stack.extend(self.get(ref))
            elif callable(ref):
                stack.append(
                    Loader(
                        name=default_name or _function_name(ref),
                        fn=ref,
                        kind=kind or infer_kind(ref),
                    )
                )
            elif isinstance(ref, Iterable):
                stack.extend(self.resolve(ref, kind=kind, default_name=default_name))
            else:
                msg = f"loaders must be callables or names, got {type(ref).__name__}"
                raise ConfigError(msg)
        return stack

    def run(self, stack: list[Loader], args: tuple[object, ...]) -> object:
        """Run a stack synchronously.

        Returns:
            The last loader's value, or ``args`` unchanged for an empty stack.

        Raises:
            ConfigError: If the stack contains an async loader.
        """
        if not stack:
            return args
        value: object = None
        for index, loader in enumerate(stack):
            if loader.kind is LoaderKind.ASYNC:
                msg = f"loader {loader.name!r} is async; use add_async()"
                raise ConfigError(msg)
            value = loader.fn(*args) if index == 0 else loader.fn(value)
            if inspect.isawaitable(value) or isinstance(value, AsyncIterable):
                msg = f"loader {loader.name!r} returned an awaitable; use add_async()"
                raise ConfigError(msg)
            if loader.kind is LoaderKind.STREAM:
                value = _collect(value)  # pyright: ignore[reportArgumentType]
        return value

    async def arun(self, stack: list[Loader], args: tuple[object, ...]) -> object:
        """Run a stack, awaiting async loaders and draining async streams."""
        if not stack:
            return args
        value: object = None
        for index, loader in enumerate(stack):
            value = loader.fn(*args) if index == 0 else loader.fn(value)
            if inspect.isawaitable(value):
                value = await value
            if isinstance(value, AsyncIterable):
                value = _collect([item async for item in value])  # pyright: ignore[reportUnknownVariableType]
            elif loader.kind is LoaderKind.STREAM:
                value = _collect(value)  # pyright: ignore[reportArgumentType]
        return value


def _collect(items: Iterable[object]) -> dict[str, View]:
    """Merge the items yielded by a streaming loader into one mapping of views."""
    views: dict[str, View] = {}
    for item in items:
        if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], str):  # pyright: ignore[reportUnknownArgumentType]
            views.update(views_from_args(*item))  # pyright: ignore[reportUnknownArgumentType]
        else:
            views.update(views_from_args(item))
    return views


def _apply_frontmatter(view: View) -> View:
    data, body = parse_frontmatter(view.content)
    if data:
        view.data = {**view.data, **data}
        view.content = body
    return view


def _from_value(key: str, value: object, locals_: Mapping[str, Any]) -> View:  # pyright: ignore[reportExplicitAny]
    if isinstance(value, View):
        return value
    if isinstance(value, str):
        return View(path=key, content=value, locals=dict(locals_))
    if isinstance(value, Mapping):
        view = View.from_record(key, value)  # pyright: ignore[reportUnknownArgumentType]
        view.locals = {**locals_, **view.locals}
        return view
    msg = f"cannot load view {key!r} from {type(value).__name__}"
    raise ConfigError(msg)


def _is_single_record(value: Mapping[str, Any]) -> bool:  # pyright: ignore[reportExplicitAny]
    return "path" in value and isinstance(value["path"], str) and bool(set(value) & VIEW_FIELDS)


def views_from_args(*args: object) -> dict[str, View]:
    """Normalize loader output or caller arguments into views by key.

    Accepted shapes:

    - ``(key, content[, locals])``;
    - ``(key, record[, locals])`` where ``record`` is a mapping;
    - ``(record,)`` where the record carries its own ``path``;
    - ``(mapping[, locals])`` of keys to records, content strings or views;
    - one or more View instances;
    - lists of any of the above.

    Front matter in each view's content is parsed into ``data``.

    Raises:
        ConfigError: If the arguments match none of the shapes.
    """
    if not args or args[0] is None:
        return {}

    first, rest = args[0], args[1:]
    views: dict[str, View] = {}

    if isinstance(first, View):
        for item in args:
            if not isinstance(item, View):
                msg = f"expected View instances, got {type(item).__name__}"
                raise ConfigError(msg)
            views[item.path] = item
    elif isinstance(first, str):
        value = rest[0] if rest else ""
        locals_ = rest[1] if len(rest) > 1 and isinstance(rest[1], Mapping) else {}
        views[first] = _from_value(first, "" if value is None else value, locals_)  # pyright: ignore[reportUnknownArgumentType]
    elif isinstance(first, Mapping):
        locals_ = rest[0] if rest and isinstance(rest[0], Mapping) else {}
        if _is_single_record(first):  # pyright: ignore[reportUnknownArgumentType]
            key = str(first["path"])
            views[key] = _from_value(key, first, locals_)  # pyright: ignore[reportUnknownArgumentType]
        else:
            for key, value in first.items():  # pyright: ignore[reportUnknownVariableType]
                views[str(key)] = _from_value(str(key), value, locals_)  # pyright: ignore[reportUnknownArgumentType]
    elif isinstance(first, (list, tuple)):
        for item in first:  # pyright: ignore[reportUnknownVariableType]
            if isinstance(item, (list, tuple)):
                views.update(views_from_args(*item))  # pyright: ignore[reportUnknownArgumentType]
            else:
                views.update(views_from_args(item))
    else:
        msg = f"cannot load views from {type(first).__name__}"
        raise ConfigError(msg)

    for view in views.values():
        _ = _apply_frontmatter(view)
    return views
