"""The render orchestrator.

An ``App`` owns every registry used during a render: collections, loaders,
engines, helpers, middleware and the global data store. Rendering a view
runs it through ``pre_render``, context merging, layout application,
compilation, the engine's render step and ``post_render``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

import anyio
from pydantic import ValidationError

from vellum.config import (
    TemplateOptions,
    deep_merge,
    read_data_file,
)
from vellum.enums import Hook, LoaderKind, Role
from vellum.exceptions import (
    ConfigError,
    ConfigValidationError,
    EngineError,
    NotFoundError,
    VellumError,
)
from vellum.utils import create_logger

from ._collection import Collection, CollectionRegistry, RoleLike
from ._context import ContextMerger
from ._engines import EngineRegistry, NoopEngine, RegisteredEngine, normalize_ext
from ._frontmatter import parse_frontmatter
from ._helpers import Helper, HelperRegistry, partial_helper
from ._layouts import LayoutResolver
from ._loaders import LoaderRef, LoaderRegistry, views_from_args
from ._middleware import DispatchCallback, Handler, Route, Router
from ._view import View

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from vellum.exceptions import MiddlewareError

    from ._matcher import PatternLike

type RenderCallback = Callable[[BaseException | None, str | None], object]

_MISSING = object()


class App:
    """Template rendering orchestrator.

    Example:
        >>> app = App()
        >>> _ = app.layouts.add("default", "<main>{% body %}</main>")
        >>> _ = app.pages.add("home.md", "Hello", {"layout": "default"})
        >>> app.render("home.md")
        '<main>Hello</main>'

    Attributes:
        options: Validated app options.
        logger: Bound structlog logger.
        collections: Registered view collections.
        loaders: Named loader stacks.
        engines: Engines by extension.
        helpers: Template helpers.
        router: Middleware router.
        context: Context merger, holding the partials context cache.
        resolver: Layout resolver.
        cache_data: Global data store merged into every context.
        errors: Errors collected while ``silent`` is enabled.
    """

    def __init__(
        self,
        options: TemplateOptions | Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
        **overrides: Any,  # pyright: ignore[reportExplicitAny]
    ) -> None:
        self.options: TemplateOptions = _build_options(options, overrides)
        log_config = self.options.logging
        self.logger: FilteringBoundLogger = create_logger(
            level=log_config.level.value,
            log_format=log_config.format.value,
            log_file=log_config.file,
        ).bind(component="vellum")

        self.cache_data: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
        self.errors: list[BaseException] = []
        self.collections: CollectionRegistry = CollectionRegistry(self)
        self.loaders: LoaderRegistry = LoaderRegistry()
        self.engines: EngineRegistry = EngineRegistry()
        self.helpers: HelperRegistry = HelperRegistry()
        self.router: Router = Router(
            case_sensitive=self.options.case_sensitive_routing,
            strict=self.options.strict_routing,
            logger=self.logger,
        )
        self.context: ContextMerger = ContextMerger(self)
        self.resolver: LayoutResolver = LayoutResolver(self)

        if self.options.default_engines:
            _ = self.engine("*", NoopEngine())
        if self.options.default_collections:
            _ = self.create("page", role=Role.RENDERABLE)
            _ = self.create("layout", role=Role.LAYOUT)
            _ = self.create("partial", role=Role.PARTIAL)

    def __repr__(self) -> str:
        return f"App(collections={self.collections.names!r})"

    def __getattr__(self, name: str) -> Collection:
        # Registered collections are reachable as attributes: ``app.pages``
        collections = self.__dict__.get("collections")
        if name.startswith("_") or collections is None or name not in collections:
            msg = f"{type(self).__name__!r} object has no attribute {name!r}"
            raise AttributeError(msg)
        return collections.collection(name)

    # Options

    def option(
        self,
        key: str | Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        value: object = _MISSING,
    ) -> Any:  # pyright: ignore[reportExplicitAny]
        """Read or write options.

        ``option(key)`` returns the value (None for unknown keys);
        ``option(key, value)`` and ``option(mapping)`` validate and set.

        Raises:
            ConfigValidationError: If a value fails validation.
        """
        if isinstance(key, Mapping):
            for k, v in key.items():
                _ = self.option(k, v)
            return self
        if value is _MISSING:
            return getattr(self.options, key, None)
        try:
            setattr(self.options, key, value)
        except ValidationError as e:
            raise _validation_error(e, key, value) from e
        if key == "case_sensitive_routing":
            self.router.case_sensitive = bool(value)
        elif key == "strict_routing":
            self.router.strict = bool(value)
        return self

    def enable(self, key: str) -> Self:
        _ = self.option(key, True)  # noqa: FBT003
        return self

    def disable(self, key: str) -> Self:
        _ = self.option(key, False)  # noqa: FBT003
        return self

    def enabled(self, key: str) -> bool:
        return bool(self.option(key))

    def disabled(self, key: str) -> bool:
        return not self.option(key)

    def data(
        self,
        value: Mapping[str, Any] | str | Path | None = None,  # pyright: ignore[reportExplicitAny]
    ) -> Any:  # pyright: ignore[reportExplicitAny]
        """Merge data into the global data store, or return the store.

        Args:
            value: A mapping, or the path of a JSON, YAML or TOML file.

        Raises:
            ConfigLoadError: If a data file cannot be parsed.
            ConfigError: If ``value`` is neither a mapping nor a path.
        """
        if value is None:
            return self.cache_data
        if isinstance(value, (str, Path)):
            loaded = read_data_file(Path(value))
            self.logger.debug("Data file loaded", file=str(value), keys=len(loaded))
        elif isinstance(value, Mapping):
            loaded = dict(value)
        else:
            msg = f"data expects a mapping or a file path, got {type(value).__name__}"
            raise ConfigError(msg)
        self.cache_data = deep_merge(self.cache_data, loaded)
        return self

    # Registration

    def create(
        self,
        name: str,
        plural: str | None = None,
        *,
        role: RoleLike | None = None,
        options: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
        loaders: Iterable[LoaderRef] = (),
    ) -> Collection:
        """Create (or update) a view collection.

        Partial collections get a helper named after their singular alias
        unless ``default_helpers`` is disabled.
        """
        collection = self.collections.register(
            name, plural, role=role, options=options, loaders=loaders
        )
        if (
            Role.PARTIAL in collection.roles
            and self.options.default_helpers
            and collection.alias.isidentifier()
        ):
            self.helpers.add(collection.alias, partial_helper(collection.name))
        self.logger.debug(
            "Collection created",
            collection=collection.name,
            roles=[r.value for r in collection.roles],
        )
        return collection

    def collection(self, name: str) -> Collection:
        """Return a collection by plural name or singular alias."""
        return self.collections.collection(name)

    def loader(
        self,
        name: str,
        *fns: LoaderRef,
        kind: LoaderKind | str | None = None,
    ) -> Self:
        """Register a named loader stack."""
        _ = self.loaders.register(name, *fns, kind=kind)
        return self

    def engine(
        self,
        exts: str | Iterable[str],
        engine: object,
        **options: Any,  # pyright: ignore[reportExplicitAny]
    ) -> Self:
        """Register an engine for one or more extensions."""
        registered = self.engines.register(exts, engine, **options)
        self.logger.debug(
            "Engine registered",
            engine=type(engine).__name__,
            exts=[e.ext for e in registered],
        )
        return self

    def get_engine(self, ext: str | None) -> RegisteredEngine:
        return self.engines.get(ext)

    def engine_for(self, view: View) -> RegisteredEngine:
        """Select the engine for ``view``.

        Tries the view's ``engine`` field, its ``engine`` option and its
        extension, then falls back to the ``view_engine`` option.
        """
        for ext in (view.engine, view.options.get("engine"), view.ext):
            if ext and normalize_ext(str(ext)) in self.engines:
                return self.engines.get(str(ext))
        return self.engines.get(self.options.view_engine)

    def helper(self, name: str, fn: Helper) -> Self:
        self.helpers.add(name, fn)
        return self

    # Loading

    def load(
        self,
        collection: Collection | str,
        args: tuple[object, ...],
        loaders: Iterable[LoaderRef] = (),
    ) -> dict[str, View]:
        """Load views into ``collection`` through its loader stack."""
        target = self._collection(collection)
        stack = self.loaders.resolve([*target.loaders, *loaders])  # pyright: ignore[reportArgumentType]
        value = self.loaders.run(stack, args)
        views = views_from_args(*args) if not stack else views_from_args(value)
        return self._store(target, views)

    async def load_async(
        self,
        collection: Collection | str,
        args: tuple[object, ...],
        loaders: Iterable[LoaderRef] = (),
    ) -> dict[str, View]:
        """Load views, awaiting async loaders and draining async streams."""
        target = self._collection(collection)
        stack = self.loaders.resolve([*target.loaders, *loaders])  # pyright: ignore[reportArgumentType]
        value = await self.loaders.arun(stack, args)
        views = views_from_args(*args) if not stack else views_from_args(value)
        return self._store(target, views)

    def _collection(self, collection: Collection | str) -> Collection:
        return collection if isinstance(collection, Collection) else self.collection(collection)

    def _store(self, collection: Collection, views: Mapping[str, View]) -> dict[str, View]:
        for key, view in views.items():
            _ = collection.put(key, view)
            _ = self.router.dispatch_once(Hook.ON_LOAD, view)
        self.logger.debug("Views loaded", collection=collection.name, count=len(views))
        return dict(views)

    # Middleware

    def use(
        self,
        pattern: PatternLike | Handler | Iterable[Handler] = None,
        *handlers: Handler | Iterable[Handler],
    ) -> Self:
        _ = self.router.use(pattern, *handlers)
        return self

    def on(
        self,
        hook: Hook | str,
        pattern: PatternLike,
        *handlers: Handler | Iterable[Handler],
    ) -> Self:
        _ = self.router.on(hook, pattern, *handlers)
        return self

    def all(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.ALL, pattern, *handlers)

    def on_load(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.ON_LOAD, pattern, *handlers)

    def pre_layout(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.PRE_LAYOUT, pattern, *handlers)

    def post_layout(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.POST_LAYOUT, pattern, *handlers)

    def pre_compile(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.PRE_COMPILE, pattern, *handlers)

    def post_compile(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.POST_COMPILE, pattern, *handlers)

    def pre_render(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.PRE_RENDER, pattern, *handlers)

    def post_render(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.POST_RENDER, pattern, *handlers)

    def on_merge(self, pattern: PatternLike, *handlers: Handler | Iterable[Handler]) -> Self:
        return self.on(Hook.ON_MERGE, pattern, *handlers)

    def route(self, pattern: PatternLike) -> Route:
        return self.router.route(pattern)

    def handle(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
    ) -> MiddlewareError | None:
        return self.router.handle(hook, view, callback)

    def dispatch(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
    ) -> MiddlewareError | None:
        return self.router.dispatch(hook, view, callback)

    def dispatch_once(
        self,
        hook: Hook | str,
        view: View,
        callback: DispatchCallback | None = None,
    ) -> MiddlewareError | None:
        return self.router.dispatch_once(hook, view, callback)

    def _run_hook(self, hook: Hook, view: View) -> None:
        """Dispatch ``hook`` once for ``view``, raising the chain's error."""
        failures: list[MiddlewareError] = []

        def collect(err: MiddlewareError | None, _view: View) -> None:
            if err is not None:
                failures.append(err)

        _ = self.router.dispatch_once(hook, view, collect)
        if failures:
            raise failures[0]

    # Errors

    def error(
        self,
        method: str,
        err: BaseException | str,
        view: View | None = None,
    ) -> BaseException:
        """Apply the error policy to a render-time error.

        In silent mode the error is logged, appended to ``errors`` and
        returned; otherwise it is logged and raised.

        Args:
            method: Name of the API method reporting the error.
            err: An exception, or a message for a new VellumError.
            view: The view being processed, if any.

        Returns:
            The error, when silent mode is enabled.
        """
        exc = self._record(method, err, view)
        if not self.options.silent:
            raise exc
        return exc

    def fail(
        self,
        method: str,
        err: BaseException | str,
        view: View | None = None,
        *,
        callback: RenderCallback | None = None,
    ) -> None:
        """Report a render-time error through ``callback`` or the error policy."""
        if callback is None:
            _ = self.error(method, err, view)
            return
        exc = self._record(method, err, view)
        _ = callback(exc, None)

    def _record(
        self,
        method: str,
        err: BaseException | str,
        view: View | None,
    ) -> BaseException:
        path = view.path if view is not None else ""
        prefix = f"App.{method}:{path}:"
        if isinstance(err, str):
            exc: BaseException = VellumError(f"{prefix} {err}")
        else:
            exc = err
            if isinstance(exc, VellumError) and exc.args and not str(exc.args[0]).startswith("App."):
                exc.args = (f"{prefix} {exc.args[0]}", *exc.args[1:])
        if self.options.silent:
            self.errors.append(exc)
        self.logger.error(
            "Render error",
            method=method,
            path=path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return exc

    # Rendering

    def build_context(
        self,
        view: View,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        """Build the render context for ``view``."""
        return self.context.build_context(view, locals)

    def merge_partials(
        self,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        """Return the content of every mergeable partial, wrapped in its layouts."""
        return self.context.merge_partials(locals)

    def apply_layout(
        self,
        view: View,
        context: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
    ) -> str:
        """Wrap ``view`` in its layouts once, dispatching the layout hooks around it."""
        if view.layout_applied:
            return view.content
        self._run_hook(Hook.PRE_LAYOUT, view)
        content = self.resolver.apply_layout(view, context)
        self._run_hook(Hook.POST_LAYOUT, view)
        return content

    def resolve(self, target: View | str) -> View:
        """Resolve a render target to a view.

        A string matching a renderable view's key resolves to that view; any
        other string becomes an inline view with the string as content.
        """
        if isinstance(target, View):
            return target
        view = self.collections.find_first(Role.RENDERABLE, target)
        if view is not None:
            return view
        return self._inline(target)

    def _inline(self, content: str) -> View:
        # Inline views get "." so match-all expressions like re.compile(".") apply
        data, body = parse_frontmatter(content)
        return View(path=".", content=body, orig=content, data=dict(data))

    def render(
        self,
        target: View | str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> str | None:
        """Render a view, a renderable view's key, or an inline template string.

        Args:
            target: A View, the key of a renderable view, or template content.
            locals: Locals merged into the context with the highest precedence.
            callback: Called once as ``callback(err, content)``. Without a
                callback the result is returned and errors are raised (or
                collected, in silent mode).

        Returns:
            The rendered content, or None in callback form or when a silent
            error occurred.
        """
        return self.render_view(self.resolve(target), locals, callback)

    def render_string(
        self,
        text: str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> str | None:
        """Render ``text`` as an inline template without key lookup."""
        return self.render_view(self._inline(text), locals, callback)

    def render_each(
        self,
        collection: Collection | str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> dict[str, str | None]:
        """Render every view of ``collection`` in insertion order."""
        return self._collection(collection).render_each(locals, callback)

    async def render_async(
        self,
        target: View | str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> str | None:
        """Awaitable form of ``render`` built on the callback form.

        Raises:
            VellumError: If the render fails and silent mode is disabled.
        """
        done = anyio.Event()
        outcome: list[tuple[BaseException | None, str | None]] = []

        def callback(err: BaseException | None, content: str | None) -> None:
            outcome.append((err, content))
            done.set()

        _ = self.render(target, locals, callback)
        await done.wait()
        err, content = outcome[0]
        if err is not None and not self.options.silent:
            raise err
        return content

    def compile(
        self,
        target: View | str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> object:
        """Apply layouts and compile ``target`` without rendering it.

        Returns:
            The compiled handle, or None when a silent error occurred.
        """
        view = self.resolve(target)
        try:
            engine = self.engine_for(view)
            return self._compile(view, self.build_context(view, locals), engine)
        except VellumError as e:
            _ = self.error("compile", e, view)
            return None

    def _compile(
        self,
        view: View,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        engine: RegisteredEngine,
    ) -> object:
        if view.fn is not None:
            return view.fn
        content = self.apply_layout(view, context)
        self._run_hook(Hook.PRE_COMPILE, view)
        options = {
            **view.options,
            "path": view.path,
            "context": context,
            "helpers": self.helpers.bind(self, context, view.options),
        }
        view.fn = self._call_engine(engine, view, lambda: engine.compile(content, options))
        self.logger.debug("View compiled", path=view.path, engine=engine.ext)
        self._run_hook(Hook.POST_COMPILE, view)
        return view.fn

    def _call_engine[T](self, engine: RegisteredEngine, view: View, call: Callable[[], T]) -> T:
        try:
            return call()
        except VellumError:
            raise
        except Exception as e:
            raise _engine_error(engine, view, e) from e

    def render_view(
        self,
        view: View,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> str | None:
        """Render ``view`` through the full lifecycle."""
        try:
            self._run_hook(Hook.PRE_RENDER, view)
            context = self.build_context(view, locals)
            engine = self.engine_for(view)
            template = self._compile(view, context, engine)
        except VellumError as e:
            self.fail("render", e, view, callback=callback)
            return None

        if callback is None:
            try:
                result = self._call_engine(
                    engine, view, lambda: engine.render_sync(template, context)
                )
                return self._finish(view, result)
            except VellumError as e:
                _ = self.error("render", e, view)
                return None

        called = False

        def done(err: BaseException | None, result: str | None) -> None:
            nonlocal called
            if called:
                return
            called = True
            if err is not None:
                self.fail("render", _engine_error(engine, view, err), view, callback=callback)
                return
            try:
                content = self._finish(view, "" if result is None else str(result))
            except VellumError as e:
                self.fail("render", e, view, callback=callback)
                return
            _ = callback(None, content)

        try:
            engine.render(template, context, done)
        except Exception as e:
            if called:
                raise
            done(e, None)
        return None

    def _finish(self, view: View, result: str) -> str:
        view.content = result
        view.rendered = True
        self._run_hook(Hook.POST_RENDER, view)
        self.logger.debug("View rendered", path=view.path)
        return view.content

    def render_partial(
        self,
        collection: str,
        name: str,
        context: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> str:
        """Render a partial for a template helper.

        The partial sees the caller's context, overridden by its own merged
        context, overridden by ``locals``.

        Raises:
            NotFoundError: If the partial does not exist.
        """
        target = self.collection(collection)
        view = target.find(name)
        if view is None:
            msg = f"{target.name}: cannot find partial {name!r}"
            raise NotFoundError(msg, name=name, collection=target.name)
        merged = {**context, **self.context.build_context(view, locals, include_partials=False)}
        content = self.apply_layout(view, merged)
        engine = self.engine_for(view)
        options = {"path": view.path, "context": merged, "helpers": self.helpers.bind(self, merged)}
        template = self._call_engine(engine, view, lambda: engine.compile(content, options))
        return self._call_engine(engine, view, lambda: engine.render_sync(template, merged))


def _engine_error(engine: RegisteredEngine, view: View, err: BaseException) -> VellumError:
    if isinstance(err, VellumError):
        return err
    msg = f"{engine.name} failed for {view.path!r}: {err}"
    exc = EngineError(msg, engine=engine.ext, path=view.path, cause=err)
    exc.__cause__ = err
    return exc


def _build_options(
    options: TemplateOptions | Mapping[str, Any] | None,  # pyright: ignore[reportExplicitAny]
    overrides: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
) -> TemplateOptions:
    if isinstance(options, TemplateOptions):
        base = options.model_dump()
    else:
        base = dict(options or {})
    base.update(overrides)
    try:
        return TemplateOptions.model_validate(base)
    except ValidationError as e:
        key = ".".join(str(p) for p in e.errors()[0]["loc"]) if e.errors() else ""
        raise _validation_error(e, key, base.get(key)) from e


def _validation_error(e: ValidationError, key: str, value: object) -> ConfigValidationError:
    details = e.errors()
    expected = details[0]["msg"] if details else "a valid value"
    msg = f"invalid option {key!r}: {expected}"
    return ConfigValidationError(msg, key=key, value=value, expected=expected)
