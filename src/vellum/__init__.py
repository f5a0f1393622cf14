r"""Vellum template rendering.

Named collections of views (pages, layouts, partials), a precedence-ordered
context merge, stack-based layout wrapping, and path-matched middleware run
at each step of a view's lifecycle.

Basic usage:
    from vellum import App

    app = App(merge_partials=True)
    app.layouts.add("default", "<main>{% body %}</main>")
    app.partials.add("nav", "<nav>...</nav>")
    app.pages.add("home.md", "---\ntitle: Home\n---\nWelcome", {"layout": "default"})

    html = app.render("home.md", {"user": "ada"})

With Jinja2 and middleware:
    from vellum import App, Jinja2Engine

    app = App(view_engine=".j2")
    app.engine(".j2", Jinja2Engine())

    def stamp(view, next_):
        view.content += "\n<!-- built -->"
        next_()

    app.pre_render("*.j2", stamp)
    app.pages.add("about.j2", "{{ partial('nav') }}<h1>{{ title }}</h1>")
    html = app.render("about.j2", {"title": "About"})
"""

from vellum.config import LoggingConfig, TemplateOptions
from vellum.enums import Hook, LoaderKind, Role, ViewState
from vellum.exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    EngineError,
    MiddlewareError,
    NotFoundError,
    VellumError,
)

from ._app import App, RenderCallback
from ._collection import Collection, CollectionRegistry
from ._context import ContextMerger
from ._engines import (
    Engine,
    EngineRegistry,
    EnvironmentConfig,
    Jinja2Engine,
    NoopEngine,
    RegisteredEngine,
    create_environment,
)
from ._frontmatter import parse_frontmatter
from ._helpers import HelperContext, HelperRegistry
from ._layouts import LayoutFrame, LayoutResolver, LayoutResult, apply_layouts
from ._loaders import Loader, LoaderRegistry, views_from_args
from ._matcher import PathPattern, compile_pattern
from ._middleware import Layer, Route, Router
from ._view import View

__all__ = [
    "App",
    "Collection",
    "CollectionRegistry",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ContextMerger",
    "Engine",
    "EngineError",
    "EngineRegistry",
    "EnvironmentConfig",
    "HelperContext",
    "HelperRegistry",
    "Hook",
    "Jinja2Engine",
    "Layer",
    "LayoutFrame",
    "LayoutResolver",
    "LayoutResult",
    "Loader",
    "LoaderKind",
    "LoaderRegistry",
    "LoggingConfig",
    "MiddlewareError",
    "NoopEngine",
    "NotFoundError",
    "PathPattern",
    "RegisteredEngine",
    "RenderCallback",
    "Role",
    "Route",
    "Router",
    "TemplateOptions",
    "VellumError",
    "View",
    "ViewState",
    "apply_layouts",
    "compile_pattern",
    "create_environment",
    "parse_frontmatter",
    "views_from_args",
]
