"""Enumeration types for Vellum."""

from enum import StrEnum


class Role(StrEnum):
    """Roles a view collection can be registered under."""

    RENDERABLE = "renderable"
    LAYOUT = "layout"
    PARTIAL = "partial"


class Hook(StrEnum):
    """Lifecycle points at which middleware is dispatched."""

    ON_LOAD = "on_load"
    PRE_LAYOUT = "pre_layout"
    POST_LAYOUT = "post_layout"
    PRE_COMPILE = "pre_compile"
    POST_COMPILE = "post_compile"
    PRE_RENDER = "pre_render"
    POST_RENDER = "post_render"
    ON_MERGE = "on_merge"
    ALL = "all"


class LoaderKind(StrEnum):
    """Calling conventions supported for loader functions."""

    SYNC = "sync"
    ASYNC = "async"
    STREAM = "stream"


class ViewState(StrEnum):
    """Render lifecycle state of a view."""

    RAW = "raw"
    LOADED = "loaded"
    LAYOUT_APPLIED = "layout_applied"
    COMPILED = "compiled"
    RENDERED = "rendered"
