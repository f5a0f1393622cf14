"""Layout resolution and stack-based content wrapping.

A layout is a view whose content holds a body marker (``{% body %}`` by
default). Applying a layout substitutes the wrapped content for the marker,
then continues with the layout's own declared parent until no parent is
declared or the requested name cannot be resolved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from vellum.enums import Role

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from structlog.typing import FilteringBoundLogger

    from ._app import App
    from ._view import View

_DISABLED: frozenset[str] = frozenset({"", "false", "none", "null"})


@dataclass(frozen=True, slots=True)
class LayoutFrame:
    """One step of a layout chain.

    Attributes:
        name: The resolved layout key.
        layout: The layout view that was applied.
        content: The content produced by this step.
    """

    name: str
    layout: View
    content: str


@dataclass(frozen=True, slots=True)
class LayoutResult:
    """Outcome of wrapping content in a layout chain.

    Attributes:
        result: The final wrapped content.
        history: Frames for each layout applied, innermost first.
    """

    result: str
    history: tuple[LayoutFrame, ...]


@lru_cache(maxsize=32)
def body_marker(delims: tuple[str, str], tag: str) -> re.Pattern[str]:
    """Compile the body-marker expression for the given delimiters and tag."""
    open_, close = delims
    return re.compile(rf"{re.escape(open_)}\s*{re.escape(tag)}\s*{re.escape(close)}")


def _normalize_name(value: object) -> str | None:
    if value is None or value is False:
        return None
    name = str(value).strip()
    if name.lower() in _DISABLED:
        return None
    return name


def declared_layout(
    view: View,
    context: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
) -> object:
    """Return the first layout value declared for ``view``.

    Sources are checked in order: the record's ``layout`` field, front-matter
    ``data``, the render ``context``, ``options`` and ``locals``. The raw value
    is returned so callers can tell an explicit ``False`` from nothing.
    """
    candidates = (
        view.layout,
        view.data.get("layout"),
        context.get("layout") if context is not None else None,
        view.options.get("layout"),
        view.locals.get("layout"),
    )
    for value in candidates:
        if value is not None:
            return value
    return None


def _resolve(
    name: str,
    layouts: Mapping[str, View],
    rename_key: Callable[[str], str] | None,
    layout_ext: str | None,
) -> tuple[str, View] | None:
    candidates = [name]
    if rename_key is not None:
        candidates.append(rename_key(name))
    if layout_ext and not name.endswith(layout_ext):
        candidates.append(name + layout_ext)
    for candidate in candidates:
        layout = layouts.get(candidate)
        if layout is not None:
            return candidate, layout
    return None


def apply_layouts(
    content: str,
    name: str | None,
    layouts: Mapping[str, View],
    *,
    delims: tuple[str, str] = ("{%", "%}"),
    tag: str = "body",
    rename_key: Callable[[str], str] | None = None,
    layout_ext: str | None = None,
    logger: FilteringBoundLogger | None = None,
) -> LayoutResult:
    """Wrap ``content`` in the layout chain starting at ``name``.

    The chain ends when a layout declares no parent, when a name does not
    resolve to a known layout, when a layout has no body marker, or when a
    layout would be applied a second time. None of these are errors; the
    content produced so far is the result.

    Args:
        content: The content to wrap.
        name: Name of the first layout, or None for no layout.
        layouts: Known layouts by key.
        delims: Open and close delimiters of the body marker.
        tag: Name inside the body marker.
        rename_key: Fallback key normalization for layout names.
        layout_ext: Extension tried when a name does not resolve as given.
        logger: Optional logger for chain termination details.

    Returns:
        The wrapped content and the trace of applied layouts.
    """
    marker = body_marker(delims, tag)
    history: list[LayoutFrame] = []
    seen: set[str] = set()
    current = content
    next_name = _normalize_name(name)

    while next_name is not None:
        found = _resolve(next_name, layouts, rename_key, layout_ext)
        if found is None:
            if logger is not None:
                logger.debug("Layout not found, ending chain", layout=next_name)
            break
        key, layout = found
        if key in seen:
            if logger is not None:
                logger.warning("Layout cycle detected, ending chain", layout=key)
            break
        if not marker.search(layout.content):
            if logger is not None:
                logger.warning("Layout has no body marker, ending chain", layout=key)
            break
        seen.add(key)
        body = current
        current = marker.sub(lambda _m: body, layout.content)
        history.append(LayoutFrame(name=key, layout=layout, content=current))
        next_name = _normalize_name(declared_layout(layout))

    return LayoutResult(result=current, history=tuple(history))


class LayoutResolver:
    """Applies layouts to views, at most once per view."""

    def __init__(self, app: App) -> None:
        self.app: App = app

    def layouts(self) -> dict[str, View]:
        """Merge the layout collections selected by the ``merge_layouts`` option.

        None merges every layout-role collection, a list merges the named
        collections in the given order, and False uses only ``layouts``.
        The first collection to define a key wins.
        """
        registry = self.app.collections
        selection = self.app.options.merge_layouts
        if selection is False:
            return dict(registry.collection("layouts").items()) if "layouts" in registry else {}
        names = selection if isinstance(selection, list) else None
        return registry.merge_role(Role.LAYOUT, names)

    def layout_name(
        self,
        view: View,
        context: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
    ) -> str | None:
        """Return the starting layout name for ``view``, or None for no layout."""
        value = declared_layout(view, context)
        if value is None and not view.is_partial:
            value = self.app.options.default_layout
        return _normalize_name(value)

    def apply_layout(
        self,
        view: View,
        context: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
    ) -> str:
        """Wrap the view's content in its layout chain.

        Idempotent: once applied, the view's content is returned unchanged and
        the chain is not resolved again.

        Args:
            view: The view to wrap.
            context: The render context; may declare ``layout`` and
                ``layout_delims``.

        Returns:
            The view's (possibly wrapped) content.
        """
        if view.layout_applied:
            return view.content

        view.layout_applied = True
        name = self.layout_name(view, context)
        if name is None:
            view.layout_stack = []
            return view.content

        options = self.app.options
        delims = options.layout_delims
        if context is not None and context.get("layout_delims"):
            open_, close = context["layout_delims"]
            delims = (str(open_), str(close))

        result = apply_layouts(
            view.content,
            name,
            self.layouts(),
            delims=delims,
            tag=options.layout_tag,
            rename_key=options.rename_key,
            layout_ext=options.layout_ext,
            logger=self.app.logger,
        )
        view.layout_stack = list(result.history)
        view.content = result.result
        self.app.logger.debug(
            "Layout applied",
            path=view.path,
            layouts=[frame.name for frame in result.history],
        )
        return view.content
