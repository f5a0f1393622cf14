"""Context merging for a single render.

The context handed to an engine is built fresh for every render from several
layers. Later layers win:

1. the app's global data store;
2. the owning collection's options;
3. the view's own options;
4. the view's ``data`` then its ``locals`` (reversed when ``prefer_locals``
   is enabled, so front matter wins);
5. rendered partials, namespaced by collection or flattened under
   ``partials``;
6. the locals passed to the render call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vellum.config import copy_value
from vellum.enums import Hook, Role

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._app import App
    from ._view import View

PARTIALS_KEY = "partials"


class ContextMerger:
    """Builds render contexts and merges partials into them.

    Attributes:
        app: The owning app.
        partials_cache: Each partial's own context from the latest merge, by key.
    """

    def __init__(self, app: App) -> None:
        self.app: App = app
        self.partials_cache: dict[str, dict[str, Any]] = {}  # pyright: ignore[reportExplicitAny]

    def build_context(
        self,
        view: View,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        *,
        include_partials: bool = True,
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        """Build the render context for ``view``.

        A callable ``merge_context`` option replaces this strategy entirely
        and is called as ``merge_context(app, view, locals)``.

        Args:
            view: The view being rendered.
            locals: Locals passed to the render call.
            include_partials: Merge rendered partials into the context.

        Returns:
            A new dict; the view and the data store are not modified.
        """
        call_locals = dict(locals or {})
        custom = self.app.options.merge_context
        if custom is not None:
            return dict(custom(self.app, view, call_locals))

        context: dict[str, Any] = copy_value(self.app.cache_data)  # pyright: ignore[reportExplicitAny]
        if view.collection is not None:
            context.update(view.collection.options)
        context.update(view.options)
        if self.app.options.prefer_locals:
            context.update(view.locals)
            context.update(view.data)
        else:
            context.update(view.data)
            context.update(view.locals)
        if include_partials:
            context.update(self.merge_partials(call_locals))
        context.update(call_locals)
        return context

    def merge_partials(
        self,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        """Collect the content of every partial, wrapped in its layouts.

        For each view of each partial collection: its own context (without
        partials) is cached, ``on_merge`` middleware runs once, and unless
        the view's ``nomerge`` option is set its layout is applied and the
        content is exposed.

        A callable ``merge_partials`` option replaces this strategy and is
        called as ``merge_partials(app, locals)``.

        Returns:
            ``{"partials": {key: content}}`` when ``merge_partials`` is True,
            otherwise ``{collection_name: {key: content}}``.
        """
        call_locals = dict(locals or {})
        mode = self.app.options.merge_partials
        if callable(mode):
            return dict(mode(self.app, call_locals))

        flatten = mode is True
        merged: dict[str, dict[str, str]] = {}
        if flatten:
            existing = call_locals.get(PARTIALS_KEY)
            merged[PARTIALS_KEY] = dict(existing) if isinstance(existing, dict) else {}  # pyright: ignore[reportUnknownArgumentType]

        for collection in self.app.collections.get_by_role(Role.PARTIAL):
            target = merged.setdefault(PARTIALS_KEY if flatten else collection.name, {})
            for key, view in collection.items():
                own = self.build_context(view, None, include_partials=False)
                self.partials_cache[key] = own
                _ = self.app.dispatch_once(Hook.ON_MERGE, view)
                if view.options.get("nomerge"):
                    continue
                target[key] = self.app.apply_layout(view, own)
        return merged
