"""The view record: one loaded template and its lifecycle state."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from vellum.enums import Hook, Role, ViewState

from ._frontmatter import parse_frontmatter

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._app import RenderCallback
    from ._collection import Collection
    from ._layouts import LayoutFrame

# Record keys that map onto View fields; everything else lands in `locals`
VIEW_FIELDS: frozenset[str] = frozenset(
    {"path", "content", "orig", "data", "locals", "options", "layout", "engine"}
)


@dataclass(eq=False)
class View:
    """A single template-like document.

    ``data`` holds document-intrinsic metadata (front matter) and ``locals``
    holds values supplied explicitly by the caller. The two are never merged
    into one another; only the context merger combines them, transiently,
    for one render call.

    Attributes:
        path: Identifier of the view, unique within its collection.
        content: Current content. Overwritten as the view moves through its
            lifecycle (front matter stripped, layout applied, rendered).
        orig: Raw content as it was loaded.
        data: Front-matter data.
        locals: Explicit locals supplied at load time.
        options: Per-view options (``layout``, ``engine``, ``nomerge``, ...).
        layout: Layout name declared directly on the record.
        engine: Engine extension override.
        fn: Compiled template handle, set once the view is compiled.
        params: Router parameters captured by the last matching middleware.
        collection: Owning collection, None for inline views.
        role: Role of the owning collection.
        layout_applied: Whether the layout step already ran.
        layout_stack: Trace of the layouts applied, innermost first.
        handled: Hooks whose middleware stack completed for this view.
        running: Hooks whose middleware stack is currently executing.
        method: The hook dispatched most recently.
        rendered: Whether the view finished rendering.
    """

    path: str
    content: str = ""
    orig: str | None = None
    data: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]
    locals: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]
    options: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]
    layout: str | None = None
    engine: str | None = None
    fn: object | None = None
    params: dict[str, str] = field(default_factory=dict)
    collection: Collection | None = field(default=None, repr=False)
    role: Role | None = None
    layout_applied: bool = False
    layout_stack: list[LayoutFrame] = field(default_factory=list, repr=False)
    handled: set[Hook] = field(default_factory=set)
    running: set[Hook] = field(default_factory=set)
    method: Hook | None = None
    rendered: bool = False

    def __post_init__(self) -> None:
        if self.orig is None:
            self.orig = self.content

    @classmethod
    def from_record(cls, key: str, record: Mapping[str, Any]) -> View:  # pyright: ignore[reportExplicitAny]
        """Build a view from a plain mapping.

        Known keys map onto fields; unknown keys are treated as locals so that
        ``{"content": "...", "title": "x"}`` exposes ``title`` as a local.
        """
        extra = {k: v for k, v in record.items() if k not in VIEW_FIELDS}
        locals_ = {**dict(record.get("locals") or {}), **extra}
        content = record.get("content")
        return cls(
            path=str(record.get("path") or key),
            content="" if content is None else str(content),
            orig=record.get("orig"),
            data=dict(record.get("data") or {}),
            locals=locals_,
            options=dict(record.get("options") or {}),
            layout=record.get("layout"),
            engine=record.get("engine"),
        )

    @property
    def ext(self) -> str:
        """Lower-cased extension of ``path``, including the dot."""
        return PurePosixPath(self.path).suffix.lower()

    @property
    def is_partial(self) -> bool:
        """True when the owning collection is registered as partials."""
        if self.collection is not None:
            return Role.PARTIAL in self.collection.roles
        return self.role is Role.PARTIAL

    @property
    def state(self) -> ViewState:
        """Lifecycle state derived from the view's flags."""
        if self.rendered:
            return ViewState.RENDERED
        if self.fn is not None:
            return ViewState.COMPILED
        if self.layout_applied:
            return ViewState.LAYOUT_APPLIED
        if Hook.ON_LOAD in self.handled:
            return ViewState.LOADED
        return ViewState.RAW

    def is_handled(self, hook: Hook) -> bool:
        """Return True if the middleware stack for ``hook`` already completed."""
        return hook in self.handled

    def reset(self) -> None:
        """Return the view to its loaded state so every hook can run again."""
        _, self.content = parse_frontmatter(self.orig or "")
        self.fn = None
        self.layout_applied = False
        self.layout_stack = []
        self.handled.clear()
        self.running.clear()
        self.method = None
        self.rendered = False

    def render(
        self,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> str | None:
        """Render this view through the app owning its collection."""
        if self.collection is None or self.collection.app is None:
            msg = f"view {self.path!r} does not belong to an app"
            raise RuntimeError(msg)
        return self.collection.app.render_view(self, locals, callback)
