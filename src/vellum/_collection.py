"""Named view collections and the registry indexing them by role."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Self

from vellum.enums import Role
from vellum.exceptions import ConfigError, NotFoundError
from vellum.utils import is_plural, pluralize, singularize

if TYPE_CHECKING:
    from ._app import App, RenderCallback
    from ._view import View

type RoleLike = Role | str | Iterable[Role | str]


def coerce_roles(role: RoleLike | None) -> list[Role]:
    """Normalize a role, role name, or iterable of either into a list of Roles.

    Raises:
        ConfigError: If a role name is unknown.
    """
    if role is None:
        return [Role.PARTIAL]
    items: Iterable[Role | str] = [role] if isinstance(role, str) else role
    roles: list[Role] = []
    for item in items:
        try:
            resolved = Role(item)
        except ValueError:
            valid = ", ".join(r.value for r in Role)
            msg = f"unknown role {item!r}; expected one of: {valid}"
            raise ConfigError(msg) from None
        if resolved not in roles:
            roles.append(resolved)
    if not roles:
        msg = "a collection needs at least one role"
        raise ConfigError(msg)
    return roles


def derive_names(name: str, plural: str | None = None) -> tuple[str, str]:
    """Return ``(singular, plural)`` for a collection name.

    A name that already looks plural is kept as the plural and singularized
    for the alias.
    """
    if not isinstance(name, str) or not name.strip():  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = "collection name must be a non-empty string"
        raise ConfigError(msg)
    if plural is not None and not isinstance(plural, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = f"collection plural must be a string, got {type(plural).__name__}"
        raise ConfigError(msg)
    if plural:
        return (name if name != plural else singularize(name)), plural
    if is_plural(name):
        return singularize(name), name
    return name, pluralize(name)


class Collection:
    """An ordered mapping of view keys to views.

    Attributes:
        name: Plural collection name, used as the registry key.
        alias: Singular alias, used for the default partial helper.
        roles: Roles the collection is registered under.
        options: Collection-level options merged into every view's context.
        loaders: Loader stack run before call-site loaders when adding views.
        app: The owning app, if any.
    """

    def __init__(
        self,
        name: str,
        alias: str | None = None,
        *,
        roles: list[Role] | None = None,
        options: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
        loaders: Iterable[object] = (),
        app: App | None = None,
    ) -> None:
        self.name: str = name
        self.alias: str = alias or singularize(name)
        self.roles: list[Role] = roles or [Role.PARTIAL]
        self.options: dict[str, Any] = dict(options or {})  # pyright: ignore[reportExplicitAny]
        self.loaders: list[object] = list(loaders)
        self.app: App | None = app
        self._views: dict[str, View] = {}

    def __repr__(self) -> str:
        roles = ",".join(r.value for r in self.roles)
        return f"Collection({self.name!r}, roles=[{roles}], views={len(self._views)})"

    def __len__(self) -> int:
        return len(self._views)

    def __iter__(self) -> Iterator[str]:
        return iter(self._views)

    def __contains__(self, key: object) -> bool:
        return key in self._views

    @property
    def role(self) -> Role:
        """The primary role of the collection."""
        return self.roles[0]

    def keys(self) -> list[str]:
        return list(self._views)

    def values(self) -> list[View]:
        return list(self._views.values())

    def items(self) -> list[tuple[str, View]]:
        return list(self._views.items())

    def get(self, key: str) -> View | None:
        """Return the view stored under exactly ``key``."""
        return self._views.get(key)

    def put(self, key: str, view: View) -> View:
        """Store ``view`` under ``key``, replacing any existing view."""
        view.collection = self
        view.role = self.role
        self._views[key] = view
        return view

    def find(self, key: str) -> View | None:
        """Look up a view, trying progressively looser forms of ``key``.

        Tries the exact key, the key reduced by the app's ``rename_key``
        option, the key without its extension, and the key with ``.md``
        appended.
        """
        view = self._views.get(key)
        if view is not None:
            return view
        for candidate in self._candidates(key):
            view = self._views.get(candidate)
            if view is not None:
                return view
        # Keys may themselves be stored as full paths
        for stored, view in self._views.items():
            if self._rename(stored) == key:
                return view
        return None

    def _rename(self, key: str) -> str:
        if self.app is not None:
            return self.app.options.rename_key(key)
        return PurePosixPath(key).name or key

    def _candidates(self, key: str) -> list[str]:
        renamed = self._rename(key)
        stem = str(PurePosixPath(key).with_suffix("")) if PurePosixPath(key).suffix else key
        return [renamed, stem, f"{key}.md"]

    def add(self, *args: object, loaders: Iterable[object] = ()) -> Self:
        """Load views from ``args`` through the loader stack and store them.

        Returns:
            The collection, so calls can be chained.
        """
        _ = self._require_app().load(self, args, loaders)
        return self

    async def add_async(self, *args: object, loaders: Iterable[object] = ()) -> Self:
        """Awaitable variant of ``add`` accepting async and streaming loaders."""
        _ = await self._require_app().load_async(self, args, loaders)
        return self

    def render(
        self,
        key: str,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> str | None:
        """Render the view stored under ``key`` (looked up with ``find``)."""
        app = self._require_app()
        view = self.find(key)
        if view is None:
            err = NotFoundError(
                f"{self.name}: cannot find view {key!r}", name=key, collection=self.name
            )
            return app.fail("render", err, callback=callback)
        return app.render_view(view, locals, callback)

    def render_each(
        self,
        locals: Mapping[str, Any] | None = None,  # noqa: A002  # pyright: ignore[reportExplicitAny]
        callback: RenderCallback | None = None,
    ) -> dict[str, str | None]:
        """Render every view in insertion order.

        With a callback, each view's result is delivered to it as it completes.
        """
        app = self._require_app()
        return {key: app.render_view(view, locals, callback) for key, view in self.items()}

    def _require_app(self) -> App:
        if self.app is None:
            msg = f"collection {self.name!r} is not attached to an app"
            raise RuntimeError(msg)
        return self.app


class CollectionRegistry:
    """Collections indexed by plural name, singular alias and role."""

    def __init__(self, app: App | None = None) -> None:
        self.app: App | None = app
        self._collections: dict[str, Collection] = {}
        self._aliases: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._collections)

    def __iter__(self) -> Iterator[Collection]:
        return iter(self._collections.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._lookup(name) is not None

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    @property
    def names(self) -> list[str]:
        return list(self._collections)

    def _lookup(self, name: str) -> Collection | None:
        collection = self._collections.get(name)
        if collection is None and name in self._aliases:
            collection = self._collections.get(self._aliases[name])
        return collection

    def register(
        self,
        name: str,
        plural: str | None = None,
        *,
        role: RoleLike | None = None,
        options: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
        loaders: Iterable[object] = (),
    ) -> Collection:
        """Register a collection, or update an existing one.

        Re-registering a name merges the new options into the existing
        collection, adds any new roles, and appends the loaders.

        Args:
            name: Singular or plural collection name.
            plural: Explicit plural, overriding the derived one.
            role: Role or roles of the collection (default ``partial``).
            options: Collection-level options.
            loaders: Loader stack run for every ``add`` on the collection.

        Returns:
            The registered collection.

        Raises:
            ConfigError: If the name is empty or a role is unknown.
        """
        alias, plural_name = derive_names(name, plural)
        roles = coerce_roles(role)
        existing = self._lookup(plural_name)
        if existing is not None:
            existing.options.update(options or {})
            existing.roles.extend(r for r in roles if r not in existing.roles)
            existing.loaders.extend(loaders)
            return existing

        collection = Collection(
            plural_name,
            alias,
            roles=roles,
            options=options,
            loaders=loaders,
            app=self.app,
        )
        self._collections[plural_name] = collection
        self._aliases[alias] = plural_name
        return collection

    def collection(self, name: str) -> Collection:
        """Return the collection registered as ``name`` (plural or alias).

        Raises:
            NotFoundError: If no such collection is registered.
        """
        collection = self._lookup(name)
        if collection is None:
            msg = f"collection {name!r} is not registered"
            raise NotFoundError(msg, name=name, collection=name)
        return collection

    def put(self, collection_name: str, key: str, view: View) -> View:
        """Store ``view`` under ``key`` in the named collection."""
        return self.collection(collection_name).put(key, view)

    def get(self, collection_name: str, key: str) -> View | None:
        """Return the view stored under ``key`` in the named collection."""
        return self.collection(collection_name).get(key)

    def get_by_role(self, role: Role | str) -> list[Collection]:
        """Return the collections registered under ``role``, in registration order."""
        resolved = coerce_roles(role)[0]
        return [c for c in self._collections.values() if resolved in c.roles]

    def find_first(
        self,
        role: Role | str,
        key: str,
        names: Iterable[str] | None = None,
    ) -> View | None:
        """Return the first view matching ``key`` across collections of ``role``.

        An exact key match in any collection wins over a looser match made by
        ``Collection.find``.
        """
        collections = self._select(role, names)
        for collection in collections:
            view = collection.get(key)
            if view is not None:
                return view
        for collection in collections:
            view = collection.find(key)
            if view is not None:
                return view
        return None

    def merge_role(
        self,
        role: Role | str,
        names: Iterable[str] | None = None,
    ) -> dict[str, View]:
        """Merge the views of every collection of ``role`` into one mapping.

        Args:
            role: The role to merge.
            names: Restrict to these collections, in this order.

        Returns:
            Views by key; the first collection defining a key wins.
        """
        merged: dict[str, View] = {}
        for collection in self._select(role, names):
            for key, view in collection.items():
                _ = merged.setdefault(key, view)
        return merged

    def _select(self, role: Role | str, names: Iterable[str] | None) -> list[Collection]:
        by_role = self.get_by_role(role)
        if names is None:
            return by_role
        selected: list[Collection] = []
        for name in names:
            collection = self._lookup(name)
            if collection is not None and collection in by_role:
                selected.append(collection)
        return selected
