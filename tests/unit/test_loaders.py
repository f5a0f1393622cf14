from collections.abc import AsyncIterator, Iterator

import pytest

from vellum import (
    App,
    ConfigError,
    Hook,
    LoaderKind,
    LoaderRegistry,
    NotFoundError,
    View,
    ViewState,
    views_from_args,
)
from vellum._loaders import Loader, infer_kind


class TestViewsFromArgs:
    def test_key_and_content(self) -> None:
        views = views_from_args("a.md", "hello", {"title": "T"})

        assert list(views) == ["a.md"]
        assert views["a.md"].content == "hello"
        assert views["a.md"].locals == {"title": "T"}

    def test_key_and_record(self) -> None:
        views = views_from_args("a.md", {"content": "hello", "data": {"x": 1}})

        assert views["a.md"].content == "hello"
        assert views["a.md"].data == {"x": 1}

    def test_mapping_of_records(self) -> None:
        views = views_from_args({"a.md": {"content": "A"}, "b.md": "B"}, {"shared": True})

        assert views["a.md"].content == "A"
        assert views["b.md"].content == "B"
        assert views["b.md"].locals == {"shared": True}

    def test_single_record_with_path(self) -> None:
        views = views_from_args({"path": "docs/a.md", "content": "A"})

        assert list(views) == ["docs/a.md"]

    def test_view_instances(self) -> None:
        a = View(path="a.md")
        b = View(path="b.md")

        assert views_from_args(a, b) == {"a.md": a, "b.md": b}

    def test_lists(self) -> None:
        views = views_from_args([("a.md", "A"), {"b.md": "B"}, View(path="c.md")])

        assert list(views) == ["a.md", "b.md", "c.md"]

    def test_nothing(self) -> None:
        assert views_from_args() == {}
        assert views_from_args(None) == {}

    def test_frontmatter_is_parsed_into_data(self) -> None:
        views = views_from_args(
            "a.md",
            {"content": "---\ntitle: FM\n---\nBody", "data": {"title": "D", "x": 1}},
        )
        view = views["a.md"]

        assert view.data == {"title": "FM", "x": 1}
        assert view.content == "Body"
        assert view.orig == "---\ntitle: FM\n---\nBody"

    def test_rejects_unknown_shapes(self) -> None:
        with pytest.raises(ConfigError, match="cannot load views from int"):
            _ = views_from_args(42)

    def test_rejects_mixed_views(self) -> None:
        with pytest.raises(ConfigError, match="expected View instances"):
            _ = views_from_args(View(path="a"), "b")

    def test_rejects_unknown_record_values(self) -> None:
        with pytest.raises(ConfigError, match="cannot load view 'a'"):
            _ = views_from_args({"a": 42})


class TestInferKind:
    def test_plain_function(self) -> None:
        assert infer_kind(lambda x: x) is LoaderKind.SYNC

    def test_coroutine_function(self) -> None:
        async def load(x: str) -> str:
            return x

        assert infer_kind(load) is LoaderKind.ASYNC

    def test_generator_functions(self) -> None:
        def gen(x: str) -> Iterator[str]:
            yield x

        async def agen(x: str) -> AsyncIterator[str]:
            yield x

        assert infer_kind(gen) is LoaderKind.STREAM
        assert infer_kind(agen) is LoaderKind.STREAM


class TestLoaderRegistry:
    def test_register_and_get(self) -> None:
        registry = LoaderRegistry()

        def first(x: str) -> str:
            return x

        stack = registry.register("first", first)

        assert stack == [Loader(name="first", fn=first, kind=LoaderKind.SYNC)]
        assert registry.get("first") == stack
        assert "first" in registry

    def test_register_composes_named_stacks(self) -> None:
        registry = LoaderRegistry()
        _ = registry.register("abc", lambda files: files)
        _ = registry.register("to_views", ["abc"], lambda files: files)

        assert len(registry.get("to_views")) == 2

    def test_unknown_reference_raises(self) -> None:
        with pytest.raises(NotFoundError, match="loader 'ghost' is not registered"):
            _ = LoaderRegistry().register("x", "ghost")

    def test_register_needs_functions(self) -> None:
        with pytest.raises(ConfigError, match="needs at least one function"):
            _ = LoaderRegistry().register("x")

    def test_register_rejects_invalid_entries(self) -> None:
        with pytest.raises(ConfigError, match="must be callables or names"):
            _ = LoaderRegistry().register("x", 42)  # pyright: ignore[reportArgumentType]

    def test_explicit_kind(self) -> None:
        stack = LoaderRegistry().register("x", lambda v: v, kind="stream")

        assert stack[0].kind is LoaderKind.STREAM

    def test_run_chains_values(self) -> None:
        registry = LoaderRegistry()
        stack = registry.resolve([lambda a, b: a + b, lambda v: v * 2])

        assert registry.run(stack, ("x", "y")) == "xyxy"

    def test_run_with_empty_stack_returns_args(self) -> None:
        assert LoaderRegistry().run([], ("a", "b")) == ("a", "b")

    def test_run_rejects_async_loaders(self) -> None:
        async def load(x: str) -> str:
            return x

        registry = LoaderRegistry()

        with pytest.raises(ConfigError, match="use add_async"):
            _ = registry.run(registry.resolve([load]), ("a",))


class TestAppLoading:
    def test_named_loaders_chain_values(self) -> None:
        app = App()
        _ = app.loader("a", lambda val: val + "a")
        _ = app.loader("b", lambda val: val + "b")
        _ = app.loader("c", lambda val: val + "c")

        _ = app.pages.add("-", loaders=["a", "b", "c", lambda val: {"foo": {"content": val}}])

        assert app.pages.get("foo").content == "-abc"  # pyright: ignore[reportOptionalMemberAccess]

    def test_loaders_extend_the_first_result(self) -> None:
        app = App()
        _ = app.loader("first", lambda name: {name: {"path": name, "content": "this is content..."}})

        def abc(files: dict[str, object]) -> dict[str, object]:
            files["abc"] = {"content": "this is abc..."}
            return files

        _ = app.loader("abc", abc)
        _ = app.create("posts", loaders=["first", "abc"])

        _ = app.posts.add("foo")

        assert app.posts.keys() == ["foo", "abc"]
        assert app.posts.get("foo").content == "this is content..."  # pyright: ignore[reportOptionalMemberAccess]

    def test_collection_and_call_site_loaders_combine(self) -> None:
        app = App()
        _ = app.create("post", role="renderable", loaders=[lambda pattern: [pattern, f"{pattern}2"]])

        def read(files: list[str]) -> dict[str, dict[str, str]]:
            return {fp: {"path": fp, "content": fp.upper()} for fp in files}

        _ = app.posts.add("x.txt", loaders=[read])

        assert app.posts.keys() == ["x.txt", "x.txt2"]
        assert app.posts.get("x.txt2").content == "X.TXT2"  # pyright: ignore[reportOptionalMemberAccess]

    def test_stream_loader(self) -> None:
        app = App()

        def stream(prefix: str) -> Iterator[tuple[str, str]]:
            for n in range(3):
                yield f"{prefix}{n}.md", f"content {n}"

        _ = app.pages.add("p", loaders=[stream])

        assert app.pages.keys() == ["p0.md", "p1.md", "p2.md"]
        assert app.pages.get("p2.md").content == "content 2"  # pyright: ignore[reportOptionalMemberAccess]

    def test_sync_add_rejects_async_loader(self) -> None:
        app = App()

        async def fetch(key: str) -> dict[str, str]:
            return {key: "x"}

        with pytest.raises(ConfigError, match="use add_async"):
            _ = app.pages.add("a.md", loaders=[fetch])

    def test_loaded_views_run_on_load(self) -> None:
        app = App()
        seen: list[str] = []
        _ = app.on_load("*.md", lambda v, n: (seen.append(v.path), n()))

        _ = app.pages.add({"a.md": "A", "b.txt": "B"})

        assert seen == ["a.md"]
        assert app.pages.get("a.md").state is ViewState.LOADED  # pyright: ignore[reportOptionalMemberAccess]
        assert app.pages.get("a.md").is_handled(Hook.ON_LOAD)  # pyright: ignore[reportOptionalMemberAccess]

    def test_on_load_errors_do_not_prevent_storage(self) -> None:
        app = App()
        _ = app.on_load(None, lambda v, n: n("broken"))

        _ = app.pages.add("a.md", "A")

        view = app.pages.get("a.md")
        assert view is not None
        assert not view.is_handled(Hook.ON_LOAD)


class TestAsyncLoading:
    @pytest.mark.anyio
    async def test_async_loader(self) -> None:
        app = App()

        async def fetch(key: str) -> dict[str, str]:
            return {key: f"fetched {key}"}

        _ = await app.pages.add_async("a.md", loaders=[fetch])

        assert app.pages.get("a.md").content == "fetched a.md"  # pyright: ignore[reportOptionalMemberAccess]

    @pytest.mark.anyio
    async def test_async_stream_loader(self) -> None:
        app = App()

        async def stream(prefix: str) -> AsyncIterator[dict[str, str]]:
            for n in range(2):
                yield {f"{prefix}{n}.md": f"content {n}"}

        _ = await app.pages.add_async("p", loaders=[stream])

        assert app.pages.keys() == ["p0.md", "p1.md"]

    @pytest.mark.anyio
    async def test_sync_loaders_on_the_async_path(self) -> None:
        app = App()

        _ = await app.pages.add_async("a.md", loaders=[lambda key: {key: "sync"}])

        assert app.pages.get("a.md").content == "sync"  # pyright: ignore[reportOptionalMemberAccess]

    @pytest.mark.anyio
    async def test_without_loaders(self) -> None:
        app = App()

        _ = await app.pages.add_async("a.md", "plain")

        assert app.pages.get("a.md").content == "plain"  # pyright: ignore[reportOptionalMemberAccess]
