from collections.abc import Callable

from vellum import App, View

NextFn = Callable[..., None]


def page(app: App, key: str = "a.md", **record: object) -> View:
    _ = app.pages.add(key, {"content": "", **record})
    view = app.pages.get(key)
    assert view is not None
    return view


class TestBuildContext:
    def test_locals_override_data_by_default(self) -> None:
        app = App()
        view = page(app, data={"title": "A"}, locals={"title": "B"})

        assert app.build_context(view)["title"] == "B"

    def test_prefer_locals_lets_data_win(self) -> None:
        app = App(prefer_locals=True)
        view = page(app, data={"title": "A"}, locals={"title": "B"})

        assert app.build_context(view)["title"] == "A"

    def test_call_locals_win(self) -> None:
        app = App()
        _ = app.data({"title": "G"})
        view = page(app, data={"title": "A"}, locals={"title": "B"}, options={"title": "O"})

        assert app.build_context(view, {"title": "C"})["title"] == "C"

    def test_precedence_layers(self) -> None:
        app = App()
        _ = app.data({"g": "global", "c": "global", "o": "global", "d": "global"})
        _ = app.create("post", role="renderable", options={"c": "collection", "o": "collection"})
        _ = app.posts.add("p.md", {"content": "", "options": {"o": "view", "d": "view"}, "data": {"d": "data"}})
        view = app.posts.get("p.md")
        assert view is not None

        context = app.build_context(view)

        assert context["g"] == "global"
        assert context["c"] == "collection"
        assert context["o"] == "view"
        assert context["d"] == "data"

    def test_data_and_locals_are_left_untouched(self) -> None:
        app = App()
        _ = app.pages.add("a.md", "---\nname: A\n---\nBody", {"name": "B"})
        view = app.pages.get("a.md")
        assert view is not None

        context = app.build_context(view)

        assert context["name"] == "B"
        assert view.data == {"name": "A"}
        assert view.locals == {"name": "B"}
        assert view.content == "Body"

    def test_global_data_is_copied(self) -> None:
        app = App()
        _ = app.data({"site": {"name": "x"}})
        view = page(app)

        context = app.build_context(view)
        context["site"]["name"] = "changed"

        assert app.data()["site"]["name"] == "x"

    def test_merge_context_callable_replaces_strategy(self) -> None:
        calls: list[tuple[str, dict[str, object]]] = []

        def merge(app: App, view: View, locals: dict[str, object]) -> dict[str, object]:
            calls.append((view.path, locals))
            return {"only": "custom"}

        app = App(merge_context=merge)
        view = page(app, data={"title": "A"})

        assert app.build_context(view, {"x": 1}) == {"only": "custom"}
        assert calls == [("a.md", {"x": 1})]


class TestMergePartials:
    def test_partials_are_namespaced_by_collection(self) -> None:
        app = App()
        _ = app.create("snippet")
        _ = app.partials.add("nav", "<nav/>")
        _ = app.snippets.add("tip", "<tip/>")

        merged = app.merge_partials()

        assert merged == {"partials": {"nav": "<nav/>"}, "snippets": {"tip": "<tip/>"}}

    def test_flattened_under_partials(self) -> None:
        app = App(merge_partials=True)
        _ = app.create("snippet")
        _ = app.partials.add("nav", "<nav/>")
        _ = app.snippets.add("tip", "<tip/>")

        merged = app.merge_partials()

        assert merged == {"partials": {"nav": "<nav/>", "tip": "<tip/>"}}

    def test_partial_layouts_are_applied(self) -> None:
        app = App()
        _ = app.layouts.add("box", "[{% body %}]")
        _ = app.partials.add("nav", {"content": "nav", "layout": "box"})

        assert app.merge_partials()["partials"]["nav"] == "[nav]"

    def test_partials_are_exposed_in_context(self) -> None:
        app = App()
        _ = app.partials.add("nav", "<nav/>")
        view = page(app)

        assert app.build_context(view)["partials"] == {"nav": "<nav/>"}

    def test_partials_cache_holds_each_partial_context(self) -> None:
        app = App()
        _ = app.data({"site": "x"})
        _ = app.partials.add("nav", {"content": "", "data": {"title": "Nav"}})

        _ = app.merge_partials()

        assert app.context.partials_cache["nav"] == {"site": "x", "title": "Nav"}

    def test_nomerge_partials_are_visited_but_omitted(self) -> None:
        app = App()
        visited: list[str] = []

        def hide(view: View, next_: NextFn) -> None:
            visited.append(view.path)
            if view.path.startswith("hidden"):
                view.options["nomerge"] = True
            next_()

        _ = app.on_merge(None, hide)
        _ = app.partials.add({"shown": "a", "hidden-1": "b", "hidden-2": "c"})

        merged = app.merge_partials()

        assert merged["partials"] == {"shown": "a"}
        assert sorted(visited) == ["hidden-1", "hidden-2", "shown"]

    def test_nomerge_partials_keep_their_layout_unapplied(self) -> None:
        app = App()
        _ = app.layouts.add("box", "[{% body %}]")
        _ = app.partials.add("p", {"content": "x", "layout": "box", "options": {"nomerge": True}})

        _ = app.merge_partials()

        assert not app.partials.get("p").layout_applied  # pyright: ignore[reportOptionalMemberAccess]

    def test_on_merge_runs_once_per_partial(self) -> None:
        app = App()
        visited: list[str] = []
        _ = app.on_merge(None, lambda v, n: (visited.append(v.path), n()))
        _ = app.partials.add("nav", "x")

        _ = app.merge_partials()
        _ = app.merge_partials()

        assert visited == ["nav"]

    def test_on_merge_can_modify_content(self) -> None:
        app = App()

        def annotate(view: View, next_: NextFn) -> None:
            view.content += " onMerge"
            next_()

        _ = app.on_merge(None, annotate)
        _ = app.partials.add("nav", "nav")

        assert app.merge_partials()["partials"]["nav"] == "nav onMerge"

    def test_merge_partials_callable_replaces_strategy(self) -> None:
        def merge(app: App, locals: dict[str, object]) -> dict[str, object]:
            return {"custom": sorted(app.partials.keys())}

        app = App(merge_partials=merge)
        _ = app.partials.add("nav", "x")

        assert app.merge_partials() == {"custom": ["nav"]}
