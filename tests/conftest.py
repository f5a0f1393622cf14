"""Shared test fixtures for Vellum tests."""

import re
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from vellum import App, Hook, View


class TagEngine:
    """Minimal engine substituting ``{{partial name}}`` and ``{{ var }}`` tags."""

    partial_tag = re.compile(r"\{\{partial ([\w.-]+)\}\}")
    var_tag = re.compile(r"\{\{\s*(\w+)\s*\}\}")

    def __init__(self) -> None:
        self.compiled: list[str] = []

    def compile(self, content: str, options: Mapping[str, Any]) -> str:
        self.compiled.append(str(options.get("path", "")))
        return content

    def render(
        self,
        template: object,
        context: Mapping[str, Any],
        callback: Callable[[BaseException | None, str | None], object] | None = None,
    ) -> str | None:
        partials = context.get("partials") or {}
        result = self.partial_tag.sub(lambda m: str(partials.get(m.group(1), "")), str(template))
        result = self.var_tag.sub(lambda m: str(context.get(m.group(1), "")), result)
        if callback is not None:
            _ = callback(None, result)
            return None
        return result


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def tag_engine() -> TagEngine:
    return TagEngine()


@pytest.fixture
def app(tag_engine: TagEngine) -> App:
    """Create an App rendering every view with the tag engine."""
    app = App()
    _ = app.engine("*", tag_engine)
    return app


@pytest.fixture
def hook_recorder() -> tuple[list[Hook], Callable[[View, Callable[..., None]], None]]:
    """Return a list and a middleware handler appending each dispatched hook to it."""
    seen: list[Hook] = []

    def record(view: View, next_: Callable[..., None]) -> None:
        assert view.method is not None
        seen.append(view.method)
        next_()

    return seen, record
