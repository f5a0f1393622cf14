from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from vellum import App
from vellum.utils import create_logger

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VELLUM_DEBUG", raising=False)
    monkeypatch.delenv("VELLUM_LOG_LEVEL", raising=False)


class TestCreateLogger:
    def test_creates_log_directory_if_missing(self, fs: FakeFilesystem) -> None:
        log_path = Path("/logs/test.log")
        assert not log_path.parent.exists()

        _ = create_logger(log_file=str(log_path))

        assert log_path.parent.exists()

    def test_json_format(self, fs: FakeFilesystem) -> None:
        logger = create_logger(level="info", log_format="json", log_file="/logs/test.log")

        logger.info("test_event", key="value")

        log_content = Path("/logs/test.log").read_text()
        assert '"event": "test_event"' in log_content
        assert '"key": "value"' in log_content
        assert '"level": "info"' in log_content

    def test_text_format(self, fs: FakeFilesystem) -> None:
        logger = create_logger(level="info", log_file="/logs/test.log")

        logger.info("test_event", key="value")

        log_content = Path("/logs/test.log").read_text()
        assert "test_event" in log_content
        assert "key=value" in log_content

    def test_level_filters(self, fs: FakeFilesystem) -> None:
        logger = create_logger(level="error", log_file="/logs/test.log")

        logger.debug("debug_level_message")
        logger.error("error_level_message")

        content = Path("/logs/test.log").read_text()
        assert "debug_level_message" not in content
        assert "error_level_message" in content

    def test_default_level_is_warning(self, fs: FakeFilesystem) -> None:
        logger = create_logger(log_file="/logs/test.log")

        logger.info("info_message")
        logger.warning("warning_message")

        content = Path("/logs/test.log").read_text()
        assert "info_message" not in content
        assert "warning_message" in content

    def test_env_log_level(self, fs: FakeFilesystem, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VELLUM_LOG_LEVEL", "info")
        logger = create_logger(log_file="/logs/test.log")

        logger.info("info_message")

        assert "info_message" in Path("/logs/test.log").read_text()

    def test_debug_env_overrides_level(
        self, fs: FakeFilesystem, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("VELLUM_DEBUG", "1")
        logger = create_logger(level="error", log_file="/logs/test.log")

        logger.debug("debug_message")

        assert "debug_message" in Path("/logs/test.log").read_text()


class TestCreateLoggerRotation:
    def test_with_rotation_uses_rotating_handler(self, fs: FakeFilesystem) -> None:
        _ = create_logger(log_file="/logs/rotating.log", max_bytes=1000, backup_count=3)

        stdlib_logger = logging.getLogger(f"vellum.{Path('/logs/rotating.log').resolve()}")
        assert len(stdlib_logger.handlers) == 1
        handler = stdlib_logger.handlers[0]
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1000
        assert handler.backupCount == 3

    def test_rotation_requires_both_params(self, fs: FakeFilesystem) -> None:
        logger = create_logger(level="info", log_file="/logs/partial.log", max_bytes=1000)

        logger.info("test")

        assert "test" in Path("/logs/partial.log").read_text()
        stdlib_logger = logging.getLogger(f"vellum.{Path('/logs/partial.log').resolve()}")
        handler = stdlib_logger.handlers[0]
        assert isinstance(handler, logging.FileHandler)
        assert not isinstance(handler, RotatingFileHandler)


class TestCreateLoggerReuse:
    def test_same_file_shares_one_handler(self, fs: FakeFilesystem) -> None:
        first = create_logger(level="info", log_file="/logs/shared.log")
        second = create_logger(level="info", log_file="/logs/shared.log")

        stdlib_logger = logging.getLogger(f"vellum.{Path('/logs/shared.log').resolve()}")
        assert len(stdlib_logger.handlers) == 1

        first.info("first_message")
        second.info("second_message")

        content = Path("/logs/shared.log").read_text()
        assert content.count("first_message") == 1
        assert content.count("second_message") == 1

    def test_replaced_handler_is_closed(self, fs: FakeFilesystem) -> None:
        _ = create_logger(log_file="/logs/closed.log")
        stdlib_logger = logging.getLogger(f"vellum.{Path('/logs/closed.log').resolve()}")
        old = stdlib_logger.handlers[0]
        assert isinstance(old, logging.FileHandler)

        _ = create_logger(log_file="/logs/closed.log")

        assert old not in stdlib_logger.handlers
        assert old.stream is None


class TestAppLogging:
    def test_app_logs_to_configured_file(self, fs: FakeFilesystem) -> None:
        app = App(logging={"level": "debug", "format": "json", "file": "/logs/app.log"})
        _ = app.pages.add("home.md", "Hi")

        content = Path("/logs/app.log").read_text()
        assert '"event": "Collection created"' in content
        assert '"component": "vellum"' in content
        assert '"collection": "pages"' in content

    def test_render_errors_are_logged(self, fs: FakeFilesystem) -> None:
        app = App(
            default_engines=False,
            silent=True,
            logging={"format": "json", "file": "/logs/app.log"},
        )

        _ = app.render("missing.md")

        content = Path("/logs/app.log").read_text()
        assert '"event": "Render error"' in content
        assert '"error_type": "NotFoundError"' in content
