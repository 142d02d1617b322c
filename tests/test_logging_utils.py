"""Tests for logging_utils module."""

from __future__ import annotations

import io

import pytest
from loguru import logger

from taskgraph.logging_utils import configure_logging, resolve_log_level


class TestResolveLogLevel:
    def test_explicit_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TASKGRAPH_LOG_LEVEL", "error")
        assert resolve_log_level("debug") == "DEBUG"

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TASKGRAPH_LOG_LEVEL", "warning")
        assert resolve_log_level() == "WARNING"

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TASKGRAPH_LOG_LEVEL", raising=False)
        assert resolve_log_level() == "INFO"


class TestConfigureLogging:
    def test_filters_by_level(self) -> None:
        sink = io.StringIO()
        handler_id = configure_logging("WARNING", sink=sink, colorize=False)
        try:
            logger.info("quiet message")
            logger.warning("loud message")
        finally:
            logger.remove(handler_id)
        out = sink.getvalue()
        assert "loud message" in out
        assert "quiet message" not in out
        assert "WARNING" in out

    def test_replaces_existing_handlers(self) -> None:
        first, second = io.StringIO(), io.StringIO()
        configure_logging("INFO", sink=first, colorize=False)
        handler_id = configure_logging("INFO", sink=second, colorize=False)
        try:
            logger.info("only once")
        finally:
            logger.remove(handler_id)
        assert first.getvalue() == ""
        assert "only once" in second.getvalue()
