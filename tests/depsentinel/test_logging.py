"""Tests for setup_logging (configuration calls are captured, not applied)."""

from __future__ import annotations

import logging.config

import pytest
import structlog

from depsentinel.core import logging as ds_logging


@pytest.fixture
def captured(monkeypatch):
    calls: dict[str, dict] = {}
    monkeypatch.setattr(structlog, "configure", lambda **kw: calls.__setitem__("structlog", kw))
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: calls.__setitem__("dict", cfg))
    monkeypatch.delenv(ds_logging.LEVEL_ENV, raising=False)
    monkeypatch.delenv(ds_logging.FORMAT_ENV, raising=False)
    return calls


def _renderer(config: dict):
    return config["formatters"]["structlog"]["processors"][-1]


class TestSetupLogging:
    def test_defaults(self, captured):
        ds_logging.setup_logging()
        config = captured["dict"]
        assert config["root"]["level"] == "INFO"
        assert config["loggers"]["depsentinel"] == {"level": "INFO"}
        assert config["loggers"]["asyncio"] == {"level": "WARNING"}
        assert config["handlers"]["stderr"]["stream"] == "ext://sys.stderr"
        assert isinstance(_renderer(config), structlog.dev.ConsoleRenderer)
        assert captured["structlog"]["cache_logger_on_first_use"] is True

    def test_environment(self, captured, monkeypatch):
        monkeypatch.setenv(ds_logging.LEVEL_ENV, "debug")
        monkeypatch.setenv(ds_logging.FORMAT_ENV, "JSON")
        ds_logging.setup_logging()
        config = captured["dict"]
        assert config["loggers"]["depsentinel"] == {"level": "DEBUG"}
        assert isinstance(_renderer(config), structlog.processors.JSONRenderer)

    def test_arguments_override_environment(self, captured, monkeypatch):
        monkeypatch.setenv(ds_logging.LEVEL_ENV, "debug")
        ds_logging.setup_logging(level="error", log_format="console")
        assert captured["dict"]["root"]["level"] == "ERROR"

    def test_unknown_format_falls_back_to_console(self, captured):
        ds_logging.setup_logging(log_format="xml")
        assert isinstance(_renderer(captured["dict"]), structlog.dev.ConsoleRenderer)
