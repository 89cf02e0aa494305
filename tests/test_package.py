from __future__ import annotations

import importlib
import logging

import pytest

import bowing_tracker
from bowing_tracker import analysis
from bowing_tracker.env import get_env


def test_lazy_exports_resolve_to_submodule_objects() -> None:
    from bowing_tracker.analysis.tracker import BowTracker

    assert analysis.BowTracker is BowTracker
    assert "BowTracker" in dir(analysis)
    with pytest.raises(AttributeError):
        getattr(analysis, "does_not_exist")


def test_top_level_exposes_cli_app() -> None:
    from bowing_tracker.cli import app

    assert bowing_tracker.app is app
    assert isinstance(bowing_tracker.__version__, str)


def test_get_env_uses_prefix(monkeypatch) -> None:
    monkeypatch.delenv("BOWING_TRACKER_LOG_LEVEL", raising=False)
    assert get_env("LOG_LEVEL") is None
    assert get_env("LOG_LEVEL", "INFO") == "INFO"
    monkeypatch.setenv("BOWING_TRACKER_LOG_LEVEL", "debug")
    assert get_env("LOG_LEVEL") == "debug"


def test_log_level_env_configures_analysis_logger(monkeypatch) -> None:
    from bowing_tracker.analysis import config

    logger = logging.getLogger("bowing_tracker.analysis")
    previous = logger.level
    monkeypatch.setenv("BOWING_TRACKER_LOG_LEVEL", "debug")
    try:
        importlib.reload(config)
        assert config.ANALYSIS_LOGGER is logger
        assert logger.level == logging.DEBUG
    finally:
        monkeypatch.delenv("BOWING_TRACKER_LOG_LEVEL")
        importlib.reload(config)
        logger.setLevel(previous)
