from __future__ import annotations

import importlib
import json
import os

import pytest

from bowing_tracker.analysis import config


@pytest.fixture
def reload_config(monkeypatch):
    for key in list(os.environ):
        if key.startswith("BOWING_"):
            monkeypatch.delenv(key)

    def _reload(**env: str):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return importlib.reload(config)

    yield _reload
    for key in list(os.environ):
        if key.startswith("BOWING_"):
            monkeypatch.delenv(key)
    importlib.reload(config)


def test_defaults(reload_config) -> None:
    cfg = reload_config()
    assert cfg.CONFIDENCE_THRESHOLD == 0.5
    assert cfg.MIN_MOVEMENT_PX == 5.0
    assert cfg.MAX_ACCEL_VARIANCE == 2.5e6
    assert cfg.DIRECTION_CONVENTION == "down"
    assert cfg.BOW_ARM == "right"
    assert cfg.STICK_THRESHOLDS.as_tuple() == (0.35, 0.55, 0.75, 0.9)


def test_env_overrides(reload_config) -> None:
    cfg = reload_config(
        BOWING_CONFIDENCE_THRESHOLD="0.7",
        BOWING_DIRECTION_CONVENTION="UP",
        BOWING_STICK_THRESHOLDS="0.2,0.4,0.6,0.8",
        BOWING_BOW_LENGTH_PX="320",
    )
    assert cfg.CONFIDENCE_THRESHOLD == 0.7
    assert cfg.STICK_THRESHOLDS.as_tuple() == (0.2, 0.4, 0.6, 0.8)
    tracker = cfg.default_tracker_config()
    assert tracker.positive_dx_direction == "up"
    assert tracker.bow_length_estimate_px == 320.0
    assert tracker.confidence_threshold == 0.7


def test_invalid_env_values_fall_back(reload_config) -> None:
    cfg = reload_config(
        BOWING_MIN_MOVEMENT_PX="abc",
        BOWING_BOW_ARM="middle",
        BOWING_STICK_THRESHOLDS="0.2,0.4",
    )
    assert cfg.MIN_MOVEMENT_PX == 5.0
    assert cfg.BOW_ARM == "right"
    assert cfg.STICK_THRESHOLDS.as_tuple() == (0.35, 0.55, 0.75, 0.9)


def test_out_of_range_env_warns_at_import(reload_config) -> None:
    with pytest.warns(RuntimeWarning, match="CONFIDENCE_THRESHOLD"):
        reload_config(BOWING_CONFIDENCE_THRESHOLD="1.5")


def test_default_tracker_config_replaces_out_of_range_env_values(reload_config) -> None:
    with pytest.warns(RuntimeWarning):
        cfg = reload_config(
            BOWING_CONFIDENCE_THRESHOLD="1.5",
            BOWING_BOW_LENGTH_PX="-10",
            BOWING_STICK_THRESHOLDS="0.5,0.4,0.7,0.9",
            BOWING_MIN_MOVEMENT_PX="8",
        )
    assert cfg.CONFIDENCE_THRESHOLD == 1.5
    tracker = cfg.default_tracker_config()
    assert tracker.confidence_threshold == 0.5
    assert tracker.bow_length_estimate_px == 200.0
    assert tracker.stick_thresholds.as_tuple() == (0.35, 0.55, 0.75, 0.9)
    assert tracker.min_movement_px == 8.0


def test_default_tracker_config_accepts_overrides(reload_config) -> None:
    cfg = reload_config()
    tracker = cfg.default_tracker_config(bow_arm="left", recent_strokes=3)
    assert tracker.bow_arm == "left"
    assert tracker.recent_strokes == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"position_history_size": 0},
        {"velocity_window": 1},
        {"straightness_window": 100},
        {"recent_strokes": 30},
        {"confidence_threshold": 1.2},
        {"max_expected_deviation_px": 0.0},
        {"min_movement_px": -1.0},
        {"positive_dx_direction": "sideways"},
        {"bow_arm": "both"},
        {"stick_thresholds": config.StickThresholds(0.5, 0.4, 0.7, 0.9)},
    ],
)
def test_tracker_config_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        config.TrackerConfig(**kwargs)


def test_load_config_from_toml_section(reload_config, tmp_path) -> None:
    cfg = reload_config()
    path = tmp_path / "bowing.toml"
    path.write_text(
        "\n".join(
            [
                "[bowing]",
                "confidence_threshold = 0.6",
                'direction_convention = "up"',
                'bow_arm = "left"',
                "stick_thresholds = [0.3, 0.5, 0.7, 0.85]",
                "",
                "[bowing.analyzer_thresholds]",
                "head_tilt_max_deg = 20",
            ]
        ),
        encoding="utf-8",
    )
    loaded = cfg.load_config_from_file(path)
    tracker = loaded["TRACKER_CONFIG"]
    assert loaded["CONFIDENCE_THRESHOLD"] == 0.6
    assert tracker.positive_dx_direction == "up"
    assert tracker.bow_arm == "left"
    assert tracker.stick_thresholds.as_tuple() == (0.3, 0.5, 0.7, 0.85)
    assert loaded["ANALYZER_THRESHOLDS"].head_tilt_max_deg == 20.0


def test_load_config_from_json_root_with_env_precedence(reload_config, tmp_path, monkeypatch) -> None:
    cfg = reload_config()
    path = tmp_path / "bowing.json"
    path.write_text(
        json.dumps({"confidence_threshold": 0.6, "min_movement_px": 8, "stick_thresholds": {"frog": 0.3}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("BOWING_CONFIDENCE_THRESHOLD", "0.75")
    loaded = cfg.load_config_from_file(path)
    tracker = loaded["TRACKER_CONFIG"]
    assert tracker.confidence_threshold == 0.75
    assert tracker.min_movement_px == 8.0
    assert tracker.stick_thresholds.frog == 0.3
    assert tracker.stick_thresholds.upper == 0.9


def test_load_config_errors(reload_config, tmp_path) -> None:
    cfg = reload_config()
    with pytest.raises(FileNotFoundError):
        cfg.load_config_from_file(tmp_path / "missing.toml")
    with pytest.raises(ValueError):
        cfg.load_config_from_file(tmp_path)

    yaml_path = tmp_path / "bowing.yaml"
    yaml_path.write_text("bowing: {}", encoding="utf-8")
    with pytest.raises(ValueError):
        cfg.load_config_from_file(yaml_path)

    list_path = tmp_path / "list.json"
    list_path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        cfg.load_config_from_file(list_path)

    unordered = tmp_path / "unordered.json"
    unordered.write_text(json.dumps({"stick_thresholds": [0.5, 0.4, 0.7, 0.9]}), encoding="utf-8")
    with pytest.raises(ValueError):
        cfg.load_config_from_file(unordered)


def test_print_config(reload_config, capsys) -> None:
    cfg = reload_config()
    cfg.print_config()
    out = capsys.readouterr().out
    assert "Bowing analysis configuration:" in out
    assert "Confidence threshold: 0.5" in out
    assert "Bow arm: right" in out
