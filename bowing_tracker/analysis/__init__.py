"""Real-time violin bowing analysis over pose keypoints.

Submodules are **lazy-imported** so that light consumers (config inspection,
the rule engine) do not pay for numpy/pandas imports until they need the
tracker or the session report.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ANALYSIS_LOGGER",
    "CONFIDENCE_THRESHOLD",
    "STICK_THRESHOLDS",
    "ANALYZER_THRESHOLDS",
    "TrackerConfig",
    "default_tracker_config",
    "load_config_from_file",
    "validate_config_values",
    "print_config",
    "Keypoint",
    "PoseFrame",
    "PoseLandmark",
    "BowDirection",
    "StickPosition",
    "Stroke",
    "ScalarKalmanFilter",
    "BowTracker",
    "BowAnalysis",
    "analyze_frame",
    "score_frame",
    "generate_session_report",
    "JsonPoseSource",
    "MediaPipePoseSource",
    "evaluate_rules",
]

_EXPORTS = {
    "ANALYSIS_LOGGER": "config",
    "CONFIDENCE_THRESHOLD": "config",
    "STICK_THRESHOLDS": "config",
    "ANALYZER_THRESHOLDS": "config",
    "TrackerConfig": "config",
    "default_tracker_config": "config",
    "load_config_from_file": "config",
    "validate_config_values": "config",
    "print_config": "config",
    "Keypoint": "landmarks",
    "PoseFrame": "landmarks",
    "PoseLandmark": "landmarks",
    "BowDirection": "strokes",
    "StickPosition": "strokes",
    "Stroke": "strokes",
    "ScalarKalmanFilter": "filtering",
    "BowTracker": "tracker",
    "BowAnalysis": "report",
    "analyze_frame": "posture",
    "score_frame": "technique",
    "generate_session_report": "technique",
    "JsonPoseSource": "pose_source",
    "MediaPipePoseSource": "pose_source",
    "evaluate_rules": "feedback",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    module = import_module(f"{__name__}.{module_name}")
    return getattr(module, name)


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(set(list(globals()) + __all__))
