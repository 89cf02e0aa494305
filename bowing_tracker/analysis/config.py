"""Configuration for real-time bowing analysis.

Settings include:
- CONFIDENCE_THRESHOLD: Minimum keypoint score to accept a landmark.
- MIN_MOVEMENT_PX: Horizontal displacement (px) below which the bow counts as stationary.
- MAX_DEVIATION_PX: Mean deviation (px) from the fitted bow path that scores 0 straightness.
- MAX_ACCEL_VARIANCE: Acceleration variance ((px/s^2)^2) that scores 0 smoothness.
- BOW_LENGTH_PX: Bow length estimate (px) used until frog/tip calibration is supplied.
- DIRECTION_CONVENTION: Stroke direction reported for positive x motion ("down" or "up").
- BOW_ARM: Side holding the bow ("right" or "left").
- STICK_THRESHOLDS: Arm-extension ratios splitting frog/lower/middle/upper/tip.
- ANALYZER_THRESHOLDS: Posture classifier cutoffs (normalized by body scale).

All values can be overridden via environment variables to ease per-deployment
tuning. The thresholds were chosen empirically on front-facing webcam footage
of right-handed players; mirrored or side-on framings usually need
DIRECTION_CONVENTION and STICK_THRESHOLDS adjusted.
"""

from __future__ import annotations

import json
import logging
import os
import warnings
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from bowing_tracker.env import get_env

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback when tomllib missing
    try:
        import tomli as tomllib  # type: ignore
    except ModuleNotFoundError:
        tomllib = None  # type: ignore[assignment]


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger("bowing_tracker.analysis")
    level_name = get_env("LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
        logger.setLevel(level)
    return logger


ANALYSIS_LOGGER = _configure_logger()
logger = ANALYSIS_LOGGER

DIRECTION_CONVENTIONS: Tuple[str, ...] = ("down", "up")
BOW_ARMS: Tuple[str, ...] = ("right", "left")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_choice(key: str, default: str, choices: Tuple[str, ...]) -> str:
    raw = os.getenv(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value not in choices:
        logger.warning("Ignoring %s=%r; expected one of %s.", key, raw, ", ".join(choices))
        return default
    return value


def _get_env_floats(key: str, default: Tuple[float, ...]) -> Tuple[float, ...]:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        values = tuple(float(part) for part in raw.split(","))
    except ValueError:
        return default
    return values if len(values) == len(default) else default


def _load_toml_file(path: Path) -> Dict[str, Any]:
    if tomllib is None:
        raise ImportError("TOML configuration requires Python 3.11+ or the 'tomli' package.")
    with path.open("rb") as handle:
        return tomllib.load(handle)


@dataclass(frozen=True)
class StickThresholds:
    """Upper bounds (exclusive) of the arm-extension ratio for each stick region.

    Ratios at or above `upper` classify as the tip.
    """

    frog: float = 0.35
    lower: float = 0.55
    middle: float = 0.75
    upper: float = 0.9

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.frog, self.lower, self.middle, self.upper)

    def is_increasing(self) -> bool:
        values = self.as_tuple()
        return all(a < b for a, b in zip(values, values[1:]))


@dataclass(frozen=True)
class AnalyzerThresholds:
    """Posture classifier cutoffs.

    Ratios are normalized by a body-scale reference (shoulder width, arm or hand
    length) so they hold regardless of distance from the camera. Angles are in
    degrees; image y grows downwards.
    """

    # Shoulders: |level difference| / shoulder width.
    shoulder_level_max: float = 0.1
    # Shoulder-to-ear distance / shoulder width.
    tension_tense_below: float = 0.8
    tension_moderate_below: float = 1.0
    # Head.
    head_tilt_max_deg: float = 15.0
    head_forward_below_deg: float = -60.0
    # Spine: score lost per degree away from vertical.
    spine_penalty_per_deg: float = 3.0
    spine_upright_min: float = 80.0
    # Bow elbow height / shoulder-to-wrist distance.
    elbow_too_high_below: float = -0.15
    elbow_too_low_above: float = 0.25
    # Bow wrist angle (elbow-wrist-index).
    wrist_flexible_min_deg: float = 140.0
    wrist_flexible_max_deg: float = 180.0
    # Left thumb offset / wrist-to-index distance.
    thumb_too_high_below: float = -0.3
    thumb_too_low_above: float = 0.3
    # Scroll height / shoulder-to-wrist distance.
    scroll_too_high_below: float = -0.3
    scroll_too_low_above: float = 0.2
    # Nose-to-shoulder / shoulder-to-wrist distance.
    chin_contact_max_ratio: float = 1.5
    # Left elbow angle upper bounds mapped to fingerboard positions.
    left_hand_positions: Tuple[Tuple[float, int], ...] = field(
        default=((60.0, 7), (75.0, 5), (90.0, 4), (105.0, 3), (120.0, 2))
    )


@dataclass(frozen=True)
class TrackerConfig:
    """Tuning for `BowTracker`.

    Window sizes count samples (frames). Distances are in image pixels and
    speeds in px/s, so the defaults assume roughly 640-1280 px wide frames.
    """

    position_history_size: int = 60  # ~1 s at 60 fps
    stroke_history_size: int = 20
    recent_strokes: int = 5
    confidence_threshold: float = 0.5
    min_movement_px: float = 5.0
    direction_window: int = 10
    min_direction_samples: int = 5
    velocity_window: int = 5
    acceleration_window: int = 5
    straightness_window: int = 20
    min_straightness_samples: int = 10
    smoothness_window: int = 20
    min_smoothness_samples: int = 5
    max_expected_deviation_px: float = 50.0
    max_expected_acceleration_variance: float = 2.5e6
    bow_length_estimate_px: float = 200.0
    positive_dx_direction: str = "down"
    bow_arm: str = "right"
    process_noise: float = 0.1
    measurement_noise: float = 0.5
    max_suggestions: int = 3
    smooth_change_min_score: float = 70.0
    stick_thresholds: StickThresholds = field(default_factory=StickThresholds)

    def __post_init__(self) -> None:
        for name in (
            "position_history_size",
            "stroke_history_size",
            "recent_strokes",
            "direction_window",
            "velocity_window",
            "acceleration_window",
            "straightness_window",
            "smoothness_window",
        ):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be a positive integer; got {getattr(self, name)!r}.")
        for name in ("direction_window", "velocity_window", "acceleration_window"):
            if int(getattr(self, name)) < 2:
                raise ValueError(f"{name} needs at least 2 samples; got {getattr(self, name)!r}.")
        for name in ("straightness_window", "smoothness_window", "direction_window"):
            if int(getattr(self, name)) > int(self.position_history_size):
                raise ValueError(
                    f"{name}={getattr(self, name)} exceeds position_history_size={self.position_history_size}."
                )
        if self.recent_strokes > self.stroke_history_size:
            raise ValueError("recent_strokes cannot exceed stroke_history_size.")
        if not 0.0 <= float(self.confidence_threshold) <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1].")
        for name in (
            "max_expected_deviation_px",
            "max_expected_acceleration_variance",
            "bow_length_estimate_px",
            "process_noise",
            "measurement_noise",
        ):
            if float(getattr(self, name)) <= 0.0:
                raise ValueError(f"{name} must be positive; got {getattr(self, name)!r}.")
        if float(self.min_movement_px) < 0.0:
            raise ValueError("min_movement_px cannot be negative.")
        if self.max_suggestions < 0:
            raise ValueError("max_suggestions cannot be negative.")
        if self.positive_dx_direction not in DIRECTION_CONVENTIONS:
            raise ValueError(
                f"positive_dx_direction must be one of {DIRECTION_CONVENTIONS}; got {self.positive_dx_direction!r}."
            )
        if self.bow_arm not in BOW_ARMS:
            raise ValueError(f"bow_arm must be one of {BOW_ARMS}; got {self.bow_arm!r}.")
        if not self.stick_thresholds.is_increasing():
            raise ValueError(f"stick_thresholds must be strictly increasing; got {self.stick_thresholds!r}.")


# Core thresholds; env vars use the BOWING_ prefix.
CONFIDENCE_THRESHOLD: float = _get_env_float("BOWING_CONFIDENCE_THRESHOLD", 0.5)
MIN_MOVEMENT_PX: float = _get_env_float("BOWING_MIN_MOVEMENT_PX", 5.0)
MAX_DEVIATION_PX: float = _get_env_float("BOWING_MAX_DEVIATION_PX", 50.0)
MAX_ACCEL_VARIANCE: float = _get_env_float("BOWING_MAX_ACCEL_VARIANCE", 2.5e6)
BOW_LENGTH_PX: float = _get_env_float("BOWING_BOW_LENGTH_PX", 200.0)
DIRECTION_CONVENTION: str = _get_env_choice("BOWING_DIRECTION_CONVENTION", "down", DIRECTION_CONVENTIONS)
BOW_ARM: str = _get_env_choice("BOWING_BOW_ARM", "right", BOW_ARMS)

STICK_THRESHOLDS = StickThresholds(*_get_env_floats("BOWING_STICK_THRESHOLDS", StickThresholds().as_tuple()))
ANALYZER_THRESHOLDS = AnalyzerThresholds()

__all__ = [
    "ANALYSIS_LOGGER",
    "CONFIDENCE_THRESHOLD",
    "MIN_MOVEMENT_PX",
    "MAX_DEVIATION_PX",
    "MAX_ACCEL_VARIANCE",
    "BOW_LENGTH_PX",
    "DIRECTION_CONVENTION",
    "BOW_ARM",
    "STICK_THRESHOLDS",
    "ANALYZER_THRESHOLDS",
    "StickThresholds",
    "AnalyzerThresholds",
    "TrackerConfig",
    "default_tracker_config",
    "load_config_from_file",
    "validate_config_values",
    "print_config",
]


def _usable(name: str, value: Any, valid: bool, default: Any) -> Any:
    if valid:
        return value
    logger.warning("Using default %s=%r instead of out-of-range %r.", name, default, value)
    return default


def default_tracker_config(**overrides: Any) -> TrackerConfig:
    """Build a `TrackerConfig` from the module-level (env-aware) defaults.

    Module values that `TrackerConfig` would reject (the ones
    `validate_config_values` warns about) fall back to the built-in defaults,
    so a mistyped environment never stops the tracker from starting.
    """
    fallback = TrackerConfig()
    base = TrackerConfig(
        confidence_threshold=_usable(
            "confidence_threshold",
            CONFIDENCE_THRESHOLD,
            0.0 <= CONFIDENCE_THRESHOLD <= 1.0,
            fallback.confidence_threshold,
        ),
        min_movement_px=_usable("min_movement_px", MIN_MOVEMENT_PX, MIN_MOVEMENT_PX >= 0.0, fallback.min_movement_px),
        max_expected_deviation_px=_usable(
            "max_expected_deviation_px", MAX_DEVIATION_PX, MAX_DEVIATION_PX > 0.0, fallback.max_expected_deviation_px
        ),
        max_expected_acceleration_variance=_usable(
            "max_expected_acceleration_variance",
            MAX_ACCEL_VARIANCE,
            MAX_ACCEL_VARIANCE > 0.0,
            fallback.max_expected_acceleration_variance,
        ),
        bow_length_estimate_px=_usable(
            "bow_length_estimate_px", BOW_LENGTH_PX, BOW_LENGTH_PX > 0.0, fallback.bow_length_estimate_px
        ),
        positive_dx_direction=DIRECTION_CONVENTION,
        bow_arm=BOW_ARM,
        stick_thresholds=_usable(
            "stick_thresholds", STICK_THRESHOLDS, STICK_THRESHOLDS.is_increasing(), fallback.stick_thresholds
        ),
    )
    return replace(base, **overrides) if overrides else base


def _coerce_stick_thresholds(value: Any, default: StickThresholds) -> StickThresholds:
    if isinstance(value, Mapping):
        try:
            return StickThresholds(
                frog=float(value.get("frog", default.frog)),
                lower=float(value.get("lower", default.lower)),
                middle=float(value.get("middle", default.middle)),
                upper=float(value.get("upper", default.upper)),
            )
        except (TypeError, ValueError):
            return default
    if isinstance(value, (list, tuple)) and len(value) == 4:
        try:
            return StickThresholds(*(float(v) for v in value))
        except (TypeError, ValueError):
            return default
    return default


def _coerce_analyzer_thresholds(value: Any) -> AnalyzerThresholds:
    if not isinstance(value, Mapping):
        return ANALYZER_THRESHOLDS
    known = {f.name for f in fields(AnalyzerThresholds)} - {"left_hand_positions"}
    updates: Dict[str, float] = {}
    for key, raw in value.items():
        if key not in known:
            logger.warning("Unknown analyzer threshold %r in config; ignoring.", key)
            continue
        try:
            updates[key] = float(raw)
        except (TypeError, ValueError):
            logger.warning("Analyzer threshold %r is not numeric (%r); ignoring.", key, raw)
    return replace(ANALYZER_THRESHOLDS, **updates)


def load_config_from_file(config_path: Path) -> Dict[str, Any]:
    """Load bowing config from TOML or JSON and apply env var overrides.

    Env vars take precedence over file values. Supports either a root-level
    mapping or a [bowing] table/object in the config file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    if not path.is_file():
        raise ValueError(f"Expected a config file, but got a directory: {path}")

    suffix = path.suffix.lower()
    if suffix == ".toml":
        raw_config = _load_toml_file(path)
    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as handle:
            raw_config = json.load(handle)
    else:
        raise ValueError(f"Unsupported config format for {path}; expected .toml or .json.")

    config_body = raw_config.get("bowing", raw_config) if isinstance(raw_config, dict) else raw_config
    if not isinstance(config_body, dict):
        raise ValueError("Invalid config structure; expected a dict or a [bowing] section.")

    stick = _coerce_stick_thresholds(config_body.get("stick_thresholds"), StickThresholds())
    stick = StickThresholds(*_get_env_floats("BOWING_STICK_THRESHOLDS", stick.as_tuple()))
    direction = _get_env_choice(
        "BOWING_DIRECTION_CONVENTION",
        str(config_body.get("direction_convention", "down")).strip().lower(),
        DIRECTION_CONVENTIONS,
    )
    bow_arm = _get_env_choice("BOWING_BOW_ARM", str(config_body.get("bow_arm", "right")).strip().lower(), BOW_ARMS)

    tracker = TrackerConfig(
        confidence_threshold=_get_env_float(
            "BOWING_CONFIDENCE_THRESHOLD", float(config_body.get("confidence_threshold", 0.5))
        ),
        min_movement_px=_get_env_float("BOWING_MIN_MOVEMENT_PX", float(config_body.get("min_movement_px", 5.0))),
        max_expected_deviation_px=_get_env_float(
            "BOWING_MAX_DEVIATION_PX", float(config_body.get("max_deviation_px", 50.0))
        ),
        max_expected_acceleration_variance=_get_env_float(
            "BOWING_MAX_ACCEL_VARIANCE", float(config_body.get("max_accel_variance", 2.5e6))
        ),
        bow_length_estimate_px=_get_env_float("BOWING_BOW_LENGTH_PX", float(config_body.get("bow_length_px", 200.0))),
        positive_dx_direction=direction,
        bow_arm=bow_arm,
        stick_thresholds=stick,
    )

    return {
        "CONFIDENCE_THRESHOLD": tracker.confidence_threshold,
        "STICK_THRESHOLDS": stick,
        "ANALYZER_THRESHOLDS": _coerce_analyzer_thresholds(config_body.get("analyzer_thresholds")),
        "TRACKER_CONFIG": tracker,
    }


def _check_thresholds() -> None:
    if not 0.0 <= CONFIDENCE_THRESHOLD <= 1.0:
        warnings.warn(
            f"CONFIDENCE_THRESHOLD={CONFIDENCE_THRESHOLD} is outside [0,1]; please correct the environment or config.",
            RuntimeWarning,
            stacklevel=2,
        )
        logger.warning("CONFIDENCE_THRESHOLD is outside [0,1]: %s", CONFIDENCE_THRESHOLD)
    for name, value in (
        ("MAX_DEVIATION_PX", MAX_DEVIATION_PX),
        ("MAX_ACCEL_VARIANCE", MAX_ACCEL_VARIANCE),
        ("BOW_LENGTH_PX", BOW_LENGTH_PX),
    ):
        if value <= 0.0:
            warnings.warn(
                f"{name}={value} must be positive; scores will be meaningless until it is fixed.",
                RuntimeWarning,
                stacklevel=2,
            )
            logger.warning("%s is non-positive: %s", name, value)
    if MIN_MOVEMENT_PX < 0.0:
        warnings.warn(
            f"MIN_MOVEMENT_PX={MIN_MOVEMENT_PX} is negative; the bow will never read as stationary.",
            RuntimeWarning,
            stacklevel=2,
        )
        logger.warning("MIN_MOVEMENT_PX is negative: %s", MIN_MOVEMENT_PX)


def _check_stick_thresholds() -> None:
    values = STICK_THRESHOLDS.as_tuple()
    if not STICK_THRESHOLDS.is_increasing() or not all(0.0 < v <= 1.0 for v in values):
        warnings.warn(
            f"STICK_THRESHOLDS={values} should be strictly increasing within (0,1]; adjust config.",
            RuntimeWarning,
            stacklevel=2,
        )
        logger.warning("Stick thresholds invalid: %s", values)


def validate_config_values() -> None:
    """Validate current config values and emit warnings for suspicious settings."""
    _check_thresholds()
    _check_stick_thresholds()


def print_config() -> None:
    """Print configuration values for debugging purposes."""
    print("Bowing analysis configuration:")
    print(f"  Confidence threshold: {CONFIDENCE_THRESHOLD}")
    print(f"  Min movement (px): {MIN_MOVEMENT_PX}")
    print(f"  Max straightness deviation (px): {MAX_DEVIATION_PX}")
    print(f"  Max acceleration variance: {MAX_ACCEL_VARIANCE}")
    print(f"  Bow length estimate (px): {BOW_LENGTH_PX}")
    print(f"  Positive x motion reads as: {DIRECTION_CONVENTION}-bow")
    print(f"  Bow arm: {BOW_ARM}")
    print(
        "  Stick thresholds (frog, lower, middle, upper): "
        f"{STICK_THRESHOLDS.frog}, {STICK_THRESHOLDS.lower}, {STICK_THRESHOLDS.middle}, {STICK_THRESHOLDS.upper}"
    )


# Run validation at import to surface misconfigurations early.
validate_config_values()
