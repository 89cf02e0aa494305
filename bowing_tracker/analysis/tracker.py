"""Stateful bow-motion tracker.

`BowTracker` follows the bow-arm wrist frame by frame, smooths it, keeps a
bounded history of positions and derived velocity/acceleration, segments the
motion into strokes on direction reversals and reports a `BowAnalysis`
snapshot per accepted frame. One tracker follows one player; instances share
no state.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, List, Optional, Sequence

from .config import ANALYSIS_LOGGER, TrackerConfig, default_tracker_config
from .filtering import AxisFilterBank
from .geometry import is_visible
from .landmarks import PoseFrame, arm_landmarks
from .posture import arm_extension, classify_stick_ratio
from .report import BowAnalysis, build_analysis
from .strokes import (
    BowDirection,
    CalibrationReference,
    StickPosition,
    Stroke,
    TrackedPosition,
    TrajectoryPoint,
    acceleration_smoothness,
    bow_fraction,
    detect_direction,
    path_straightness,
    stroke_speed,
    window_acceleration,
    window_velocity,
)

logger = ANALYSIS_LOGGER


def _tail(buffer: Deque[Any], count: int) -> list:
    if count <= 0:
        return []
    items = list(buffer)
    return items[-count:]


def _as_position(value: Any, timestamp_ms: float = 0.0) -> TrackedPosition:
    if isinstance(value, TrackedPosition):
        return value
    if hasattr(value, "x") and hasattr(value, "y"):
        return TrackedPosition(x=float(value.x), y=float(value.y), timestamp_ms=timestamp_ms)
    x, y = value
    return TrackedPosition(x=float(x), y=float(y), timestamp_ms=timestamp_ms)


class _OpenStroke:
    __slots__ = ("direction", "start", "samples")

    def __init__(self, direction: BowDirection, start: TrackedPosition) -> None:
        self.direction = direction
        self.start = start
        self.samples = 1


class BowTracker:
    """Real-time bow direction, stroke and stick-position tracker."""

    def __init__(self, config: Optional[TrackerConfig] = None) -> None:
        self.config = config or default_tracker_config()
        self._arm = arm_landmarks(self.config.bow_arm)
        self._filters = AxisFilterBank(
            2,
            process_noise=self.config.process_noise,
            measurement_noise=self.config.measurement_noise,
        )
        self._positions: Deque[TrackedPosition] = deque(maxlen=self.config.position_history_size)
        self._trajectory: Deque[TrajectoryPoint] = deque(maxlen=self.config.position_history_size)
        self._strokes: Deque[Stroke] = deque(maxlen=self.config.stroke_history_size)
        self._open_stroke: Optional[_OpenStroke] = None
        self._direction = BowDirection.STATIONARY
        self._last_moving_direction: Optional[BowDirection] = None
        self._stick_position = StickPosition.MIDDLE
        self._calibration: Optional[CalibrationReference] = None
        self._closed = False

    # -- lifecycle ---------------------------------------------------------

    def __enter__(self) -> "BowTracker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def reset(self) -> None:
        """Clear all history, filters and calibration; the instance stays usable."""
        self._positions.clear()
        self._trajectory.clear()
        self._strokes.clear()
        self._filters.reset()
        self._open_stroke = None
        self._direction = BowDirection.STATIONARY
        self._last_moving_direction = None
        self._stick_position = StickPosition.MIDDLE
        self._calibration = None

    def dispose(self) -> None:
        self.reset()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # -- calibration -------------------------------------------------------

    def calibrate(self, frog: Any, tip: Any) -> CalibrationReference:
        """Record wrist positions at the frog and the tip of the bow.

        Accepts `TrackedPosition`, `Keypoint` or `(x, y)` pairs.
        """
        reference = CalibrationReference(frog=_as_position(frog), tip=_as_position(tip))
        if reference.bow_length == 0.0:
            raise ValueError("Frog and tip references must be distinct points.")
        self._calibration = reference
        logger.debug("Bow calibrated: length %.1f px", reference.bow_length)
        return reference

    def clear_calibration(self) -> None:
        self._calibration = None

    @property
    def is_calibrated(self) -> bool:
        return self._calibration is not None

    @property
    def calibration(self) -> Optional[CalibrationReference]:
        return self._calibration

    @property
    def bow_length(self) -> float:
        if self._calibration is not None:
            return self._calibration.bow_length
        return self.config.bow_length_estimate_px

    # -- read views --------------------------------------------------------

    @property
    def positions(self) -> List[TrackedPosition]:
        return list(self._positions)

    @property
    def trajectory(self) -> List[TrajectoryPoint]:
        return list(self._trajectory)

    @property
    def strokes(self) -> List[Stroke]:
        return list(self._strokes)

    @property
    def current_direction(self) -> BowDirection:
        return self._direction

    @property
    def current_stroke(self) -> Optional[dict[str, object]]:
        """The in-progress stroke (direction, start position/time, sample count) or None."""
        if self._open_stroke is None:
            return None
        return {
            "direction": self._open_stroke.direction,
            "start_position": self._open_stroke.start,
            "start_time_ms": self._open_stroke.start.timestamp_ms,
            "samples": self._open_stroke.samples,
        }

    @property
    def stick_position(self) -> StickPosition:
        return self._stick_position

    # -- per-frame ---------------------------------------------------------

    def update(self, frame: PoseFrame) -> Optional[BowAnalysis]:
        """Feed one frame; returns None (state untouched) when the bow wrist is not usable."""
        if self._closed:
            raise RuntimeError("BowTracker has been disposed; create a new tracker.")
        cfg = self.config
        wrist = frame.get(self._arm["wrist"])
        if wrist is None or not is_visible(wrist, cfg.confidence_threshold):
            return None

        timestamp = float(frame.timestamp_ms)
        x, y = self._filters.filter((wrist.x, wrist.y))
        position = TrackedPosition(x=x, y=y, timestamp_ms=timestamp, z=wrist.z)
        self._positions.append(position)

        velocity = window_velocity(_tail(self._positions, cfg.velocity_window))
        # The current point joins the acceleration window with its own velocity.
        provisional = TrajectoryPoint(x=x, y=y, timestamp_ms=timestamp, velocity=velocity, acceleration=0.0)
        window = _tail(self._trajectory, cfg.acceleration_window - 1) + [provisional]
        acceleration = window_acceleration(window)
        self._trajectory.append(
            TrajectoryPoint(x=x, y=y, timestamp_ms=timestamp, velocity=velocity, acceleration=acceleration)
        )

        if self._open_stroke is not None:
            self._open_stroke.samples += 1

        direction = detect_direction(
            _tail(self._positions, cfg.direction_window),
            min_samples=cfg.min_direction_samples,
            min_movement_px=cfg.min_movement_px,
            positive_dx_direction=cfg.positive_dx_direction,
        )
        if direction is not BowDirection.STATIONARY and direction is not self._last_moving_direction:
            self._change_direction(direction, position)
        self._direction = direction

        self._stick_position = self._locate_on_stick(frame, position)
        straightness = path_straightness(
            _tail(self._positions, cfg.straightness_window),
            max_deviation_px=cfg.max_expected_deviation_px,
            min_samples=cfg.min_straightness_samples,
        )
        return build_analysis(
            direction=direction,
            stick_position=self._stick_position,
            speed=velocity,
            straightness=straightness,
            strokes=self.strokes,
            timestamp_ms=timestamp,
            recent_count=cfg.recent_strokes,
            max_suggestions=cfg.max_suggestions,
            smooth_change_min_score=cfg.smooth_change_min_score,
        )

    def _change_direction(self, direction: BowDirection, position: TrackedPosition) -> None:
        if self._open_stroke is not None:
            stroke = self._close_stroke(self._open_stroke, position)
            self._strokes.append(stroke)
            logger.debug(
                "Stroke completed: %s %.0f ms speed=%.1f straightness=%.1f smoothness=%.1f",
                stroke.direction.value,
                stroke.duration_ms,
                stroke.speed,
                stroke.straightness,
                stroke.smoothness,
            )
        self._open_stroke = _OpenStroke(direction, position)
        self._last_moving_direction = direction

    def _close_stroke(self, open_stroke: _OpenStroke, end: TrackedPosition) -> Stroke:
        cfg = self.config
        samples = open_stroke.samples
        return Stroke(
            direction=open_stroke.direction,
            start_time_ms=open_stroke.start.timestamp_ms,
            end_time_ms=end.timestamp_ms,
            start_position=open_stroke.start,
            end_position=end,
            speed=stroke_speed(open_stroke.start, end),
            straightness=path_straightness(
                _tail(self._positions, min(samples, cfg.straightness_window)),
                max_deviation_px=cfg.max_expected_deviation_px,
                min_samples=cfg.min_straightness_samples,
            ),
            smoothness=acceleration_smoothness(
                _tail(self._trajectory, min(samples, cfg.smoothness_window)),
                max_variance=cfg.max_expected_acceleration_variance,
                min_samples=cfg.min_smoothness_samples,
            ),
            bow_fraction=bow_fraction(open_stroke.start, end, self.bow_length),
        )

    def _locate_on_stick(self, frame: PoseFrame, position: TrackedPosition) -> StickPosition:
        thresholds = self.config.stick_thresholds
        if self._calibration is not None:
            return classify_stick_ratio(self._calibration.project(position.x, position.y), thresholds)
        extension = arm_extension(frame, bow_arm=self.config.bow_arm, min_score=self.config.confidence_threshold)
        if extension is None:
            return self._stick_position
        return classify_stick_ratio(extension, thresholds)


def track_frames(frames: Sequence[PoseFrame], config: Optional[TrackerConfig] = None) -> List[Optional[BowAnalysis]]:
    """Run a fresh tracker over `frames` and collect the per-frame results."""
    tracker = BowTracker(config)
    return [tracker.update(frame) for frame in frames]


__all__ = ["BowTracker", "track_frames"]
