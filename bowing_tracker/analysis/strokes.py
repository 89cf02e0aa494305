"""Bow stroke records and the window math the tracker runs on them.

All functions here are pure: they take the most recent samples (oldest first)
and return a number or classification, so they can be tested without a tracker.
Distances are image pixels, times milliseconds, speeds px/s.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np


class BowDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STATIONARY = "stationary"


class StickPosition(str, Enum):
    FROG = "frog"
    LOWER = "lower"
    MIDDLE = "middle"
    UPPER = "upper"
    TIP = "tip"

    @property
    def index(self) -> int:
        """0 at the frog through 4 at the tip."""
        return list(StickPosition).index(self)


@dataclass(frozen=True)
class TrackedPosition:
    x: float
    y: float
    timestamp_ms: float
    z: Optional[float] = None


@dataclass(frozen=True)
class TrajectoryPoint:
    x: float
    y: float
    timestamp_ms: float
    velocity: float
    acceleration: float


@dataclass(frozen=True)
class Stroke:
    direction: BowDirection
    start_time_ms: float
    end_time_ms: float
    start_position: TrackedPosition
    end_position: TrackedPosition
    speed: float
    straightness: float
    smoothness: float
    bow_fraction: float = 0.0

    @property
    def duration_ms(self) -> float:
        return self.end_time_ms - self.start_time_ms

    def to_dict(self) -> dict[str, object]:
        return {
            "direction": self.direction.value,
            "start_time_ms": self.start_time_ms,
            "end_time_ms": self.end_time_ms,
            "duration_ms": self.duration_ms,
            "start_position": {"x": self.start_position.x, "y": self.start_position.y},
            "end_position": {"x": self.end_position.x, "y": self.end_position.y},
            "speed": self.speed,
            "straightness": self.straightness,
            "smoothness": self.smoothness,
            "bow_fraction": self.bow_fraction,
        }


@dataclass(frozen=True)
class CalibrationReference:
    """Wrist positions captured with the bow at the frog and at the tip."""

    frog: TrackedPosition
    tip: TrackedPosition

    @property
    def bow_length(self) -> float:
        return math.hypot(self.tip.x - self.frog.x, self.tip.y - self.frog.y)

    def project(self, x: float, y: float) -> float:
        """Fraction of the frog->tip segment reached by (x, y), clamped to [0, 1]."""
        dx = self.tip.x - self.frog.x
        dy = self.tip.y - self.frog.y
        length_sq = dx * dx + dy * dy
        if length_sq == 0.0:
            return 0.0
        t = ((x - self.frog.x) * dx + (y - self.frog.y) * dy) / length_sq
        return min(1.0, max(0.0, t))


def _elapsed_s(first_ms: float, last_ms: float) -> float:
    return (last_ms - first_ms) / 1000.0


def window_velocity(positions: Sequence[TrackedPosition]) -> float:
    """Straight-line speed between the oldest and newest sample (px/s)."""
    if len(positions) < 2:
        return 0.0
    first, last = positions[0], positions[-1]
    elapsed = _elapsed_s(first.timestamp_ms, last.timestamp_ms)
    if elapsed <= 0.0:
        return 0.0
    return math.hypot(last.x - first.x, last.y - first.y) / elapsed


def window_acceleration(points: Sequence[TrajectoryPoint]) -> float:
    """Velocity change between the oldest and newest sample (px/s^2)."""
    if len(points) < 3:
        return 0.0
    first, last = points[0], points[-1]
    elapsed = _elapsed_s(first.timestamp_ms, last.timestamp_ms)
    if elapsed <= 0.0:
        return 0.0
    return (last.velocity - first.velocity) / elapsed


def detect_direction(
    positions: Sequence[TrackedPosition],
    *,
    min_samples: int = 5,
    min_movement_px: float = 5.0,
    positive_dx_direction: str = "down",
) -> BowDirection:
    """Classify horizontal travel across `positions`.

    `positive_dx_direction` names the stroke that moves the wrist towards +x;
    it depends on camera framing and handedness.
    """
    if len(positions) < max(2, min_samples):
        return BowDirection.STATIONARY
    dx = positions[-1].x - positions[0].x
    if abs(dx) < min_movement_px:
        return BowDirection.STATIONARY
    positive = BowDirection(positive_dx_direction)
    negative = BowDirection.UP if positive is BowDirection.DOWN else BowDirection.DOWN
    return positive if dx > 0 else negative


def path_straightness(
    positions: Sequence[TrackedPosition],
    *,
    max_deviation_px: float = 50.0,
    min_samples: int = 10,
) -> float:
    """Score 0-100 from the mean perpendicular distance to a total-least-squares line.

    The fit does not depend on path orientation. Fewer than `min_samples`
    points score 100.
    """
    if len(positions) < max(2, min_samples):
        return 100.0
    points = np.array([(p.x, p.y) for p in positions], dtype=float)
    centred = points - points.mean(axis=0)
    # Last right-singular vector is the normal of the best-fit line.
    _, _, vt = np.linalg.svd(centred, full_matrices=False)
    deviation = float(np.mean(np.abs(centred @ vt[-1])))
    return max(0.0, 100.0 - deviation / max_deviation_px * 100.0)


def acceleration_smoothness(
    points: Sequence[TrajectoryPoint],
    *,
    max_variance: float = 2.5e6,
    min_samples: int = 5,
) -> float:
    """Score 0-100 from the population variance of acceleration."""
    if len(points) < max(1, min_samples):
        return 100.0
    accelerations = np.array([p.acceleration for p in points], dtype=float)
    variance = float(np.var(accelerations))
    return max(0.0, 100.0 - variance / max_variance * 100.0)


def stroke_speed(start: TrackedPosition, end: TrackedPosition) -> float:
    return window_velocity([start, end])


def bow_fraction(start: TrackedPosition, end: TrackedPosition, bow_length: float) -> float:
    if bow_length <= 0.0:
        return 0.0
    travelled = math.hypot(end.x - start.x, end.y - start.y)
    return min(1.0, travelled / bow_length)


__all__ = [
    "BowDirection",
    "StickPosition",
    "TrackedPosition",
    "TrajectoryPoint",
    "Stroke",
    "CalibrationReference",
    "window_velocity",
    "window_acceleration",
    "detect_direction",
    "path_straightness",
    "acceleration_smoothness",
    "stroke_speed",
    "bow_fraction",
]
