from __future__ import annotations

import math

import pytest

from bowing_tracker.analysis.strokes import (
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


def _positions(xs, ys=None, dt_ms: float = 33.0):
    ys = ys if ys is not None else [200.0] * len(xs)
    return [TrackedPosition(x=float(x), y=float(y), timestamp_ms=i * dt_ms) for i, (x, y) in enumerate(zip(xs, ys))]


def _points(accelerations, dt_ms: float = 33.0):
    return [
        TrajectoryPoint(x=0.0, y=0.0, timestamp_ms=i * dt_ms, velocity=0.0, acceleration=float(a))
        for i, a in enumerate(accelerations)
    ]


def test_window_velocity_uses_first_and_last_sample() -> None:
    samples = [
        TrackedPosition(0.0, 0.0, 0.0),
        TrackedPosition(500.0, 500.0, 500.0),
        TrackedPosition(30.0, 40.0, 1000.0),
    ]
    assert window_velocity(samples) == pytest.approx(50.0)
    assert window_velocity(samples[:1]) == 0.0
    assert window_velocity([TrackedPosition(0, 0, 10.0), TrackedPosition(5, 5, 10.0)]) == 0.0


def test_window_acceleration_needs_three_points() -> None:
    points = [
        TrajectoryPoint(0, 0, 0.0, velocity=0.0, acceleration=0.0),
        TrajectoryPoint(0, 0, 500.0, velocity=50.0, acceleration=0.0),
        TrajectoryPoint(0, 0, 1000.0, velocity=100.0, acceleration=0.0),
    ]
    assert window_acceleration(points) == pytest.approx(100.0)
    assert window_acceleration(points[:2]) == 0.0


def test_detect_direction_classifies_horizontal_travel() -> None:
    assert detect_direction(_positions([0, 10, 20, 30, 40])) is BowDirection.DOWN
    assert detect_direction(_positions([40, 30, 20, 10, 0])) is BowDirection.UP
    assert detect_direction(_positions([0, 10, 20, 30])) is BowDirection.STATIONARY
    assert detect_direction(_positions([0, 1, 2, 3, 4])) is BowDirection.STATIONARY


def test_detect_direction_threshold_is_inclusive() -> None:
    assert detect_direction(_positions([0, 1, 2, 3, 5])) is BowDirection.DOWN


def test_detect_direction_convention_flips_labels() -> None:
    positions = _positions([0, 10, 20, 30, 40])
    assert detect_direction(positions, positive_dx_direction="up") is BowDirection.UP
    assert detect_direction(list(reversed(positions)), positive_dx_direction="up") is BowDirection.DOWN


def test_path_straightness_perfect_lines_score_100() -> None:
    diagonal = _positions(range(0, 100, 10), [2.0 * x + 5 for x in range(0, 100, 10)])
    assert path_straightness(diagonal) == pytest.approx(100.0)
    vertical = _positions([50.0] * 12, list(range(12)))
    assert path_straightness(vertical) == pytest.approx(100.0)
    still = _positions([50.0] * 12, [20.0] * 12)
    assert path_straightness(still) == 100.0


def test_path_straightness_needs_min_samples() -> None:
    jagged = _positions(range(9), [0, 90, 0, 90, 0, 90, 0, 90, 0])
    assert path_straightness(jagged) == 100.0


def test_path_straightness_decreases_with_jitter() -> None:
    xs = [10.0 * i for i in range(20)]
    scores = []
    for amplitude in (1.0, 2.0, 4.0, 8.0):
        ys = [200.0 + amplitude * (-1) ** i for i in range(20)]
        scores.append(path_straightness(_positions(xs, ys)))
    assert all(0.0 <= s <= 100.0 for s in scores)
    assert all(a > b for a, b in zip(scores, scores[1:]))

    angles = [2.0 * math.pi * i / 20 for i in range(20)]
    circle = _positions([200.0 * math.cos(a) for a in angles], [200.0 * math.sin(a) for a in angles])
    assert path_straightness(circle) == 0.0


def test_path_straightness_measures_perpendicular_deviation() -> None:
    ys = [10.0 * i for i in range(20)]
    steep = _positions([50.0 + 0.5 * (-1) ** i for i in range(20)], ys)
    assert path_straightness(steep) > 98.0

    # Rotating the same jittered path leaves the score unchanged.
    along = [10.0 * i for i in range(20)]
    jitter = [2.0 * (-1) ** i for i in range(20)]
    horizontal = path_straightness(_positions(along, jitter))
    root2 = math.sqrt(2.0)
    diagonal = path_straightness(
        _positions([(a + j) / root2 for a, j in zip(along, jitter)], [(a - j) / root2 for a, j in zip(along, jitter)])
    )
    assert horizontal < 97.0
    assert diagonal == pytest.approx(horizontal, abs=1e-6)


def test_acceleration_smoothness_scales_with_variance() -> None:
    assert acceleration_smoothness(_points([120.0] * 8)) == pytest.approx(100.0)
    assert acceleration_smoothness(_points([0.0, 1e6, -1e6, 1e6])) == 100.0

    amplitude = math.sqrt(1.25e6)
    alternating = [amplitude * (-1) ** i for i in range(10)]
    assert acceleration_smoothness(_points(alternating)) == pytest.approx(50.0)

    huge = [1e4 * (-1) ** i for i in range(10)]
    assert acceleration_smoothness(_points(huge)) == 0.0


def test_stroke_speed_and_bow_fraction() -> None:
    start = TrackedPosition(0.0, 0.0, 0.0)
    end = TrackedPosition(100.0, 0.0, 500.0)
    assert stroke_speed(start, end) == pytest.approx(200.0)
    assert bow_fraction(start, end, 200.0) == pytest.approx(0.5)
    assert bow_fraction(start, end, 50.0) == 1.0
    assert bow_fraction(start, end, 0.0) == 0.0


def test_calibration_reference_projects_and_clamps() -> None:
    ref = CalibrationReference(frog=TrackedPosition(100.0, 200.0, 0.0), tip=TrackedPosition(300.0, 200.0, 0.0))
    assert ref.bow_length == pytest.approx(200.0)
    assert ref.project(200.0, 250.0) == pytest.approx(0.5)
    assert ref.project(50.0, 200.0) == 0.0
    assert ref.project(400.0, 200.0) == 1.0


def test_stick_position_index_runs_frog_to_tip() -> None:
    assert [p.index for p in StickPosition] == [0, 1, 2, 3, 4]
    assert StickPosition.FROG.index == 0
    assert StickPosition.TIP.index == 4


def test_stroke_to_dict_includes_duration() -> None:
    stroke = Stroke(
        direction=BowDirection.UP,
        start_time_ms=100.0,
        end_time_ms=700.0,
        start_position=TrackedPosition(10.0, 20.0, 100.0),
        end_position=TrackedPosition(110.0, 20.0, 700.0),
        speed=166.7,
        straightness=95.0,
        smoothness=88.0,
        bow_fraction=0.5,
    )
    payload = stroke.to_dict()
    assert payload["direction"] == "up"
    assert payload["duration_ms"] == 600.0
    assert payload["end_position"] == {"x": 110.0, "y": 20.0}
