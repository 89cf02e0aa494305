from __future__ import annotations

import numpy as np
import pytest

from bowing_tracker.analysis.config import TrackerConfig
from bowing_tracker.analysis.landmarks import Keypoint, PoseFrame
from bowing_tracker.analysis.strokes import BowDirection, StickPosition, TrackedPosition
from bowing_tracker.analysis.tracker import BowTracker, track_frames

FRAME_MS = 1000.0 / 30.0


def _wrist_frame(x: float, y: float, index: int, *, score: float = 0.9, side: str = "right") -> PoseFrame:
    return PoseFrame.from_keypoints({f"{side}_wrist": Keypoint(x, y, score=score)}, timestamp_ms=index * FRAME_MS)


def _feed(tracker: BowTracker, xs, y: float = 200.0):
    return [tracker.update(_wrist_frame(x, y, i)) for i, x in enumerate(xs)]


def test_low_confidence_wrist_is_ignored() -> None:
    tracker = BowTracker(TrackerConfig())
    assert tracker.update(_wrist_frame(100, 200, 0, score=0.49)) is None
    assert tracker.positions == []
    assert tracker.update(PoseFrame.from_keypoints({})) is None

    analysis = tracker.update(_wrist_frame(100, 200, 1, score=0.5))
    assert analysis is not None
    assert len(tracker.positions) == 1


def test_steady_motion_reads_as_down_bow_after_min_samples() -> None:
    tracker = BowTracker(TrackerConfig())
    results = _feed(tracker, [100 + 10 * i for i in range(12)])
    directions = [r.current_direction for r in results]
    assert directions[:4] == [BowDirection.STATIONARY] * 4
    assert all(d is BowDirection.DOWN for d in directions[4:])
    assert tracker.strokes == []
    assert tracker.current_stroke is not None
    assert tracker.current_stroke["direction"] is BowDirection.DOWN
    assert results[-1].bow_speed > 0.0
    assert results[-1].is_moving


def test_still_wrist_stays_stationary() -> None:
    tracker = BowTracker(TrackerConfig())
    results = _feed(tracker, [150.0] * 30)
    assert all(r.current_direction is BowDirection.STATIONARY for r in results)
    assert tracker.strokes == []
    assert tracker.current_stroke is None
    assert results[-1].bow_speed == 0.0
    assert results[-1].bow_straightness == 100.0


def test_single_reversal_completes_one_stroke() -> None:
    tracker = BowTracker(TrackerConfig())
    xs = [100 + 10 * i for i in range(20)] + [290 - 10 * i for i in range(20)]
    results = _feed(tracker, xs)

    strokes = tracker.strokes
    assert len(strokes) == 1
    stroke = strokes[0]
    assert stroke.direction is BowDirection.DOWN
    assert stroke.start_time_ms == pytest.approx(4 * FRAME_MS)
    assert stroke.end_time_ms > 19 * FRAME_MS
    assert stroke.speed > 0.0
    assert 0.0 < stroke.bow_fraction <= 1.0
    assert stroke.straightness == pytest.approx(100.0)
    assert tracker.current_direction is BowDirection.UP
    assert results[-1].recent_strokes == (stroke,)
    assert results[-1].average_speed == pytest.approx(stroke.speed)


def test_direction_convention_up_flips_labels() -> None:
    tracker = BowTracker(TrackerConfig(positive_dx_direction="up"))
    results = _feed(tracker, [100 + 10 * i for i in range(8)])
    assert results[-1].current_direction is BowDirection.UP


def test_left_bow_arm_follows_left_wrist() -> None:
    tracker = BowTracker(TrackerConfig(bow_arm="left"))
    assert tracker.update(_wrist_frame(100, 200, 0)) is None
    assert tracker.update(_wrist_frame(100, 200, 1, side="left")) is not None


def test_history_buffers_stay_bounded() -> None:
    config = TrackerConfig()
    tracker = BowTracker(config)
    rng = np.random.default_rng(3)
    # Triangle wave: 20 frames each way plus jitter.
    for i in range(500):
        phase = i % 40
        x = 100 + 10 * (phase if phase < 20 else 40 - phase) + rng.normal(0.0, 1.0)
        analysis = tracker.update(_wrist_frame(x, 200 + rng.normal(0.0, 1.0), i))
        assert analysis is not None
        assert len(analysis.recent_strokes) <= config.recent_strokes
        assert len(analysis.suggestions) <= config.max_suggestions
    assert len(tracker.positions) == config.position_history_size
    assert len(tracker.trajectory) == config.position_history_size
    assert len(tracker.strokes) == config.stroke_history_size


def test_noisy_stroke_scores_high_straightness_and_smoothness() -> None:
    rng = np.random.default_rng(7)
    tracker = BowTracker(TrackerConfig())
    for i in range(30):
        x = 100 + 5 * i if i <= 14 else 170 - 5 * (i - 14)
        tracker.update(_wrist_frame(x + rng.normal(0.0, 2.0), 200 + rng.normal(0.0, 2.0), i))

    strokes = tracker.strokes
    assert len(strokes) == 1
    assert strokes[0].direction is BowDirection.DOWN
    assert strokes[0].straightness > 90.0
    assert strokes[0].smoothness > 80.0
    assert tracker.current_direction is BowDirection.UP


def test_reset_matches_fresh_tracker() -> None:
    xs = [100 + 10 * i for i in range(20)] + [290 - 10 * i for i in range(20)]
    tracker = BowTracker(TrackerConfig())
    tracker.calibrate((100, 200), (300, 200))
    _feed(tracker, xs)
    tracker.reset()

    assert tracker.positions == []
    assert tracker.strokes == []
    assert tracker.current_direction is BowDirection.STATIONARY
    assert not tracker.is_calibrated

    again = [r.to_dict() for r in _feed(tracker, xs)]
    fresh = [r.to_dict() for r in _feed(BowTracker(TrackerConfig()), xs)]
    assert again == fresh


def test_disposed_tracker_refuses_updates() -> None:
    with BowTracker(TrackerConfig()) as tracker:
        tracker.update(_wrist_frame(100, 200, 0))
    assert tracker.closed
    with pytest.raises(RuntimeError):
        tracker.update(_wrist_frame(100, 200, 1))


def test_calibration_drives_stick_position() -> None:
    config = TrackerConfig()
    near_tip = BowTracker(config)
    near_tip.calibrate(TrackedPosition(100, 200, 0.0), Keypoint(300, 200))
    assert near_tip.is_calibrated
    assert near_tip.bow_length == pytest.approx(200.0)
    assert near_tip.update(_wrist_frame(290, 200, 0)).stick_position is StickPosition.TIP

    near_frog = BowTracker(config)
    near_frog.calibrate((100, 200), (300, 200))
    assert near_frog.update(_wrist_frame(110, 200, 0)).stick_position is StickPosition.FROG

    near_frog.clear_calibration()
    assert near_frog.bow_length == config.bow_length_estimate_px


def test_calibration_rejects_coincident_points() -> None:
    tracker = BowTracker(TrackerConfig())
    with pytest.raises(ValueError):
        tracker.calibrate((100, 200), (100, 200))
    assert not tracker.is_calibrated


def test_arm_extension_sets_stick_position_without_calibration() -> None:
    tracker = BowTracker(TrackerConfig())
    assert tracker.stick_position is StickPosition.MIDDLE

    only_wrist = tracker.update(_wrist_frame(600, 200, 0))
    assert only_wrist.stick_position is StickPosition.MIDDLE

    extended = PoseFrame.from_keypoints(
        {
            "right_shoulder": Keypoint(400, 200, score=0.9),
            "right_elbow": Keypoint(500, 200, score=0.9),
            "right_wrist": Keypoint(600, 200, score=0.9),
        },
        timestamp_ms=FRAME_MS,
    )
    assert tracker.update(extended).stick_position is StickPosition.TIP
    assert tracker.stick_position is StickPosition.TIP


def test_trackers_do_not_share_state() -> None:
    first = BowTracker(TrackerConfig())
    second = BowTracker(TrackerConfig())
    _feed(first, [100 + 10 * i for i in range(10)])
    assert second.positions == []
    assert second.current_direction is BowDirection.STATIONARY


def test_track_frames_returns_one_result_per_frame() -> None:
    frames = [_wrist_frame(100 + 10 * i, 200, i) for i in range(6)]
    frames.insert(3, _wrist_frame(0, 0, 3, score=0.1))
    results = track_frames(frames, TrackerConfig())
    assert len(results) == 7
    assert results[3] is None
    assert all(r is not None for i, r in enumerate(results) if i != 3)


def test_non_finite_wrist_is_skipped_without_poisoning_the_filters() -> None:
    tracker = BowTracker(TrackerConfig())
    xs = [100 + 5 * i for i in range(40)]
    results = [tracker.update(_wrist_frame(x, 200.0, i)) for i, x in enumerate(xs[:5])]
    assert tracker.update(PoseFrame.from_keypoints({"right_wrist": Keypoint(np.nan, 200.0, score=0.9)})) is None
    assert tracker.update(PoseFrame.from_keypoints({"right_wrist": Keypoint(300.0, np.inf, score=0.9)})) is None
    results += [tracker.update(_wrist_frame(x, 200.0, i)) for i, x in enumerate(xs[5:], start=5)]

    assert all(result is not None for result in results)
    assert len(tracker.positions) == 40
    assert all(np.isfinite([p.x, p.y]).all() for p in tracker.positions)
    assert np.isfinite(results[-1].bow_speed)
    assert results[-1].bow_straightness == pytest.approx(100.0)
