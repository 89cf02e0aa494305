"""Single-frame posture and instrument-hold classifiers.

Every analyzer is a pure function of one `PoseFrame` and returns `None` when a
required keypoint is not visible or the body-scale reference it normalizes by
is zero. Ratios are scale-free so results do not depend on camera distance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from .config import ANALYZER_THRESHOLDS, CONFIDENCE_THRESHOLD, STICK_THRESHOLDS, AnalyzerThresholds, StickThresholds
from .geometry import angle_at_vertex, angle_from_horizontal, distance, is_visible, midpoint, ratio
from .landmarks import Keypoint, PoseFrame, PoseLandmark, arm_landmarks, other_side
from .strokes import StickPosition

Tension = Literal["relaxed", "moderate", "tense"]
HeadPosition = Literal["correct", "tilted_left", "tilted_right", "forward"]
Placement = Literal["correct", "too_high", "too_low"]


@dataclass(frozen=True)
class ShoulderAnalysis:
    tension: Tension
    level_difference: float  # positive = right shoulder lower in the image
    is_level: bool


@dataclass(frozen=True)
class HeadAnalysis:
    position: HeadPosition
    tilt_angle: float
    forward_angle: float


@dataclass(frozen=True)
class SpineAnalysis:
    alignment: float  # 0-100, 100 = vertical
    is_upright: bool


@dataclass(frozen=True)
class ElbowAnalysis:
    angle: float
    height: Placement


@dataclass(frozen=True)
class WristAnalysis:
    angle: float
    is_flexible: bool


@dataclass(frozen=True)
class LeftHandAnalysis:
    """Fingering-hand estimate (the hand opposite the bow arm)."""

    position: int  # 1-7
    wrist_angle: float
    thumb_position: Placement


@dataclass(frozen=True)
class InstrumentAnalysis:
    scroll_height: Placement
    angle: float
    chin_contact: bool


@dataclass(frozen=True)
class FramePosture:
    """All analyzer results for one frame; each entry is None when not measurable."""

    shoulders: Optional[ShoulderAnalysis] = None
    head: Optional[HeadAnalysis] = None
    spine: Optional[SpineAnalysis] = None
    bow_elbow: Optional[ElbowAnalysis] = None
    bow_wrist: Optional[WristAnalysis] = None
    stick_position: Optional[StickPosition] = None
    left_hand: Optional[LeftHandAnalysis] = None
    instrument: Optional[InstrumentAnalysis] = None


def _min_score(min_score: Optional[float]) -> float:
    return CONFIDENCE_THRESHOLD if min_score is None else float(min_score)


def _visible(frame: PoseFrame, landmark: PoseLandmark, min_score: float) -> Optional[Keypoint]:
    kp = frame.get(landmark)
    return kp if is_visible(kp, min_score) else None


def analyze_shoulders(
    frame: PoseFrame,
    *,
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[ShoulderAnalysis]:
    score = _min_score(min_score)
    left = _visible(frame, PoseLandmark.LEFT_SHOULDER, score)
    right = _visible(frame, PoseLandmark.RIGHT_SHOULDER, score)
    if left is None or right is None:
        return None

    width = distance(left, right)
    level = ratio(right.y - left.y, width)
    if level is None:
        return None

    tension: Tension = "relaxed"
    left_ear = _visible(frame, PoseLandmark.LEFT_EAR, score)
    right_ear = _visible(frame, PoseLandmark.RIGHT_EAR, score)
    if left_ear is not None and right_ear is not None:
        mean_to_ear = (distance(left, left_ear) + distance(right, right_ear)) / 2.0
        tension_ratio = mean_to_ear / width
        if tension_ratio < thresholds.tension_tense_below:
            tension = "tense"
        elif tension_ratio < thresholds.tension_moderate_below:
            tension = "moderate"

    return ShoulderAnalysis(tension=tension, level_difference=level, is_level=abs(level) < thresholds.shoulder_level_max)


def analyze_head_position(
    frame: PoseFrame,
    *,
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[HeadAnalysis]:
    score = _min_score(min_score)
    nose = _visible(frame, PoseLandmark.NOSE, score)
    left = _visible(frame, PoseLandmark.LEFT_SHOULDER, score)
    right = _visible(frame, PoseLandmark.RIGHT_SHOULDER, score)
    if nose is None or left is None or right is None:
        return None

    tilt = 0.0
    left_ear = _visible(frame, PoseLandmark.LEFT_EAR, score)
    right_ear = _visible(frame, PoseLandmark.RIGHT_EAR, score)
    if left_ear is not None and right_ear is not None:
        tilt = angle_from_horizontal(left_ear, right_ear)
        # Ear order flips between mirrored and unmirrored footage; fold into (-90, 90].
        if tilt > 90.0:
            tilt -= 180.0
        elif tilt <= -90.0:
            tilt += 180.0

    forward = angle_from_horizontal(midpoint(left, right), nose)

    position: HeadPosition = "correct"
    if abs(tilt) > thresholds.head_tilt_max_deg:
        position = "tilted_right" if tilt > 0 else "tilted_left"
    elif forward < thresholds.head_forward_below_deg:
        position = "forward"
    return HeadAnalysis(position=position, tilt_angle=tilt, forward_angle=forward)


def analyze_spine(
    frame: PoseFrame,
    *,
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[SpineAnalysis]:
    score = _min_score(min_score)
    points = [
        _visible(frame, landmark, score)
        for landmark in (
            PoseLandmark.LEFT_SHOULDER,
            PoseLandmark.RIGHT_SHOULDER,
            PoseLandmark.LEFT_HIP,
            PoseLandmark.RIGHT_HIP,
        )
    ]
    if any(p is None for p in points):
        return None
    left_shoulder, right_shoulder, left_hip, right_hip = points

    shoulder_mid = midpoint(left_shoulder, right_shoulder)
    hip_mid = midpoint(left_hip, right_hip)
    # Image y grows downwards, so an upright spine points at -90 degrees.
    off_vertical = abs(angle_from_horizontal(hip_mid, shoulder_mid) + 90.0)
    alignment = max(0.0, 100.0 - off_vertical * thresholds.spine_penalty_per_deg)
    return SpineAnalysis(alignment=alignment, is_upright=alignment >= thresholds.spine_upright_min)


def analyze_bow_elbow(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[ElbowAnalysis]:
    score = _min_score(min_score)
    arm = arm_landmarks(bow_arm)
    shoulder = _visible(frame, arm["shoulder"], score)
    elbow = _visible(frame, arm["elbow"], score)
    wrist = _visible(frame, arm["wrist"], score)
    if shoulder is None or elbow is None or wrist is None:
        return None

    height_ratio = ratio(elbow.y - shoulder.y, distance(shoulder, wrist))
    if height_ratio is None:
        return None

    height: Placement = "correct"
    if height_ratio < thresholds.elbow_too_high_below:
        height = "too_high"
    elif height_ratio > thresholds.elbow_too_low_above:
        height = "too_low"
    return ElbowAnalysis(angle=angle_at_vertex(shoulder, elbow, wrist), height=height)


def analyze_bow_wrist(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[WristAnalysis]:
    score = _min_score(min_score)
    arm = arm_landmarks(bow_arm)
    elbow = _visible(frame, arm["elbow"], score)
    wrist = _visible(frame, arm["wrist"], score)
    index = _visible(frame, arm["index"], score)
    if elbow is None or wrist is None or index is None:
        return None

    angle = angle_at_vertex(elbow, wrist, index)
    flexible = thresholds.wrist_flexible_min_deg <= angle <= thresholds.wrist_flexible_max_deg
    return WristAnalysis(angle=angle, is_flexible=flexible)


def classify_stick_ratio(value: float, thresholds: StickThresholds = STICK_THRESHOLDS) -> StickPosition:
    """Bucket a 0..1 frog-to-tip ratio into a stick region."""
    if value < thresholds.frog:
        return StickPosition.FROG
    if value < thresholds.lower:
        return StickPosition.LOWER
    if value < thresholds.middle:
        return StickPosition.MIDDLE
    if value < thresholds.upper:
        return StickPosition.UPPER
    return StickPosition.TIP


def arm_extension(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    min_score: Optional[float] = None,
) -> Optional[float]:
    """Shoulder-to-wrist distance over total arm length (upper arm + forearm)."""
    score = _min_score(min_score)
    arm = arm_landmarks(bow_arm)
    shoulder = _visible(frame, arm["shoulder"], score)
    elbow = _visible(frame, arm["elbow"], score)
    wrist = _visible(frame, arm["wrist"], score)
    if shoulder is None or elbow is None or wrist is None:
        return None
    return ratio(distance(shoulder, wrist), distance(shoulder, elbow) + distance(elbow, wrist))


def determine_stick_position(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: StickThresholds = STICK_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[StickPosition]:
    extension = arm_extension(frame, bow_arm=bow_arm, min_score=min_score)
    if extension is None:
        return None
    return classify_stick_ratio(extension, thresholds)


def _fingerboard_position(elbow_angle: float, thresholds: AnalyzerThresholds) -> int:
    for upper_bound, position in thresholds.left_hand_positions:
        if elbow_angle < upper_bound:
            return int(position)
    return 1


def analyze_left_hand(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[LeftHandAnalysis]:
    score = _min_score(min_score)
    arm = arm_landmarks(other_side(bow_arm))
    shoulder = _visible(frame, arm["shoulder"], score)
    elbow = _visible(frame, arm["elbow"], score)
    wrist = _visible(frame, arm["wrist"], score)
    index = _visible(frame, arm["index"], score)
    if shoulder is None or elbow is None or wrist is None or index is None:
        return None

    thumb_position: Placement = "correct"
    thumb = _visible(frame, arm["thumb"], score)
    # A thumb with no usable wrist-index reference reads as correct.
    thumb_ratio = None if thumb is None else ratio(thumb.y - wrist.y, distance(wrist, index))
    if thumb_ratio is not None:
        if thumb_ratio < thresholds.thumb_too_high_below:
            thumb_position = "too_high"
        elif thumb_ratio > thresholds.thumb_too_low_above:
            thumb_position = "too_low"

    return LeftHandAnalysis(
        position=_fingerboard_position(angle_at_vertex(shoulder, elbow, wrist), thresholds),
        wrist_angle=angle_at_vertex(elbow, wrist, index),
        thumb_position=thumb_position,
    )


def analyze_instrument_position(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    min_score: Optional[float] = None,
) -> Optional[InstrumentAnalysis]:
    score = _min_score(min_score)
    arm = arm_landmarks(other_side(bow_arm))
    shoulder = _visible(frame, arm["shoulder"], score)
    wrist = _visible(frame, arm["wrist"], score)
    if shoulder is None or wrist is None:
        return None

    hand = _visible(frame, arm["index"], score) or wrist
    reach = distance(shoulder, wrist)
    height_ratio = ratio(hand.y - shoulder.y, reach)
    if height_ratio is None:
        return None

    scroll: Placement = "correct"
    if height_ratio < thresholds.scroll_too_high_below:
        scroll = "too_high"
    elif height_ratio > thresholds.scroll_too_low_above:
        scroll = "too_low"

    chin_contact = False
    nose = _visible(frame, PoseLandmark.NOSE, score)
    if nose is not None:
        chin_contact = distance(nose, shoulder) / reach < thresholds.chin_contact_max_ratio

    return InstrumentAnalysis(scroll_height=scroll, angle=angle_from_horizontal(shoulder, hand), chin_contact=chin_contact)


def analyze_frame(
    frame: PoseFrame,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    stick_thresholds: StickThresholds = STICK_THRESHOLDS,
    min_score: Optional[float] = None,
) -> FramePosture:
    """Run every analyzer on `frame`."""
    side = dict(bow_arm=bow_arm, thresholds=thresholds, min_score=min_score)
    return FramePosture(
        shoulders=analyze_shoulders(frame, thresholds=thresholds, min_score=min_score),
        head=analyze_head_position(frame, thresholds=thresholds, min_score=min_score),
        spine=analyze_spine(frame, thresholds=thresholds, min_score=min_score),
        bow_elbow=analyze_bow_elbow(frame, **side),
        bow_wrist=analyze_bow_wrist(frame, **side),
        stick_position=determine_stick_position(
            frame, bow_arm=bow_arm, thresholds=stick_thresholds, min_score=min_score
        ),
        left_hand=analyze_left_hand(frame, **side),
        instrument=analyze_instrument_position(frame, **side),
    )


__all__ = [
    "ShoulderAnalysis",
    "HeadAnalysis",
    "SpineAnalysis",
    "ElbowAnalysis",
    "WristAnalysis",
    "LeftHandAnalysis",
    "InstrumentAnalysis",
    "FramePosture",
    "analyze_shoulders",
    "analyze_head_position",
    "analyze_spine",
    "analyze_bow_elbow",
    "analyze_bow_wrist",
    "arm_extension",
    "classify_stick_ratio",
    "determine_stick_position",
    "analyze_left_hand",
    "analyze_instrument_position",
    "analyze_frame",
]
