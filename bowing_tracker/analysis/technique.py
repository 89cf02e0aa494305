"""Whole-body technique scoring per frame and over a practice session.

Each frame gets four category scores (posture, bow arm, left hand, instrument
hold) built by subtracting penalties from 100, plus a weighted overall score.
A category whose analyzers saw nothing is `None` and drops out of the overall
score instead of being guessed; the remaining weights are renormalized.

`generate_session_report` summarizes a run of frame analyses:
  - average category scores
  - first-half vs second-half trends (a move of more than 5 points counts)
  - the weakest category when it averages below 70
  - the most frequent suggestions
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .config import ANALYSIS_LOGGER, ANALYZER_THRESHOLDS, AnalyzerThresholds
from .feedback.rules import TECHNIQUE_RULES_CONFIG, evaluate_rules, suggestion_texts
from .landmarks import PoseFrame
from .posture import FramePosture, analyze_frame
from .report import BowAnalysis

logger = ANALYSIS_LOGGER

CATEGORY_WEIGHTS: Dict[str, float] = {
    "posture": 0.25,
    "bow_arm": 0.35,
    "left_hand": 0.20,
    "instrument": 0.20,
}

CATEGORY_LABELS: Dict[str, str] = {
    "posture": "Posture",
    "bow_arm": "Bow arm",
    "left_hand": "Left hand",
    "instrument": "Violin position",
}

TREND_THRESHOLD = 5.0
WEAK_AREA_BELOW = 70.0
MIN_SESSION_ANALYSES = 5

# (improved, declined) messages per category.
_TREND_MESSAGES: Dict[str, Tuple[str, str]] = {
    "posture": ("Posture improved during the session", "Posture declined - watch for fatigue"),
    "bow_arm": ("Bow arm technique improved", "Bow technique needs attention"),
    "left_hand": ("Left hand position improved", "Left hand technique needs work"),
    "instrument": ("Violin position became more stable", "Violin position stability declined"),
}

# Values assumed for a missing analyzer when its category has other data.
_DEFAULT_SPINE_ALIGNMENT = 75.0
_DEFAULT_BOW_STRAIGHTNESS = 70.0
_DEFAULT_WRIST_ANGLE = 160.0
_IDEAL_INSTRUMENT_ANGLE = 40.0


@dataclass(frozen=True)
class TechniqueAnalysis:
    posture_score: Optional[float]
    bow_arm_score: Optional[float]
    left_hand_score: Optional[float]
    instrument_score: Optional[float]
    overall_score: Optional[float]
    suggestions: Tuple[str, ...] = ()
    timestamp_ms: float = 0.0
    posture: FramePosture = field(default_factory=FramePosture)

    def category_scores(self) -> Dict[str, Optional[float]]:
        return {
            "posture": self.posture_score,
            "bow_arm": self.bow_arm_score,
            "left_hand": self.left_hand_score,
            "instrument": self.instrument_score,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            **{f"{name}_score": value for name, value in self.category_scores().items()},
            "overall_score": self.overall_score,
            "suggestions": list(self.suggestions),
        }


@dataclass(frozen=True)
class SessionReport:
    duration_s: int
    average_scores: Dict[str, Optional[int]]
    improvements: Tuple[str, ...]
    focus_areas: Tuple[str, ...]
    top_suggestions: Tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_s": self.duration_s,
            "average_scores": dict(self.average_scores),
            "improvements": list(self.improvements),
            "focus_areas": list(self.focus_areas),
            "top_suggestions": list(self.top_suggestions),
        }


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def score_posture(posture: FramePosture) -> Optional[float]:
    if posture.shoulders is None and posture.head is None and posture.spine is None:
        return None
    score = 100.0
    if posture.shoulders is not None:
        if posture.shoulders.tension == "tense":
            score -= 25
        elif posture.shoulders.tension == "moderate":
            score -= 10
        level = abs(posture.shoulders.level_difference)
        if level > 0.2:
            score -= 15
        elif level > 0.1:
            score -= 5
    if posture.head is not None and posture.head.position != "correct":
        score -= 15
    spine = posture.spine.alignment if posture.spine is not None else _DEFAULT_SPINE_ALIGNMENT
    if spine < 60:
        score -= 20
    elif spine < 80:
        score -= 10
    return _clamp_score(score)


def score_bow_arm(posture: FramePosture, bow_analysis: Optional[BowAnalysis] = None) -> Optional[float]:
    if posture.bow_elbow is None and posture.bow_wrist is None and bow_analysis is None:
        return None
    score = 100.0
    if posture.bow_elbow is not None and posture.bow_elbow.height != "correct":
        score -= 15
    wrist = posture.bow_wrist.angle if posture.bow_wrist is not None else _DEFAULT_WRIST_ANGLE
    if wrist < 130 or wrist > 180:
        score -= 15
    straightness = bow_analysis.bow_straightness if bow_analysis is not None else _DEFAULT_BOW_STRAIGHTNESS
    score -= max(0.0, (80.0 - straightness) * 0.5)
    return _clamp_score(score)


def score_left_hand(posture: FramePosture, thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS) -> Optional[float]:
    hand = posture.left_hand
    if hand is None:
        return None
    score = 100.0
    if hand.thumb_position != "correct":
        score -= 15
    # Wrist angle outside the flexible range stands in for collapsed or flat fingers.
    if hand.wrist_angle < thresholds.wrist_flexible_min_deg or hand.wrist_angle > thresholds.wrist_flexible_max_deg:
        score -= 20
    if hand.wrist_angle < 140 or hand.wrist_angle > 185:
        score -= 10
    return _clamp_score(score)


def score_instrument(posture: FramePosture) -> Optional[float]:
    hold = posture.instrument
    if hold is None:
        return None
    score = 100.0
    if not hold.chin_contact:
        score -= 20
    if hold.scroll_height != "correct":
        score -= 15
    stability = max(0.0, 100.0 - abs(abs(hold.angle) - _IDEAL_INSTRUMENT_ANGLE) * 2.0)
    score -= max(0.0, (70.0 - stability) * 0.3)
    return _clamp_score(score)


def weighted_overall(scores: Mapping[str, Optional[float]], weights: Mapping[str, float] = CATEGORY_WEIGHTS) -> Optional[float]:
    """Weighted mean of the available category scores (weights renormalized)."""
    total = 0.0
    weight_sum = 0.0
    for name, weight in weights.items():
        value = scores.get(name)
        if value is None:
            continue
        total += value * weight
        weight_sum += weight
    if weight_sum == 0.0:
        return None
    return total / weight_sum


def _flag(value: bool) -> float:
    return 1.0 if value else 0.0


def technique_metrics(posture: FramePosture, bow_analysis: Optional[BowAnalysis] = None) -> dict[str, dict[str, float]]:
    """Nested metric mapping for the technique rules; absent analyzers add no keys."""
    metrics: dict[str, dict[str, float]] = {"posture": {}, "bow_arm": {}, "left_hand": {}, "instrument": {}}
    if posture.shoulders is not None:
        metrics["posture"]["shoulders_tense"] = _flag(posture.shoulders.tension == "tense")
        metrics["posture"]["shoulder_level_abs"] = abs(posture.shoulders.level_difference)
    if posture.head is not None:
        metrics["posture"]["head_tilted"] = _flag(posture.head.position in ("tilted_left", "tilted_right"))
        metrics["posture"]["head_forward"] = _flag(posture.head.position == "forward")
    if posture.spine is not None:
        metrics["posture"]["spine_alignment"] = posture.spine.alignment
    if posture.bow_elbow is not None:
        metrics["bow_arm"]["elbow_too_high"] = _flag(posture.bow_elbow.height == "too_high")
        metrics["bow_arm"]["elbow_too_low"] = _flag(posture.bow_elbow.height == "too_low")
    if posture.bow_wrist is not None:
        metrics["bow_arm"]["wrist_angle"] = posture.bow_wrist.angle
    if bow_analysis is not None:
        metrics["bow_arm"]["bow_straightness"] = bow_analysis.bow_straightness
    if posture.left_hand is not None:
        metrics["left_hand"]["thumb_too_high"] = _flag(posture.left_hand.thumb_position == "too_high")
        metrics["left_hand"]["thumb_too_low"] = _flag(posture.left_hand.thumb_position == "too_low")
        metrics["left_hand"]["wrist_angle"] = posture.left_hand.wrist_angle
    if posture.instrument is not None:
        metrics["instrument"]["chin_contact"] = _flag(posture.instrument.chin_contact)
        metrics["instrument"]["scroll_too_high"] = _flag(posture.instrument.scroll_height == "too_high")
        metrics["instrument"]["scroll_too_low"] = _flag(posture.instrument.scroll_height == "too_low")
    return metrics


def score_frame(
    frame: PoseFrame,
    bow_analysis: Optional[BowAnalysis] = None,
    *,
    bow_arm: str = "right",
    thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS,
    max_suggestions: int = 3,
    rules_config: Optional[Any] = None,
) -> TechniqueAnalysis:
    """Score one frame; pass the tracker's `BowAnalysis` to include bow straightness."""
    posture = analyze_frame(frame, bow_arm=bow_arm, thresholds=thresholds)
    scores = {
        "posture": score_posture(posture),
        "bow_arm": score_bow_arm(posture, bow_analysis),
        "left_hand": score_left_hand(posture, thresholds),
        "instrument": score_instrument(posture),
    }
    matches = evaluate_rules(
        technique_metrics(posture, bow_analysis),
        TECHNIQUE_RULES_CONFIG if rules_config is None else rules_config,
    )
    return TechniqueAnalysis(
        posture_score=scores["posture"],
        bow_arm_score=scores["bow_arm"],
        left_hand_score=scores["left_hand"],
        instrument_score=scores["instrument"],
        overall_score=weighted_overall(scores),
        suggestions=tuple(suggestion_texts(matches, max_suggestions)),
        timestamp_ms=float(frame.timestamp_ms),
        posture=posture,
    )


def _round_or_none(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return int(round(float(value)))


def history_frame(history: Sequence[TechniqueAnalysis]) -> pd.DataFrame:
    """Tabulate analyses: one row per frame, one column per score."""
    rows = [
        {"timestamp_ms": a.timestamp_ms, **a.category_scores(), "overall": a.overall_score}
        for a in history
    ]
    df = pd.DataFrame(rows, columns=["timestamp_ms", *CATEGORY_WEIGHTS, "overall"])
    return df.astype(float)


def generate_session_report(history: Sequence[TechniqueAnalysis]) -> Optional[SessionReport]:
    """Summarize a session; returns None with fewer than 5 analyses."""
    if len(history) < MIN_SESSION_ANALYSES:
        return None

    df = history_frame(history)
    duration_s = int(round((df["timestamp_ms"].iloc[-1] - df["timestamp_ms"].iloc[0]) / 1000.0))
    means = df.drop(columns=["timestamp_ms"]).mean(skipna=True)
    average_scores = {name: _round_or_none(means[name]) for name in [*CATEGORY_WEIGHTS, "overall"]}

    mid = len(df) // 2
    first_half = df.iloc[:mid][list(CATEGORY_WEIGHTS)].mean(skipna=True)
    second_half = df.iloc[mid:][list(CATEGORY_WEIGHTS)].mean(skipna=True)

    improvements: list[str] = []
    focus_areas: list[str] = []
    for name, (improved, declined) in _TREND_MESSAGES.items():
        change = second_half[name] - first_half[name]
        if pd.isna(change):
            continue
        if change > TREND_THRESHOLD:
            improvements.append(improved)
        elif -change > TREND_THRESHOLD:
            focus_areas.append(declined)

    available = means[list(CATEGORY_WEIGHTS)].dropna()
    if not available.empty:
        # Stable sort keeps the declared category order on ties.
        weakest_name = available.sort_values(kind="stable").index[0]
        if round(float(available[weakest_name])) < WEAK_AREA_BELOW:
            focus_areas.append(f"{CATEGORY_LABELS[weakest_name]} needs the most improvement")

    all_suggestions = [text for analysis in history for text in analysis.suggestions]
    top: list[str] = []
    if all_suggestions:
        counts = pd.Series(all_suggestions).value_counts(sort=False)
        top = [str(text) for text in counts.sort_values(ascending=False, kind="stable").index[:3]]

    logger.debug("Session report over %d analyses spanning %d s", len(history), duration_s)
    return SessionReport(
        duration_s=duration_s,
        average_scores=average_scores,
        improvements=tuple(improvements),
        focus_areas=tuple(focus_areas),
        top_suggestions=tuple(top),
    )


__all__ = [
    "CATEGORY_WEIGHTS",
    "TechniqueAnalysis",
    "SessionReport",
    "score_posture",
    "score_bow_arm",
    "score_left_hand",
    "score_instrument",
    "weighted_overall",
    "technique_metrics",
    "score_frame",
    "history_frame",
    "generate_session_report",
]
