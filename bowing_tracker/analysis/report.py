"""Per-frame bowing snapshot assembled from tracker state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

from .feedback.rules import BOWING_RULES_CONFIG, evaluate_rules, suggestion_texts
from .strokes import BowDirection, StickPosition, Stroke

RECENT_STROKES = 5
MAX_SUGGESTIONS = 3
SMOOTH_CHANGE_MIN_SCORE = 70.0


@dataclass(frozen=True)
class BowAnalysis:
    current_direction: BowDirection
    stick_position: StickPosition
    bow_speed: float
    bow_straightness: float
    bow_change_smooth: bool
    recent_strokes: Tuple[Stroke, ...] = ()
    average_speed: float = 0.0
    average_straightness: float = 100.0
    suggestions: Tuple[str, ...] = field(default_factory=tuple)
    timestamp_ms: float = 0.0

    @property
    def is_moving(self) -> bool:
        return self.current_direction is not BowDirection.STATIONARY

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "current_direction": self.current_direction.value,
            "stick_position": self.stick_position.value,
            "bow_speed": self.bow_speed,
            "bow_straightness": self.bow_straightness,
            "bow_change_smooth": self.bow_change_smooth,
            "recent_strokes": [stroke.to_dict() for stroke in self.recent_strokes],
            "average_speed": self.average_speed,
            "average_straightness": self.average_straightness,
            "suggestions": list(self.suggestions),
        }


def is_bow_change_smooth(strokes: Sequence[Stroke], min_score: float = SMOOTH_CHANGE_MIN_SCORE) -> bool:
    """False only when each of the two most recent strokes scored `min_score` or less."""
    if len(strokes) < 2:
        return True
    return any(stroke.smoothness > min_score for stroke in strokes[-2:])


def bowing_metrics(
    *,
    direction: BowDirection,
    stick_position: StickPosition,
    speed: float,
    straightness: float,
    bow_change_smooth: bool,
) -> dict[str, float]:
    """Flat metric mapping consumed by the bowing suggestion rules."""
    return {
        "straightness": float(straightness),
        "bow_change_smooth": 1.0 if bow_change_smooth else 0.0,
        "speed": float(speed),
        "is_moving": 0.0 if direction is BowDirection.STATIONARY else 1.0,
        "stick_position_index": float(stick_position.index),
    }


def build_analysis(
    *,
    direction: BowDirection,
    stick_position: StickPosition,
    speed: float,
    straightness: float,
    strokes: Sequence[Stroke],
    timestamp_ms: float = 0.0,
    recent_count: int = RECENT_STROKES,
    max_suggestions: int = MAX_SUGGESTIONS,
    smooth_change_min_score: float = SMOOTH_CHANGE_MIN_SCORE,
    rules_config: Optional[Any] = None,
) -> BowAnalysis:
    """Combine current measurements with stroke history into a `BowAnalysis`."""
    recent = tuple(strokes[-recent_count:]) if recent_count > 0 else ()
    if recent:
        average_speed = sum(s.speed for s in recent) / len(recent)
        average_straightness = sum(s.straightness for s in recent) / len(recent)
    else:
        average_speed = 0.0
        average_straightness = float(straightness)

    smooth = is_bow_change_smooth(strokes, smooth_change_min_score)
    metrics = bowing_metrics(
        direction=direction,
        stick_position=stick_position,
        speed=speed,
        straightness=straightness,
        bow_change_smooth=smooth,
    )
    matches = evaluate_rules(metrics, BOWING_RULES_CONFIG if rules_config is None else rules_config)

    return BowAnalysis(
        current_direction=direction,
        stick_position=stick_position,
        bow_speed=float(speed),
        bow_straightness=float(straightness),
        bow_change_smooth=smooth,
        recent_strokes=recent,
        average_speed=average_speed,
        average_straightness=average_straightness,
        suggestions=tuple(suggestion_texts(matches, max_suggestions)),
        timestamp_ms=float(timestamp_ms),
    )


__all__ = ["BowAnalysis", "build_analysis", "bowing_metrics", "is_bow_change_smooth"]
