"""Plane geometry helpers over keypoints (degrees, image pixels)."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .landmarks import Keypoint


def angle_at_vertex(a: Keypoint, b: Keypoint, c: Keypoint) -> float:
    """Angle at `b` formed by a-b-c, in degrees within [0, 180].

    Returns 0.0 when either arm of the angle has zero length.
    """
    v1 = np.array([a.x - b.x, a.y - b.y], dtype=float)
    v2 = np.array([c.x - b.x, c.y - b.y], dtype=float)
    norm1 = float(np.linalg.norm(v1))
    norm2 = float(np.linalg.norm(v2))
    if norm1 == 0.0 or norm2 == 0.0:
        return 0.0
    cosine = float(np.clip(np.dot(v1, v2) / (norm1 * norm2), -1.0, 1.0))
    return float(np.degrees(np.arccos(cosine)))


def angle_from_horizontal(a: Keypoint, b: Keypoint) -> float:
    """Angle of the a->b line from the +x axis, in degrees within (-180, 180]."""
    return math.degrees(math.atan2(b.y - a.y, b.x - a.x))


def distance(a: Keypoint, b: Keypoint) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def _score(kp: Keypoint) -> float:
    return 1.0 if kp.score is None else float(kp.score)


def midpoint(a: Keypoint, b: Keypoint) -> Keypoint:
    z = None
    if a.z is not None and b.z is not None:
        z = (a.z + b.z) / 2.0
    return Keypoint(x=(a.x + b.x) / 2.0, y=(a.y + b.y) / 2.0, z=z, score=min(_score(a), _score(b)))


def is_visible(kp: Optional[Keypoint], min_score: float = 0.5) -> bool:
    """True when `kp` exists with finite x/y and a score of at least `min_score`.

    A missing score counts as 0.
    """
    if kp is None or not (math.isfinite(kp.x) and math.isfinite(kp.y)):
        return False
    score = 0.0 if kp.score is None else float(kp.score)
    return score >= min_score


def ratio(numerator: float, denominator: float) -> Optional[float]:
    if denominator == 0.0 or not math.isfinite(denominator):
        return None
    return numerator / denominator


__all__ = ["angle_at_vertex", "angle_from_horizontal", "distance", "midpoint", "is_visible", "ratio"]
