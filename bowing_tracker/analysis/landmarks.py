"""Keypoint vocabulary and per-frame pose container.

Indices follow the 33-point BlazePose / MediaPipe Pose topology, which is also
the layout written by pose pipeline JSON files (`landmarks: [[x, y, z, conf], ...]`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union


class PoseLandmark(IntEnum):
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = len(PoseLandmark)


def arm_landmarks(side: str) -> Dict[str, PoseLandmark]:
    """Landmarks of one arm keyed by joint ("shoulder", "elbow", "wrist", "index", "thumb")."""
    prefix = side.strip().upper()
    if prefix not in {"LEFT", "RIGHT"}:
        raise ValueError(f"side must be 'left' or 'right'; got {side!r}.")
    return {joint: PoseLandmark[f"{prefix}_{joint.upper()}"] for joint in ("shoulder", "elbow", "wrist", "index", "thumb")}


def other_side(side: str) -> str:
    return "left" if side.strip().lower() == "right" else "right"


@dataclass(frozen=True)
class Keypoint:
    """A single detected landmark in image coordinates (y grows downwards)."""

    x: float
    y: float
    z: Optional[float] = None
    score: Optional[float] = None
    name: Optional[str] = None


LandmarkKey = Union[int, str, PoseLandmark]


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _coerce_index(key: LandmarkKey) -> int:
    if isinstance(key, str):
        try:
            return int(PoseLandmark[key.strip().upper()])
        except KeyError as exc:
            raise KeyError(f"Unknown landmark name: {key!r}") from exc
    return int(key)


@dataclass(frozen=True)
class PoseFrame:
    """Keypoints detected in one video frame.

    `keypoints` is indexed by `PoseLandmark`; missing landmarks are `None`.
    """

    keypoints: Tuple[Optional[Keypoint], ...]
    score: float = 1.0
    timestamp_ms: float = 0.0
    keypoints_3d: Optional[Tuple[Optional[Keypoint], ...]] = None

    def get(self, key: LandmarkKey) -> Optional[Keypoint]:
        index = _coerce_index(key)
        if 0 <= index < len(self.keypoints):
            return self.keypoints[index]
        return None

    def __getitem__(self, key: LandmarkKey) -> Optional[Keypoint]:
        return self.get(key)

    @classmethod
    def from_keypoints(
        cls,
        keypoints: Dict[LandmarkKey, Keypoint],
        *,
        timestamp_ms: float = 0.0,
        score: float = 1.0,
    ) -> "PoseFrame":
        """Build a frame from a sparse mapping of landmark -> keypoint."""
        slots: list[Optional[Keypoint]] = [None] * NUM_LANDMARKS
        for key, kp in keypoints.items():
            index = _coerce_index(key)
            if not 0 <= index < NUM_LANDMARKS:
                raise IndexError(f"Landmark index out of range: {index}")
            slots[index] = kp
        return cls(keypoints=tuple(slots), score=float(score), timestamp_ms=float(timestamp_ms))

    @classmethod
    def from_landmarks(
        cls,
        landmarks: Iterable[Sequence[Any]],
        *,
        timestamp_ms: float = 0.0,
        width: Optional[float] = None,
        height: Optional[float] = None,
        score: Optional[float] = None,
    ) -> "PoseFrame":
        """Build a frame from `(x, y, z, conf)` rows.

        Normalized coordinates are scaled to pixels when `width`/`height` are
        given. Rows with non-finite x/y become `None`; unreadable z or conf
        values are dropped.
        """
        scale_x = float(width) if width else 1.0
        scale_y = float(height) if height else 1.0
        slots: list[Optional[Keypoint]] = []
        for index, row in enumerate(landmarks):
            try:
                values = list(row) if row is not None else []
            except TypeError:
                values = []
            if len(values) < 2:
                slots.append(None)
                continue
            try:
                x = float(values[0])
                y = float(values[1])
            except (TypeError, ValueError):
                slots.append(None)
                continue
            if not (math.isfinite(x) and math.isfinite(y)):
                slots.append(None)
                continue
            z = _optional_float(values[2]) if len(values) > 2 else None
            conf = _optional_float(values[3]) if len(values) > 3 else None
            name = PoseLandmark(index).name.lower() if index < NUM_LANDMARKS else None
            slots.append(Keypoint(x=x * scale_x, y=y * scale_y, z=z, score=conf, name=name))

        if score is None:
            confs = [kp.score for kp in slots if kp is not None and kp.score is not None]
            score = sum(confs) / len(confs) if confs else 0.0
        return cls(keypoints=tuple(slots), score=float(score), timestamp_ms=float(timestamp_ms))


__all__ = [
    "PoseLandmark",
    "NUM_LANDMARKS",
    "Keypoint",
    "PoseFrame",
    "arm_landmarks",
    "other_side",
]
