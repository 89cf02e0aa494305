"""Frame producers feeding the analysis core.

The core only needs an iterator of `PoseFrame`s. `JsonPoseSource` replays
recorded pose data; `MediaPipePoseSource` runs MediaPipe Pose over a video file
and needs the optional `pose` extra (mediapipe, opencv-python).

Recorded pose JSON layout:
    {
      "video_id": "...",
      "video_metadata": {"width": 1280, "height": 720, "fps": 30.0},
      "frames": [
        {"frame_idx": 0, "timestamp_ms": 0.0, "landmarks": [[x, y, z, conf], ...33], "valid": true},
        ...
      ]
    }

JSON Lines files hold one frame object per line; a line carrying
`video_metadata` sets the frame size and fps for the lines after it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, runtime_checkable

from .config import ANALYSIS_LOGGER
from .landmarks import NUM_LANDMARKS, Keypoint, PoseFrame, PoseLandmark

logger = ANALYSIS_LOGGER

DEFAULT_FPS = 30.0


@runtime_checkable
class PoseSource(Protocol):
    def frames(self) -> Iterator[PoseFrame]:
        ...

    def close(self) -> None:
        ...


def _blank_frame(timestamp_ms: float) -> PoseFrame:
    keypoints = tuple(
        Keypoint(x=0.0, y=0.0, score=0.0, name=landmark.name.lower()) for landmark in PoseLandmark
    )
    return PoseFrame(keypoints=keypoints, score=0.0, timestamp_ms=timestamp_ms)


def _zero_confidence(frame: PoseFrame) -> PoseFrame:
    keypoints = tuple(
        None if kp is None else Keypoint(x=kp.x, y=kp.y, z=kp.z, score=0.0, name=kp.name) for kp in frame.keypoints
    )
    return PoseFrame(keypoints=keypoints, score=0.0, timestamp_ms=frame.timestamp_ms)


class JsonPoseSource:
    """Replay frames from a recorded pose JSON or JSON Lines file."""

    def __init__(self, path: str | Path, *, normalized: Optional[bool] = None) -> None:
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Pose file not found: {self.path}")
        if not self.path.is_file():
            raise ValueError(f"Expected a pose file, but got a directory: {self.path}")
        self.normalized = normalized
        self.metadata: Dict[str, Any] = {}
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "JsonPoseSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _records(self) -> Iterator[Mapping[str, Any]]:
        if self.path.suffix.lower() in {".jsonl", ".ndjson"}:
            with self.path.open("r", encoding="utf-8") as handle:
                for line_no, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError as exc:
                        raise ValueError(f"{self.path}:{line_no}: invalid JSON ({exc.msg}).") from exc
                    if not isinstance(record, Mapping):
                        raise ValueError(f"{self.path}:{line_no}: expected a JSON object per line.")
                    if "video_metadata" in record:
                        self.metadata = dict(record.get("video_metadata") or {})
                        if "landmarks" not in record:
                            continue
                    yield record
            return

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"{self.path}: invalid JSON ({exc.msg}).") from exc
        if isinstance(payload, list):
            records = payload
        elif isinstance(payload, Mapping):
            self.metadata = dict(payload.get("video_metadata") or {})
            records = payload.get("frames")
        else:
            records = None
        if not isinstance(records, list):
            raise ValueError(f"{self.path}: expected a 'frames' list of pose records.")
        for record in records:
            if not isinstance(record, Mapping):
                raise ValueError(f"{self.path}: every frame record must be a JSON object.")
            yield record

    def _scale(self) -> tuple[Optional[float], Optional[float]]:
        if self.normalized is False:
            return None, None
        width = self.metadata.get("width")
        height = self.metadata.get("height")
        if width and height:
            try:
                return float(width), float(height)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{self.path}: video_metadata width/height must be numbers.") from exc
        if self.normalized:
            raise ValueError(f"{self.path}: normalized coordinates need video_metadata width/height.")
        return None, None

    def frames(self) -> Iterator[PoseFrame]:
        if self._closed:
            raise RuntimeError("Pose source is closed.")
        invalid = 0
        count = 0
        for position, record in enumerate(self._records()):
            try:
                fps = float(self.metadata.get("fps") or DEFAULT_FPS)
                frame_idx = int(record.get("frame_idx", position))
                timestamp = record.get("timestamp_ms")
                timestamp_ms = float(timestamp) if timestamp is not None else frame_idx * 1000.0 / fps
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{self.path}: frame {position}: invalid frame_idx or timestamp ({exc}).") from exc
            count += 1

            landmarks = record.get("landmarks")
            if not isinstance(landmarks, list) or not landmarks:
                invalid += 1
                yield _blank_frame(timestamp_ms)
                continue
            if len(landmarks) > NUM_LANDMARKS:
                raise ValueError(
                    f"{self.path}: frame {frame_idx} has {len(landmarks)} landmarks; expected {NUM_LANDMARKS}."
                )
            width, height = self._scale()
            frame = PoseFrame.from_landmarks(landmarks, timestamp_ms=timestamp_ms, width=width, height=height)
            if record.get("valid") is False:
                invalid += 1
                frame = _zero_confidence(frame)
            yield frame
        logger.debug("Replayed %d frames from %s (%d invalid)", count, self.path, invalid)


class MediaPipePoseSource:
    """Run MediaPipe Pose over a video file, yielding frames in pixel coordinates."""

    def __init__(self, video_path: str | Path, *, model_complexity: int = 1) -> None:
        self.video_path = Path(video_path)
        if not self.video_path.exists():
            raise FileNotFoundError(f"Video not found: {self.video_path}")
        try:
            import cv2  # type: ignore
            import mediapipe as mp  # type: ignore
        except ModuleNotFoundError as exc:
            raise ImportError(
                "MediaPipePoseSource requires the 'pose' extra: pip install 'bowing-tracker[pose]'."
            ) from exc
        solutions = getattr(mp, "solutions", None)
        if solutions is None or getattr(solutions, "pose", None) is None:
            raise RuntimeError("Installed mediapipe does not provide mediapipe.solutions.pose.")

        self._cv2 = cv2
        self._capture = cv2.VideoCapture(str(self.video_path))
        if not self._capture.isOpened():
            raise ValueError(f"Unable to open video: {self.video_path}")
        self._pose = solutions.pose.Pose(
            static_image_mode=False,
            smooth_landmarks=True,
            model_complexity=int(min(2, max(0, model_complexity))),
        )
        self.fps = float(self._capture.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS)
        logger.info("MediaPipe pose source opened %s at %.1f fps.", self.video_path, self.fps)

    def frames(self) -> Iterator[PoseFrame]:
        cv2 = self._cv2
        frame_idx = 0
        while True:
            ok, image = self._capture.read()
            if not ok or image is None:
                break
            height, width = image.shape[:2]
            results = self._pose.process(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
            timestamp_ms = frame_idx * 1000.0 / self.fps
            frame_idx += 1
            pose_landmarks = getattr(results, "pose_landmarks", None)
            if pose_landmarks is None:
                yield _blank_frame(timestamp_ms)
                continue
            rows: List[tuple[float, float, float, float]] = [
                (lm.x, lm.y, lm.z, getattr(lm, "visibility", 0.0)) for lm in pose_landmarks.landmark
            ]
            yield PoseFrame.from_landmarks(rows, timestamp_ms=timestamp_ms, width=width, height=height)

    def close(self) -> None:
        self._capture.release()
        self._pose.close()

    def __enter__(self) -> "MediaPipePoseSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["PoseSource", "JsonPoseSource", "MediaPipePoseSource"]
