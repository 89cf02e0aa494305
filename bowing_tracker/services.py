"""Session replay and presentation helpers shared by the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from rich.progress import Progress

from .analysis.config import ANALYSIS_LOGGER, TrackerConfig
from .analysis.landmarks import PoseFrame
from .analysis.report import BowAnalysis
from .analysis.strokes import Stroke
from .analysis.technique import SessionReport, TechniqueAnalysis, generate_session_report, score_frame
from .analysis.tracker import BowTracker

logger = ANALYSIS_LOGGER


@dataclass
class SessionResult:
    frames: int = 0
    tracked_frames: int = 0
    strokes: List[Stroke] = field(default_factory=list)
    last_analysis: Optional[BowAnalysis] = None
    technique: List[TechniqueAnalysis] = field(default_factory=list)
    report: Optional[SessionReport] = None

    @property
    def coverage(self) -> float:
        return self.tracked_frames / self.frames if self.frames else 0.0


def replay_session(
    frames: Iterable[PoseFrame],
    *,
    config: Optional[TrackerConfig] = None,
    calibration: Optional[tuple[Sequence[float], Sequence[float]]] = None,
    show_progress: bool = False,
    label: str = "Analyzing",
) -> SessionResult:
    """Run a tracker and the technique scorer over recorded frames."""
    result = SessionResult()
    with BowTracker(config) as tracker:
        if calibration is not None:
            tracker.calibrate(*calibration)
        with Progress(transient=True, disable=not show_progress) as progress:
            task = progress.add_task(label, total=None)
            for frame in frames:
                result.frames += 1
                analysis = tracker.update(frame)
                if analysis is not None:
                    result.tracked_frames += 1
                    result.last_analysis = analysis
                technique = score_frame(frame, analysis, bow_arm=tracker.config.bow_arm)
                if technique.overall_score is not None:
                    result.technique.append(technique)
                progress.advance(task)
        result.strokes = tracker.strokes
    result.report = generate_session_report(result.technique)
    logger.info(
        "Replayed %d frames (%d tracked), %d strokes completed.",
        result.frames,
        result.tracked_frames,
        len(result.strokes),
    )
    return result


def _fmt(value: Optional[float], digits: int = 1) -> str:
    return "n/a" if value is None else f"{value:.{digits}f}"


def render_stroke_table(strokes: Sequence[Stroke]) -> str:
    """Render a fixed-width table of completed strokes."""
    headers = ("#", "dir", "start_s", "dur_ms", "speed", "straight", "smooth", "bow")
    rows = [
        {
            "#": str(index),
            "dir": stroke.direction.value,
            "start_s": f"{stroke.start_time_ms / 1000.0:.2f}",
            "dur_ms": f"{stroke.duration_ms:.0f}",
            "speed": f"{stroke.speed:.1f}",
            "straight": f"{stroke.straightness:.1f}",
            "smooth": f"{stroke.smoothness:.1f}",
            "bow": f"{stroke.bow_fraction:.2f}",
        }
        for index, stroke in enumerate(strokes, start=1)
    ]
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _format_line(values: Mapping[str, str]) -> str:
        return "  ".join(values[key].rjust(widths[key]) for key in headers)

    lines = [_format_line({key: key for key in headers})]
    lines.append("  ".join("-" * widths[key] for key in headers))
    lines.extend(_format_line(row) for row in rows)
    return "\n".join(lines)


def render_session_summary(result: SessionResult) -> List[str]:
    lines = [f"Frames: {result.frames} ({result.tracked_frames} tracked, {result.coverage:.0%})."]
    last = result.last_analysis
    if last is not None:
        lines.append(
            "Last frame: "
            f"{last.current_direction.value}-bow at the {last.stick_position.value}, "
            f"avg speed {_fmt(last.average_speed)} px/s, avg straightness {_fmt(last.average_straightness)}."
        )
        for text in last.suggestions:
            lines.append(f"  - {text}")
    report = result.report
    if report is not None:
        scores = ", ".join(
            f"{name}={'n/a' if value is None else value}" for name, value in report.average_scores.items()
        )
        lines.append(f"Technique ({report.duration_s} s): {scores}.")
        for text in report.improvements:
            lines.append(f"  + {text}")
        for text in report.focus_areas:
            lines.append(f"  ! {text}")
        for text in report.top_suggestions:
            lines.append(f"  > {text}")
    return lines


def build_export_payload(result: SessionResult, *, source: str, app_version: str) -> dict[str, Any]:
    return {
        "application": "bowing-tracker",
        "app_version": app_version,
        "source": source,
        "frames": result.frames,
        "tracked_frames": result.tracked_frames,
        "strokes": [stroke.to_dict() for stroke in result.strokes],
        "last_analysis": result.last_analysis.to_dict() if result.last_analysis is not None else None,
        "session_report": result.report.to_dict() if result.report is not None else None,
    }


__all__ = [
    "SessionResult",
    "replay_session",
    "render_stroke_table",
    "render_session_summary",
    "build_export_payload",
]
