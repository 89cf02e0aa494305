from __future__ import annotations

import json
import platform
from dataclasses import replace
from importlib import metadata
from pathlib import Path
from typing import Optional

import typer

from .analysis import config as analysis_config
from .analysis.config import BOW_ARMS, DIRECTION_CONVENTIONS, default_tracker_config, load_config_from_file
from .analysis.pose_source import JsonPoseSource
from .services import build_export_payload, render_session_summary, render_stroke_table, replay_session

app = typer.Typer(help="Analyze violin bowing from recorded pose keypoints.")


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _app_version() -> str:
    try:
        return metadata.version("bowing-tracker")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _parse_point(value: Optional[str], option: str) -> Optional[tuple[float, float]]:
    if value is None:
        return None
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2:
        _fail(f"{option} expects 'X,Y'; got {value!r}.")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        _fail(f"{option} expects numeric 'X,Y'; got {value!r}.")
    return None


def _validate_choice(value: Optional[str], choices: tuple[str, ...], option: str) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip().lower()
    if candidate not in choices:
        _fail(f"{option} must be one of: {', '.join(choices)}.")
    return candidate


@app.command()
def analyze(
    pose_file: Path = typer.Argument(..., help="Recorded pose data (.json or .jsonl)."),
    bow_arm: Optional[str] = typer.Option(None, "--bow-arm", help="Arm holding the bow: right or left."),
    direction_convention: Optional[str] = typer.Option(
        None,
        "--direction-convention",
        help="Stroke reported when the wrist moves towards +x: down or up.",
    ),
    calibrate_frog: Optional[str] = typer.Option(None, "--calibrate-frog", help="Wrist pixel position at the frog, 'X,Y'."),
    calibrate_tip: Optional[str] = typer.Option(None, "--calibrate-tip", help="Wrist pixel position at the tip, 'X,Y'."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="TOML/JSON analysis config."),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Write strokes and the session report as JSON."),
    progress: bool = typer.Option(False, "--progress", help="Show a progress indicator while replaying."),
) -> None:
    """
    Replay a recorded pose file through the bow tracker and technique scorer.

    Example:
        bowing analyze session.json --bow-arm right --json-out report.json
    """
    arm = _validate_choice(bow_arm, BOW_ARMS, "--bow-arm")
    convention = _validate_choice(direction_convention, DIRECTION_CONVENTIONS, "--direction-convention")
    frog = _parse_point(calibrate_frog, "--calibrate-frog")
    tip = _parse_point(calibrate_tip, "--calibrate-tip")
    if (frog is None) != (tip is None):
        _fail("--calibrate-frog and --calibrate-tip must be given together.")

    try:
        tracker_config = (
            load_config_from_file(config_path)["TRACKER_CONFIG"] if config_path else default_tracker_config()
        )
    except (FileNotFoundError, ValueError, ImportError) as exc:
        _fail(f"Invalid config: {exc}")
        return

    overrides = {}
    if arm is not None:
        overrides["bow_arm"] = arm
    if convention is not None:
        overrides["positive_dx_direction"] = convention
    if overrides:
        tracker_config = replace(tracker_config, **overrides)

    try:
        with JsonPoseSource(pose_file) as source:
            result = replay_session(
                source.frames(),
                config=tracker_config,
                calibration=(frog, tip) if frog is not None and tip is not None else None,
                show_progress=progress,
                label=f"Analyzing {pose_file.name}",
            )
    except (FileNotFoundError, ValueError) as exc:
        _fail(str(exc))
        return

    if result.strokes:
        typer.echo(render_stroke_table(result.strokes))
    else:
        typer.echo("No completed strokes detected.")
    for line in render_session_summary(result):
        typer.echo(line)

    if json_out is not None:
        payload = build_export_payload(result, source=str(pose_file), app_version=_app_version())
        json_out.parent.mkdir(parents=True, exist_ok=True)
        json_out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        typer.echo(f"Wrote {json_out}")


@app.command("config")
def config_show(
    path: Optional[Path] = typer.Option(None, "--path", help="Show the config resolved from this TOML/JSON file."),
) -> None:
    """
    Show the effective analysis configuration (env overrides applied).
    """
    if path is None:
        analysis_config.print_config()
        return
    try:
        loaded = load_config_from_file(path)
    except (FileNotFoundError, ValueError, ImportError) as exc:
        _fail(f"Invalid config: {exc}")
        return
    tracker = loaded["TRACKER_CONFIG"]
    typer.echo(f"Config source: {path}")
    typer.echo(f"Confidence threshold: {tracker.confidence_threshold}")
    typer.echo(f"Min movement (px): {tracker.min_movement_px}")
    typer.echo(f"Max straightness deviation (px): {tracker.max_expected_deviation_px}")
    typer.echo(f"Max acceleration variance: {tracker.max_expected_acceleration_variance}")
    typer.echo(f"Bow length estimate (px): {tracker.bow_length_estimate_px}")
    typer.echo(f"Positive x motion reads as: {tracker.positive_dx_direction}-bow")
    typer.echo(f"Bow arm: {tracker.bow_arm}")
    typer.echo("Stick thresholds: " + ", ".join(str(v) for v in tracker.stick_thresholds.as_tuple()))


@app.command("info")
def info() -> None:
    """
    Display version and environment details.
    """
    typer.echo(f"bowing-tracker {_app_version()} (Python {platform.python_version()})")
    try:
        metadata.version("mediapipe")
        typer.echo("Video input: mediapipe available (MediaPipePoseSource).")
    except metadata.PackageNotFoundError:
        typer.echo("Video input: install the 'pose' extra for MediaPipe support.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
