from __future__ import annotations

import json

from typer.testing import CliRunner

from bowing_tracker.cli import app

WIDTH = 640
HEIGHT = 480


def _write_session(path) -> None:
    xs = [100 + 10 * i for i in range(20)] + [290 - 10 * i for i in range(20)]
    frames = []
    for i, x in enumerate(xs):
        landmarks = [[0.0, 0.0, 0.0, 0.0] for _ in range(33)]
        landmarks[16] = [x / WIDTH, 200.0 / HEIGHT, 0.0, 0.95]
        frames.append({"frame_idx": i, "timestamp_ms": i * 1000.0 / 30.0, "landmarks": landmarks, "valid": True})
    payload = {
        "video_id": "cli-smoke",
        "video_metadata": {"width": WIDTH, "height": HEIGHT, "fps": 30.0},
        "frames": frames,
    }
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_cli_analyze_smoke(tmp_path) -> None:
    runner = CliRunner()
    session = tmp_path / "session.json"
    _write_session(session)
    out_path = tmp_path / "exports" / "report.json"

    result = runner.invoke(app, ["analyze", str(session), "--json-out", str(out_path)])
    assert result.exit_code == 0, result.stdout
    assert "Frames: 40 (40 tracked, 100%)." in result.stdout
    assert "down" in result.stdout
    assert f"Wrote {out_path}" in result.stdout

    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert payload["application"] == "bowing-tracker"
    assert payload["source"] == str(session)
    assert [s["direction"] for s in payload["strokes"]] == ["down"]


def test_cli_analyze_with_calibration_and_options(tmp_path) -> None:
    runner = CliRunner()
    session = tmp_path / "session.json"
    _write_session(session)
    result = runner.invoke(
        app,
        [
            "analyze",
            str(session),
            "--direction-convention",
            "up",
            "--calibrate-frog",
            "100,200",
            "--calibrate-tip",
            "300,200",
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert "down-bow at the frog" in result.stdout


def test_cli_analyze_rejects_bad_options(tmp_path) -> None:
    runner = CliRunner()
    session = tmp_path / "session.json"
    _write_session(session)

    assert runner.invoke(app, ["analyze", str(session), "--bow-arm", "middle"]).exit_code == 1
    assert runner.invoke(app, ["analyze", str(session), "--calibrate-frog", "100,200"]).exit_code == 1
    assert runner.invoke(app, ["analyze", str(session), "--calibrate-frog", "a,b", "--calibrate-tip", "1,2"]).exit_code == 1
    assert runner.invoke(app, ["analyze", str(tmp_path / "missing.json")]).exit_code == 1

    bad_config = tmp_path / "bowing.yaml"
    bad_config.write_text("bowing: {}", encoding="utf-8")
    assert runner.invoke(app, ["analyze", str(session), "--config", str(bad_config)]).exit_code == 1

    malformed = tmp_path / "malformed.json"
    malformed.write_text(json.dumps({"frames": [{"frame_idx": None, "landmarks": []}]}), encoding="utf-8")
    result = runner.invoke(app, ["analyze", str(malformed)])
    assert result.exit_code == 1
    assert not isinstance(result.exception, TypeError)


def test_cli_analyze_without_strokes(tmp_path) -> None:
    runner = CliRunner()
    session = tmp_path / "still.json"
    session.write_text(json.dumps({"frames": [{"landmarks": []}, {"landmarks": []}]}), encoding="utf-8")
    result = runner.invoke(app, ["analyze", str(session)])
    assert result.exit_code == 0, result.stdout
    assert "No completed strokes detected." in result.stdout
    assert "Frames: 2 (0 tracked, 0%)." in result.stdout


def test_cli_config_and_info(tmp_path) -> None:
    runner = CliRunner()
    shown = runner.invoke(app, ["config"])
    assert shown.exit_code == 0, shown.stdout
    assert "Bowing analysis configuration:" in shown.stdout

    config_path = tmp_path / "bowing.json"
    config_path.write_text(json.dumps({"bowing": {"bow_arm": "left", "min_movement_px": 7}}), encoding="utf-8")
    loaded = runner.invoke(app, ["config", "--path", str(config_path)])
    assert loaded.exit_code == 0, loaded.stdout
    assert f"Config source: {config_path}" in loaded.stdout
    assert "Bow arm: left" in loaded.stdout
    assert "Min movement (px): 7.0" in loaded.stdout

    info = runner.invoke(app, ["info"])
    assert info.exit_code == 0, info.stdout
    assert info.stdout.startswith("bowing-tracker ")
