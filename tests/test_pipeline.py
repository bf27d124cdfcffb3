from __future__ import annotations

import json
from pathlib import Path

import pytest

from shuntflow.models import AnalysisConfig
from shuntflow.pipeline import ShuntFlowPipeline
from shuntflow.runner import IterableFrameSource
from shuntflow.sectors import read_sector_csv
from shuntflow.synthetic import SyntheticVideoConfig, generate_synthetic_video
from shuntflow.timeseries import read_samples_csv


def test_pipeline_writes_session_artifacts(tmp_path: Path) -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(frame_count=60))
    pipeline = ShuntFlowPipeline(AnalysisConfig(sector_count=12))

    artifacts = pipeline.run(
        IterableFrameSource(video.frames, duration_s=video.duration_s),
        output_dir=tmp_path / "out",
        stem="case01",
    )

    assert artifacts.status == "completed"
    assert artifacts.sector_csv_path == tmp_path / "out" / "case01_sectors.csv"
    assert artifacts.samples_csv_path == tmp_path / "out" / "case01_timeseries.csv"
    assert artifacts.report_path == tmp_path / "out" / "case01_summary.json"

    assert len(read_sector_csv(artifacts.sector_csv_path)) == 12
    assert len(read_samples_csv(artifacts.samples_csv_path)) == 10

    payload = json.loads(artifacts.report_path.read_text(encoding="utf-8"))
    assert payload["frames_processed"] == 60
    assert payload["duration_s"] == pytest.approx(2.0)
    assert payload["config"]["sector_count"] == 12
    assert "classification" in payload["stenosis"]


def test_analyze_frames_returns_report() -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(scenario="neutral", frame_count=12))

    report = ShuntFlowPipeline().analyze_frames(video.frames, duration_s=video.duration_s)

    assert report.frames_processed == 12
    assert report.classification.category == "none"


def test_disabling_score_correction_reports_no_mild_score() -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(frame_count=30))

    report = ShuntFlowPipeline(score_correction=False).analyze_frames(
        video.frames, duration_s=video.duration_s
    )

    assert report.classification.mild_score is None
    assert report.classification.score_corrected is False


def test_run_video_requires_existing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ShuntFlowPipeline().run_video(tmp_path / "missing.mp4")
