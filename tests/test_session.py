from __future__ import annotations

import json

import pytest
from pytest import approx

from shuntflow.models import AnalysisConfig
from shuntflow.session import AnalysisSession, report_to_dict
from shuntflow.stenosis import classification_to_dict, features_to_dict
from shuntflow.synthetic import SyntheticVideoConfig, generate_synthetic_video, uniform_frames


def test_uniform_gray_session_is_neutral() -> None:
    session = AnalysisSession()
    for frame in uniform_frames(10):
        session.process_frame(frame)

    report = session.finalize(duration_s=10 / 30.0)

    assert report.frames_processed == 10
    assert session.sectors.total_count() == 0
    assert all(
        (result.tawss, result.osi, result.rrt, result.max_wss) == (0.0, 0.0, 0.0, 0.0)
        for result in report.sector_results
    )
    assert len(session.stack) == 5
    assert session.stack.point_count() == 0
    assert [sample.frame_index for sample in report.samples] == [6]
    assert report.classification.category == "none"
    assert [finding.kind for finding in report.diagnostics.findings] == ["normal"]


def test_stack_and_sampler_cadence_uses_processed_count() -> None:
    session = AnalysisSession()
    for frame in uniform_frames(12):
        session.process_frame(frame)

    assert [item.frame_index for item in session.stack.slices()] == [2, 4, 6, 8, 10, 12]
    assert [sample.frame_index for sample in session.sampler.samples] == [6, 12]


def test_finalize_is_idempotent_and_blocks_new_frames() -> None:
    session = AnalysisSession()
    frames = uniform_frames(3)
    session.process_frame(frames[0])

    report = session.finalize()

    assert session.finalize() is report
    with pytest.raises(RuntimeError):
        session.process_frame(frames[1])


def test_finalize_falls_back_to_last_timestamp() -> None:
    session = AnalysisSession()
    for frame in uniform_frames(10):
        session.process_frame(frame)

    assert session.finalize().duration_s == approx(9 / 30.0)


def test_sector_count_change_reinitializes_sectors() -> None:
    session = AnalysisSession()
    video = generate_synthetic_video(SyntheticVideoConfig(frame_count=6))
    for frame in video.frames:
        session.process_frame(frame)
    assert session.sectors.total_count() > 0

    session.configure(sector_count=12)

    assert len(session.sectors.bins) == 12
    assert session.sectors.total_count() == 0
    session.process_frame(video.frames[0])
    assert len(session.finalize().sector_results) == 12


def test_capacity_change_applies_on_reset() -> None:
    session = AnalysisSession()
    session.configure(max_stack_slices=3)
    assert session.stack.max_slices == 120

    session.reset()

    assert session.stack.max_slices == 3
    assert session.frame_count == 0


def test_reset_clears_state_and_allows_new_run() -> None:
    session = AnalysisSession()
    for frame in uniform_frames(6):
        session.process_frame(frame)
    session.finalize()

    session.reset()

    assert session.report is None
    assert session.frame_count == 0
    assert len(session.stack) == 0
    assert len(session.sampler) == 0
    assert session.centroid is None


def test_pulsatile_session_produces_bounded_indicators() -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(scenario="pulsatile", frame_count=120))
    session = AnalysisSession(AnalysisConfig())
    for frame in video.frames:
        session.process_frame(frame)

    report = session.finalize(video.duration_s)

    assert report.frames_processed == 120
    assert len(report.samples) == 20
    assert len(session.stack) == 60
    assert session.stack.point_count() > 0
    assert session.centroid is not None
    assert any(result.tawss > 0 for result in report.sector_results)
    assert all(0.0 <= result.osi <= 0.5 for result in report.sector_results)
    assert report.features.sample_count == 20
    assert report.classification.category in ("none", "mild", "moderate", "severe")


def test_report_dict_is_strict_json() -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(scenario="oscillating", frame_count=60))
    session = AnalysisSession()
    for frame in video.frames:
        session.process_frame(frame)
    report = session.finalize(video.duration_s)

    payload = json.loads(json.dumps(report_to_dict(report, session.config), allow_nan=False))

    assert len(payload["sectors"]) == 36
    assert payload["area_unit"] == "px2"
    assert payload["config"]["sector_count"] == 36
    assert payload["stenosis"]["classification"]["category"] in (
        "none",
        "mild",
        "moderate",
        "severe",
    )


def test_sector_counts_never_exceed_scanned_pixels() -> None:
    config = SyntheticVideoConfig(scenario="oscillating", frame_count=30)
    video = generate_synthetic_video(config)
    session = AnalysisSession()
    for frame in video.frames:
        session.process_frame(frame)

    scanned_per_frame = (config.width - 2) * (config.height - 2)
    assert len(session.sectors.bins) == session.config.sector_count
    assert 0 < session.sectors.total_count() <= scanned_per_frame * len(video.frames)


def test_report_is_immutable_and_shares_stenosis_dicts() -> None:
    session = AnalysisSession()
    for frame in uniform_frames(12):
        session.process_frame(frame)

    report = session.finalize()
    payload = report_to_dict(report)

    assert isinstance(report.sector_results, tuple)
    assert isinstance(report.samples, tuple)
    session.sampler.record(
        frame_index=99,
        time_s=3.3,
        total_stress=0.0,
        stress_pixels=0,
        flow_pixels=0,
        red_mean=0.0,
        scale_px_per_cm=0.0,
    )
    assert len(report.samples) == 2
    assert payload["stenosis"]["features"] == features_to_dict(report.features)
    assert payload["stenosis"]["classification"] == classification_to_dict(
        report.classification
    )
