from __future__ import annotations

import math
from pathlib import Path

import pytest
from pytest import approx

from shuntflow.timeseries import (
    MAX_SAMPLES,
    TimeSeriesSampler,
    flow_area,
    read_samples_csv,
    write_samples_csv,
)


def _record(sampler: TimeSeriesSampler, frame_index: int, red_mean: float = 100.0) -> None:
    sampler.record(
        frame_index=frame_index,
        time_s=frame_index / 30.0,
        total_stress=100.0,
        stress_pixels=4,
        flow_pixels=400,
        red_mean=red_mean,
    )


def test_flow_area_switches_to_cm2_when_calibrated() -> None:
    assert flow_area(100, 0.0) == 100.0
    assert flow_area(100, 10.0) == approx(1.0)


def test_record_derives_average_stress_and_pressure_proxy() -> None:
    sampler = TimeSeriesSampler()
    sample = sampler.record(
        frame_index=6,
        time_s=0.2,
        total_stress=100.0,
        stress_pixels=4,
        flow_pixels=400,
        red_mean=150.0,
        scale_px_per_cm=20.0,
    )

    assert sample.avg_wss == approx(25.0)
    assert sample.area == approx(1.0)
    assert sample.pressure_proxy == 150.0


def test_record_without_stress_or_red_pixels_is_zero() -> None:
    sample = TimeSeriesSampler().record(
        frame_index=6,
        time_s=0.2,
        total_stress=0.0,
        stress_pixels=0,
        flow_pixels=0,
        red_mean=math.nan,
    )

    assert (sample.avg_wss, sample.area, sample.pressure_proxy) == (0.0, 0.0, 0.0)


def test_sampler_keeps_most_recent_samples() -> None:
    sampler = TimeSeriesSampler()
    for frame_index in range(250):
        _record(sampler, frame_index)

    assert len(sampler) == MAX_SAMPLES == 200
    assert sampler.samples[0].frame_index == 50


def test_pressure_normalization_uses_running_session_max() -> None:
    sampler = TimeSeriesSampler(max_samples=2)
    _record(sampler, 6, red_mean=200.0)
    _record(sampler, 12, red_mean=50.0)
    _record(sampler, 18, red_mean=100.0)

    assert sampler.normalized_pressure() == approx([0.25, 0.5])
    assert sampler.avg_wss_series() == approx([25.0, 25.0])

    sampler.clear()
    assert sampler.normalized_pressure() == []


def test_samples_csv_round_trip(tmp_path: Path) -> None:
    sampler = TimeSeriesSampler()
    for frame_index in (6, 12, 18):
        _record(sampler, frame_index, red_mean=float(frame_index))

    path = write_samples_csv(tmp_path / "series.csv", sampler.samples)
    restored = read_samples_csv(path)

    assert [sample.frame_index for sample in restored] == [6, 12, 18]
    assert restored[1].time_s == approx(0.4)
    assert restored[2].pressure_proxy == approx(18.0)


def test_read_samples_csv_requires_columns(tmp_path: Path) -> None:
    path = tmp_path / "series.csv"
    path.write_text("frame_index,time_s\n6,0.2\n", encoding="utf-8")

    with pytest.raises(ValueError, match="missing columns"):
        read_samples_csv(path)
