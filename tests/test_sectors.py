from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest
from pytest import approx

from shuntflow.models import SectorBin
from shuntflow.sectors import (
    RRT_SATURATION,
    SectorAccumulator,
    read_sector_csv,
    sector_results_to_csv,
    summarize_sectors,
    write_sector_csv,
)


def test_empty_sectors_report_only_their_angle() -> None:
    results = SectorAccumulator(36).finalize()

    assert len(results) == 36
    assert [result.angle for result in results[:3]] == [0.0, 10.0, 20.0]
    assert all(
        (result.tawss, result.osi, result.rrt, result.max_wss, result.max_frame)
        == (0.0, 0.0, 0.0, 0.0, 0)
        for result in results
    )


def test_record_accumulates_signed_and_absolute_stress() -> None:
    accumulator = SectorAccumulator(4)
    assert accumulator.record(10.0, 50.0, 1, frame_index=3)
    assert accumulator.record(20.0, 30.0, -1, frame_index=4)

    sector = accumulator.bins[0]
    assert sector.sum_abs_wss == approx(80.0)
    assert sector.sum_signed_wss == approx(20.0)
    assert sector.count == 2
    assert (sector.max_wss, sector.max_frame) == (50.0, 3)

    result = accumulator.finalize()[0]
    assert result.tawss == approx(40.0)
    assert result.osi == approx(0.375)
    assert result.rrt == approx(0.1)


def test_angle_wraps_and_non_finite_angle_is_dropped() -> None:
    accumulator = SectorAccumulator(4)

    assert accumulator.sector_index(360.0) == 0
    assert accumulator.sector_index(269.9) == 2
    assert accumulator.record(math.nan, 10.0, 1, frame_index=0) is False
    assert accumulator.total_count() == 0


def test_balanced_oscillation_saturates_rrt() -> None:
    accumulator = SectorAccumulator(4)
    accumulator.record(10.0, 50.0, 1, frame_index=0)
    accumulator.record(10.0, 50.0, -1, frame_index=1)

    result = accumulator.finalize()[0]
    assert result.osi == approx(0.5)
    assert result.rrt == RRT_SATURATION


def test_rrt_denominator_at_threshold_saturates() -> None:
    results = summarize_sectors([SectorBin(sum_signed_wss=0.01, sum_abs_wss=0.01, count=1)])

    assert results[0].osi == 0.0
    assert results[0].rrt == RRT_SATURATION


def test_osi_stays_in_range() -> None:
    rng = np.random.default_rng(7)
    bins = []
    for _ in range(50):
        values = rng.uniform(0, 255, size=20)
        signs = rng.choice([-1.0, 1.0], size=20)
        bins.append(
            SectorBin(
                sum_signed_wss=float((values * signs).sum()),
                sum_abs_wss=float(values.sum()),
                count=20,
            )
        )

    for result in summarize_sectors(bins):
        assert 0.0 <= result.osi <= 0.5


def test_record_many_drops_out_of_range_indices() -> None:
    accumulator = SectorAccumulator(4)

    kept = accumulator.record_many(
        np.array([0, 0, 1, 7, -1]),
        np.array([10.0, 30.0, 20.0, 99.0, 99.0]),
        np.array([1, -1, 1, 1, 1]),
        frame_index=9,
    )

    assert kept == 3
    assert accumulator.bins[0].count == 2
    assert accumulator.bins[0].sum_signed_wss == approx(-20.0)
    assert (accumulator.bins[0].max_wss, accumulator.bins[0].max_frame) == (30.0, 9)
    assert accumulator.bins[1].count == 1
    assert accumulator.total_count() == 3


def test_record_after_finalize_fails() -> None:
    accumulator = SectorAccumulator(4)
    accumulator.finalize()

    with pytest.raises(RuntimeError):
        accumulator.record(0.0, 1.0, 1, frame_index=0)


def test_csv_has_header_and_one_row_per_sector() -> None:
    text = sector_results_to_csv(SectorAccumulator(36).finalize())
    lines = text.splitlines()

    assert len(lines) == 37
    assert lines[0] == "Angle,TAWSS,OSI,RRT,MaxWSS,MaxFrame"
    assert lines[2] == "10,0.00,0.000,0.000,0.00,0"


def test_csv_formats_fractional_angles_with_two_decimals() -> None:
    lines = sector_results_to_csv(SectorAccumulator(7).finalize()).splitlines()

    assert lines[2].startswith("51.43,")


def test_sector_csv_file_round_trip(tmp_path: Path) -> None:
    accumulator = SectorAccumulator(4)
    accumulator.record(10.0, 50.0, 1, frame_index=3)
    accumulator.record(20.0, 30.0, -1, frame_index=4)
    results = accumulator.finalize()

    path = write_sector_csv(tmp_path / "sectors.csv", results)
    restored = read_sector_csv(path)

    assert len(restored) == 4
    assert restored[0].tawss == approx(40.0)
    assert restored[0].osi == approx(0.375)
    assert restored[0].rrt == approx(0.1)
    assert restored[0].max_frame == 3
    assert restored[3].angle == approx(270.0)


def test_read_sector_csv_rejects_unknown_header(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("a,b,c\n1,2,3\n", encoding="utf-8")

    with pytest.raises(ValueError, match="header"):
        read_sector_csv(path)
