from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from pytest import approx

from shuntflow.models import (
    AnalysisConfig,
    Frame,
    RegionOfInterest,
    calibrate_scale,
    config_from_dict,
    config_to_dict,
    load_config,
)


def test_roi_from_drag_normalizes_reversed_drag() -> None:
    roi = RegionOfInterest.from_drag((0.5, 0.5), (0.2, 0.3))

    assert roi is not None
    assert roi.x == approx(0.2)
    assert roi.y == approx(0.3)
    assert roi.w == approx(0.3)
    assert roi.h == approx(0.2)


def test_roi_from_drag_ignores_tiny_drag() -> None:
    assert RegionOfInterest.from_drag((0.4, 0.4), (0.405, 0.6)) is None
    assert RegionOfInterest.from_drag((0.4, 0.4), (0.6, 0.401)) is None


def test_roi_pixel_bounds_are_floored_and_clamped() -> None:
    assert RegionOfInterest(0.25, 0.25, 0.5, 0.5).pixel_bounds(100, 80) == (25, 20, 75, 60)
    assert RegionOfInterest(0.9, 0.9, 0.5, 0.5).pixel_bounds(100, 80) == (90, 72, 100, 80)


def test_roi_pixel_bounds_zero_area_is_none() -> None:
    assert RegionOfInterest(0.5, 0.5, 0.0, 0.0).pixel_bounds(100, 80) is None


def test_calibrate_scale_uses_pixel_distance() -> None:
    assert calibrate_scale((0.0, 0.0), (0.1, 0.0), 640, 480) == approx(64.0)
    assert calibrate_scale((0.0, 0.0), (0.03, 0.04), 100, 100) == approx(5.0)


def test_calibrate_scale_rejects_empty_frame() -> None:
    with pytest.raises(ValueError):
        calibrate_scale((0.0, 0.0), (0.1, 0.0), 0, 480)


def test_config_defaults_and_area_unit() -> None:
    config = AnalysisConfig()

    assert config.sector_count == 36
    assert config.color_threshold == 40.0
    assert config.wall_threshold == 50.0
    assert config.stress_multiplier == 2.5
    assert config.area_unit == "px2"
    assert AnalysisConfig(scale_px_per_cm=12.0).area_unit == "cm2"


def test_config_validate_rejects_non_positive_sector_count() -> None:
    with pytest.raises(ValueError, match="sector_count"):
        AnalysisConfig(sector_count=0).validate()


def test_config_from_dict_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError, match="unknown config keys"):
        config_from_dict({"sector_count": 12, "colour": 3})


def test_config_dict_round_trip_keeps_rois() -> None:
    config = AnalysisConfig(
        sector_count=12,
        flow_roi=RegionOfInterest(0.1, 0.2, 0.5, 0.4),
        scale_px_per_cm=20.0,
    )

    restored = config_from_dict(config_to_dict(config))

    assert restored == config
    assert restored.vessel_roi is None


def test_load_config_reads_json(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "color_threshold": 30,
                "vessel_roi": {"x": 0.2, "y": 0.2, "w": 0.6, "h": 0.6},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.color_threshold == 30
    assert config.vessel_roi == RegionOfInterest(0.2, 0.2, 0.6, 0.6)


def test_load_config_rejects_malformed_roi(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"flow_roi": {"x": 0.2}}), encoding="utf-8")

    with pytest.raises(ValueError, match="flow_roi"):
        load_config(path)


def test_frame_requires_color_channels() -> None:
    with pytest.raises(ValueError):
        Frame(pixels=np.zeros((4, 4), dtype=np.uint8))

    frame = Frame(pixels=np.zeros((4, 6, 4), dtype=np.uint8))
    assert (frame.width, frame.height) == (6, 4)
