from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import numpy as np

MIN_ROI_EXTENT = 0.01


@dataclass(frozen=True)
class RegionOfInterest:
    """Rectangle in normalized frame coordinates ([0, 1] on both axes)."""

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_drag(
        cls, start: tuple[float, float], end: tuple[float, float]
    ) -> RegionOfInterest | None:
        """Build a region from a pointer drag; tiny drags leave the region unset."""

        x, y = start
        w = end[0] - start[0]
        h = end[1] - start[1]
        if w < 0:
            x += w
            w = abs(w)
        if h < 0:
            y += h
            h = abs(h)
        if w < MIN_ROI_EXTENT or h < MIN_ROI_EXTENT:
            return None
        return cls(x=x, y=y, w=w, h=h)

    def pixel_bounds(self, width: int, height: int) -> tuple[int, int, int, int] | None:
        """Return clamped (start_x, start_y, end_x, end_y), or None for zero area."""

        start_x = max(0, math.floor(self.x * width))
        start_y = max(0, math.floor(self.y * height))
        end_x = min(width, math.floor((self.x + self.w) * width))
        end_y = min(height, math.floor((self.y + self.h) * height))
        if end_x <= start_x or end_y <= start_y:
            return None
        return start_x, start_y, end_x, end_y


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for shear-stress extraction from color-coded flow video."""

    color_threshold: float = 40.0
    wall_threshold: float = 50.0
    stress_multiplier: float = 2.5
    sector_count: int = 36
    flow_roi: RegionOfInterest | None = None
    vessel_roi: RegionOfInterest | None = None
    scale_px_per_cm: float = 0.0

    stack_every_n_frames: int = 2
    sample_every_n_frames: int = 6
    max_stack_slices: int = 120
    max_samples: int = 200

    def validate(self) -> None:
        if self.sector_count <= 0:
            raise ValueError("sector_count must be positive")
        if self.scale_px_per_cm < 0:
            raise ValueError("scale_px_per_cm must be >= 0")
        if self.color_threshold < 0 or self.wall_threshold < 0:
            raise ValueError("thresholds must be >= 0")
        if self.stress_multiplier < 0:
            raise ValueError("stress_multiplier must be >= 0")
        for name in (
            "stack_every_n_frames",
            "sample_every_n_frames",
            "max_stack_slices",
            "max_samples",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def calibrated(self) -> bool:
        return self.scale_px_per_cm > 0

    @property
    def area_unit(self) -> str:
        return "cm2" if self.calibrated else "px2"


@dataclass(frozen=True)
class Frame:
    """One decoded video frame handed over by an external decoder."""

    pixels: np.ndarray
    timestamp_s: float = 0.0

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] not in (3, 4):
            raise ValueError("pixels must be an (h, w, 3) or (h, w, 4) array")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass
class SectorBin:
    """Running stress totals for one angular sector."""

    sum_signed_wss: float = 0.0
    sum_abs_wss: float = 0.0
    count: int = 0
    max_wss: float = 0.0
    max_frame: int = 0


@dataclass(frozen=True)
class WallPointSlice:
    """Inner-wall points of one frame, relative to the vessel ROI center."""

    frame_index: int
    points: tuple[tuple[float, float], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TimeSeriesSample:
    """Periodic per-frame indicators used by the stenosis classifier."""

    frame_index: int
    time_s: float
    avg_wss: float
    area: float
    pressure_proxy: float


@dataclass(frozen=True)
class SectorResult:
    """Hemodynamic indicators for one sector after the session is finalized."""

    angle: float
    tawss: float
    osi: float
    rrt: float
    max_wss: float
    max_frame: int


def calibrate_scale(
    p1: tuple[float, float],
    p2: tuple[float, float],
    frame_width: int,
    frame_height: int,
) -> float:
    """Pixels per centimetre from two normalized points placed 1 cm apart."""

    if frame_width <= 0 or frame_height <= 0:
        raise ValueError("frame dimensions must be positive")
    dx = (p1[0] - p2[0]) * frame_width
    dy = (p1[1] - p2[1]) * frame_height
    return math.hypot(dx, dy)


def _parse_roi_value(value: Any, name: str) -> RegionOfInterest | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object with x, y, w, h or null")
    try:
        return RegionOfInterest(
            x=float(value["x"]),
            y=float(value["y"]),
            w=float(value["w"]),
            h=float(value["h"]),
        )
    except (KeyError, TypeError, ValueError) as error:
        raise ValueError(f"{name} must define numeric x, y, w, h") from error


def config_from_dict(payload: dict[str, Any]) -> AnalysisConfig:
    known = {item.name for item in fields(AnalysisConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"unknown config keys: {', '.join(unknown)}")

    values = dict(payload)
    for name in ("flow_roi", "vessel_roi"):
        if name in values:
            values[name] = _parse_roi_value(values[name], name)

    config = AnalysisConfig(**values)
    config.validate()
    return config


def config_to_dict(config: AnalysisConfig) -> dict[str, Any]:
    return asdict(config)


def load_config(path: str | Path) -> AnalysisConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(config_path)
    payload = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("config JSON must be an object")
    return config_from_dict(payload)
