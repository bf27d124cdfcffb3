from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .models import AnalysisConfig, Frame, RegionOfInterest
from .sectors import SectorAccumulator

logger = logging.getLogger(__name__)

MAX_STRESS = 255.0
STRESS_COLOR_SPLIT = 100.0
WALL_CHECK_RANGE = 3
WALL_STRIDE = 2
WALL_DARK_RATIO = 0.8

# (dy, dx) in evaluation order: right, left, below, above. First maximum wins ties.
_NEIGHBOR_OFFSETS = ((0, 1), (0, -1), (1, 0), (-1, 0))
_WALL_OFFSETS = tuple(range(-WALL_CHECK_RANGE, WALL_CHECK_RANGE + 1, WALL_STRIDE))


@dataclass(frozen=True)
class FrameAnalysis:
    """Everything a single frame contributes to the session."""

    frame_index: int
    overlay: np.ndarray
    centroid: tuple[float, float] | None
    wall_points: tuple[tuple[float, float], ...]
    total_stress: float
    max_stress: float
    stress_pixels: int
    flow_pixels: int
    red_pixels: int
    red_mean: float
    sector_samples: int

    @property
    def avg_wss(self) -> float:
        if self.stress_pixels <= 0:
            return 0.0
        return self.total_stress / self.stress_pixels

    @property
    def evaluation(self) -> str:
        return evaluate_realtime_wss(self.avg_wss)


def evaluate_realtime_wss(avg_wss: float) -> str:
    if avg_wss > 80:
        return "HIGH"
    if avg_wss > 40:
        return "WARN"
    return "NORM"


def classify_pixel(r: float, g: float, b: float, threshold: float) -> tuple[int, float]:
    """Return (direction, value): +1 for red flow, -1 for blue flow, 0 otherwise."""

    if r > g + threshold and r > b + threshold:
        return 1, float(r)
    if b > g + threshold and b > r + threshold:
        return -1, float(b)
    return 0, 0.0


def classify_frame(rgb: np.ndarray, threshold: float) -> tuple[np.ndarray, np.ndarray]:
    """Vectorized classify_pixel over an (h, w, 3) array."""

    channels = rgb.astype(np.float64, copy=False)
    r = channels[..., 0]
    g = channels[..., 1]
    b = channels[..., 2]
    is_red = (r > g + threshold) & (r > b + threshold)
    is_blue = (b > g + threshold) & (b > r + threshold)

    direction = np.zeros(r.shape, dtype=np.int8)
    direction[is_red] = 1
    direction[is_blue] = -1
    value = np.where(is_red, r, np.where(is_blue, b, 0.0))
    return direction, value


def stress_from_velocity(velocity: np.ndarray | float, multiplier: float) -> np.ndarray:
    """Quadratic-in-velocity stress law, saturated at 255."""

    velocity = np.asarray(velocity, dtype=np.float64)
    return np.minimum(MAX_STRESS, velocity * (velocity / 255.0 * multiplier))


def stress_overlay_color(stress: np.ndarray) -> np.ndarray:
    """Green to yellow below 100, yellow to red above; returns (n, 4) uint8 RGBA."""

    stress = np.asarray(stress, dtype=np.float64)
    low = stress < STRESS_COLOR_SPLIT
    colors = np.empty(stress.shape + (4,), dtype=np.float64)
    colors[..., 0] = np.where(low, stress * 2.5, 255.0)
    colors[..., 1] = np.where(low, 255.0, 255.0 - (stress - STRESS_COLOR_SPLIT) * 1.6)
    colors[..., 2] = 0.0
    colors[..., 3] = 255.0
    return np.clip(np.rint(colors), 0, 255).astype(np.uint8)


def _region_bounds(
    roi: RegionOfInterest | None, width: int, height: int
) -> tuple[int, int, int, int]:
    if roi is None:
        return 0, 0, width, height
    bounds = roi.pixel_bounds(width, height)
    if bounds is None:
        logger.debug("zero-area ROI %s, scanning whole frame", roi)
        return 0, 0, width, height
    return bounds


def detect_wall_points(
    brightness: np.ndarray,
    wall_threshold: float,
    roi: RegionOfInterest | None,
) -> tuple[tuple[float, float], ...]:
    """Bright pixels with a dark neighbour, sampled at stride 2 inside the vessel ROI.

    Coordinates are relative to the ROI center so slices from different frames
    stack around a common axis.
    """

    height, width = brightness.shape
    start_x, start_y, end_x, end_y = _region_bounds(roi, width, height)
    center_x = (start_x + end_x) / 2.0
    center_y = (start_y + end_y) / 2.0

    ys = np.arange(start_y, end_y, WALL_STRIDE)
    xs = np.arange(start_x, end_x, WALL_STRIDE)
    if ys.size == 0 or xs.size == 0:
        return ()

    candidates = brightness[np.ix_(ys, xs)] > wall_threshold
    if not candidates.any():
        return ()

    # Padding is not dark, so neighbours outside the frame never qualify.
    dark = np.pad(
        brightness < wall_threshold * WALL_DARK_RATIO,
        WALL_CHECK_RANGE,
        constant_values=False,
    )
    has_dark_neighbor = np.zeros(candidates.shape, dtype=bool)
    for oy in _WALL_OFFSETS:
        for ox in _WALL_OFFSETS:
            if oy == 0 and ox == 0:
                continue
            has_dark_neighbor |= dark[
                np.ix_(ys + WALL_CHECK_RANGE + oy, xs + WALL_CHECK_RANGE + ox)
            ]

    rows, cols = np.nonzero(candidates & has_dark_neighbor)
    return tuple(
        (float(xs[col] - center_x), float(ys[row] - center_y))
        for row, col in zip(rows, cols, strict=True)
    )


class StressFieldExtractor:
    """Per-pixel flow classification and wall-shear-stress estimation for one frame."""

    def extract(
        self,
        frame: Frame,
        config: AnalysisConfig,
        previous_centroid: tuple[float, float] | None,
        sectors: SectorAccumulator,
        frame_index: int,
    ) -> FrameAnalysis:
        if sectors.sector_count != config.sector_count:
            raise ValueError("sector accumulator does not match config.sector_count")

        rgb = frame.pixels[..., :3]
        height, width = rgb.shape[:2]
        direction, value = classify_frame(rgb, config.color_threshold)
        brightness = rgb.astype(np.float64).sum(axis=2) / 3.0

        wall_points = detect_wall_points(brightness, config.wall_threshold, config.vessel_roi)

        overlay = np.zeros((height, width, 4), dtype=np.uint8)
        start_x, start_y, end_x, end_y = _region_bounds(config.flow_roi, width, height)
        x0, x1 = start_x + 1, end_x - 1
        y0, y1 = start_y + 1, end_y - 1
        if x1 <= x0 or y1 <= y0:
            return FrameAnalysis(
                frame_index=frame_index,
                overlay=overlay,
                centroid=previous_centroid,
                wall_points=wall_points,
                total_stress=0.0,
                max_stress=0.0,
                stress_pixels=0,
                flow_pixels=0,
                red_pixels=0,
                red_mean=0.0,
                sector_samples=0,
            )

        region_dir = direction[y0:y1, x0:x1]
        region_val = value[y0:y1, x0:x1]
        grid_y, grid_x = np.mgrid[y0:y1, x0:x1]

        flow_mask = region_dir != 0
        flow_pixels = int(np.count_nonzero(flow_mask))
        centroid = previous_centroid
        if flow_pixels > 0:
            centroid = (
                float(grid_x[flow_mask].mean()),
                float(grid_y[flow_mask].mean()),
            )

        red_mask = region_dir == 1
        red_pixels = int(np.count_nonzero(red_mask))
        red_mean = float(region_val[red_mask].mean()) if red_pixels else 0.0

        max_vel = np.zeros(region_val.shape, dtype=np.float64)
        max_dir = np.zeros(region_dir.shape, dtype=np.int8)
        for dy, dx in _NEIGHBOR_OFFSETS:
            neighbor_val = value[y0 + dy : y1 + dy, x0 + dx : x1 + dx]
            neighbor_dir = direction[y0 + dy : y1 + dy, x0 + dx : x1 + dx]
            better = neighbor_val > max_vel
            max_vel = np.where(better, neighbor_val, max_vel)
            max_dir = np.where(better, neighbor_dir, max_dir)

        stress_mask = ~flow_mask & (max_vel > 0)
        stress = stress_from_velocity(max_vel[stress_mask], config.stress_multiplier)
        stress_dir = max_dir[stress_mask]
        stress_x = grid_x[stress_mask]
        stress_y = grid_y[stress_mask]
        stress_pixels = int(stress.size)

        # Angles use the previous frame's centroid; the current one only applies next frame.
        if previous_centroid is None:
            center_x, center_y = width / 2.0, height / 2.0
        else:
            center_x, center_y = previous_centroid

        sector_samples = 0
        if stress_pixels:
            angles = np.degrees(np.arctan2(stress_y - center_y, stress_x - center_x))
            angles = np.where(angles < 0, angles + 360.0, angles)
            indices = np.floor(angles / sectors.sector_width_deg).astype(np.int64)
            indices %= sectors.sector_count
            sector_samples = sectors.record_many(indices, stress, stress_dir, frame_index)
            overlay[stress_y, stress_x] = stress_overlay_color(stress)

        total_stress = float(stress.sum()) if stress_pixels else 0.0
        max_stress = float(stress.max()) if stress_pixels else 0.0
        logger.debug(
            "frame %d: flow=%d stress=%d wall=%d",
            frame_index,
            flow_pixels,
            stress_pixels,
            len(wall_points),
        )

        return FrameAnalysis(
            frame_index=frame_index,
            overlay=overlay,
            centroid=centroid,
            wall_points=wall_points,
            total_stress=total_stress,
            max_stress=max_stress,
            stress_pixels=stress_pixels,
            flow_pixels=flow_pixels,
            red_pixels=red_pixels,
            red_mean=red_mean,
            sector_samples=sector_samples,
        )
