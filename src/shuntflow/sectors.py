from __future__ import annotations

import csv
import io
import logging
import math
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from .models import SectorBin, SectorResult

logger = logging.getLogger(__name__)

RRT_SATURATION = 100.0
RRT_MIN_DENOMINATOR = 0.01
CSV_HEADER = ("Angle", "TAWSS", "OSI", "RRT", "MaxWSS", "MaxFrame")


class SectorAccumulator:
    """Angular bins that accumulate stress around the tracked flow centroid."""

    def __init__(self, sector_count: int) -> None:
        if sector_count <= 0:
            raise ValueError("sector_count must be positive")
        self.sector_count = sector_count
        self.bins = [SectorBin() for _ in range(sector_count)]
        self.finalized = False

    @property
    def sector_width_deg(self) -> float:
        return 360.0 / self.sector_count

    def sector_index(self, angle_deg: float) -> int | None:
        if not math.isfinite(angle_deg):
            return None
        index = int(math.floor(angle_deg / self.sector_width_deg)) % self.sector_count
        if index < 0 or index >= self.sector_count:
            return None
        return index

    def record(self, angle_deg: float, stress: float, direction: int, frame_index: int) -> bool:
        """Add one stress sample; returns False when the angle maps to no sector."""

        if self.finalized:
            raise RuntimeError("accumulator is finalized")
        index = self.sector_index(angle_deg)
        if index is None:
            return False

        sector = self.bins[index]
        sector.sum_abs_wss += stress
        sector.sum_signed_wss += stress * direction
        sector.count += 1
        if stress > sector.max_wss:
            sector.max_wss = stress
            sector.max_frame = frame_index
        return True

    def record_many(
        self,
        sector_indices: np.ndarray,
        stress: np.ndarray,
        direction: np.ndarray,
        frame_index: int,
    ) -> int:
        """Vectorized form of record() for one frame; returns the number of samples kept."""

        if self.finalized:
            raise RuntimeError("accumulator is finalized")

        indices = np.asarray(sector_indices, dtype=np.int64)
        values = np.asarray(stress, dtype=np.float64)
        signs = np.asarray(direction, dtype=np.float64)
        valid = (indices >= 0) & (indices < self.sector_count)
        dropped = int(indices.size - np.count_nonzero(valid))
        if dropped:
            logger.debug("dropped %d samples with out-of-range sector index", dropped)
        indices = indices[valid]
        values = values[valid]
        signs = signs[valid]
        if indices.size == 0:
            return 0

        abs_sums = np.bincount(indices, weights=values, minlength=self.sector_count)
        signed_sums = np.bincount(indices, weights=values * signs, minlength=self.sector_count)
        counts = np.bincount(indices, minlength=self.sector_count)
        frame_max = np.zeros(self.sector_count, dtype=np.float64)
        np.maximum.at(frame_max, indices, values)

        for index in np.flatnonzero(counts):
            sector = self.bins[index]
            sector.sum_abs_wss += float(abs_sums[index])
            sector.sum_signed_wss += float(signed_sums[index])
            sector.count += int(counts[index])
            if frame_max[index] > sector.max_wss:
                sector.max_wss = float(frame_max[index])
                sector.max_frame = frame_index
        return int(indices.size)

    def total_count(self) -> int:
        return sum(sector.count for sector in self.bins)

    def finalize(self) -> list[SectorResult]:
        self.finalized = True
        return summarize_sectors(self.bins)


def _oscillatory_shear_index(sum_signed: float, sum_abs: float) -> float:
    if sum_abs <= 0:
        return 0.0
    osi = 0.5 * (1.0 - abs(sum_signed) / sum_abs)
    return min(0.5, max(0.0, osi))


def _relative_residence_time(osi: float, tawss: float) -> float:
    denominator = (1.0 - 2.0 * osi) * tawss
    if denominator > RRT_MIN_DENOMINATOR:
        return 1.0 / denominator
    return RRT_SATURATION


def summarize_sectors(bins: Sequence[SectorBin]) -> list[SectorResult]:
    """Derive TAWSS, OSI and RRT for each sector bin."""

    if not bins:
        raise ValueError("at least one sector bin is required")

    width = 360.0 / len(bins)
    results: list[SectorResult] = []
    for index, sector in enumerate(bins):
        angle = index * width
        if sector.count == 0:
            results.append(
                SectorResult(angle=angle, tawss=0.0, osi=0.0, rrt=0.0, max_wss=0.0, max_frame=0)
            )
            continue

        tawss = sector.sum_abs_wss / sector.count
        osi = _oscillatory_shear_index(sector.sum_signed_wss, sector.sum_abs_wss)
        rrt = _relative_residence_time(osi, tawss)
        results.append(
            SectorResult(
                angle=angle,
                tawss=tawss,
                osi=osi,
                rrt=rrt,
                max_wss=sector.max_wss,
                max_frame=sector.max_frame,
            )
        )
    return results


def _format_angle(angle: float) -> str:
    if math.isclose(angle, round(angle), abs_tol=1e-9):
        return str(int(round(angle)))
    return f"{angle:.2f}"


def _result_row(result: SectorResult) -> list[str]:
    return [
        _format_angle(result.angle),
        f"{result.tawss:.2f}",
        f"{result.osi:.3f}",
        f"{result.rrt:.3f}",
        f"{result.max_wss:.2f}",
        str(result.max_frame),
    ]


def sector_results_to_csv(results: Sequence[SectorResult]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for result in results:
        writer.writerow(_result_row(result))
    return buffer.getvalue()


def write_sector_csv(path: str | Path, results: Sequence[SectorResult]) -> Path:
    target = Path(path)
    target.write_text(sector_results_to_csv(results), encoding="utf-8")
    return target


def read_sector_csv(path: str | Path) -> list[SectorResult]:
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(source)

    with source.open("r", newline="", encoding="utf-8") as file:
        reader = csv.reader(file)
        header = next(reader, None)
        if header is None or tuple(header) != CSV_HEADER:
            raise ValueError(f"unexpected sector CSV header: {header}")
        results: list[SectorResult] = []
        for line_number, row in enumerate(reader, start=2):
            if len(row) != len(CSV_HEADER):
                raise ValueError(f"row {line_number} must have {len(CSV_HEADER)} columns")
            try:
                results.append(
                    SectorResult(
                        angle=float(row[0]),
                        tawss=float(row[1]),
                        osi=float(row[2]),
                        rrt=float(row[3]),
                        max_wss=float(row[4]),
                        max_frame=int(row[5]),
                    )
                )
            except ValueError as error:
                raise ValueError(f"row {line_number} is not numeric") from error
    return results
