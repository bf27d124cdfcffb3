from __future__ import annotations

import csv
import math
from collections import deque
from collections.abc import Sequence
from pathlib import Path

from .models import TimeSeriesSample

MAX_SAMPLES = 200
SAMPLES_CSV_HEADER = ("frame_index", "time_s", "avg_wss", "area", "pressure_proxy")


def flow_area(flow_pixels: int, scale_px_per_cm: float) -> float:
    """Flow-region area in px^2, or cm^2 once a calibration scale is set."""

    if scale_px_per_cm > 0:
        return flow_pixels / (scale_px_per_cm**2)
    return float(flow_pixels)


class TimeSeriesSampler:
    """Bounded buffer of periodic (avgWss, area, pressureProxy) samples."""

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        if max_samples <= 0:
            raise ValueError("max_samples must be positive")
        self.max_samples = max_samples
        self._samples: deque[TimeSeriesSample] = deque(maxlen=max_samples)
        self.running_pressure_max = 0.0

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> list[TimeSeriesSample]:
        return list(self._samples)

    def record(
        self,
        frame_index: int,
        time_s: float,
        total_stress: float,
        stress_pixels: int,
        flow_pixels: int,
        red_mean: float,
        scale_px_per_cm: float = 0.0,
    ) -> TimeSeriesSample:
        avg_wss = total_stress / stress_pixels if stress_pixels > 0 else 0.0
        pressure_proxy = red_mean if math.isfinite(red_mean) else 0.0
        sample = TimeSeriesSample(
            frame_index=frame_index,
            time_s=time_s,
            avg_wss=avg_wss,
            area=flow_area(flow_pixels, scale_px_per_cm),
            pressure_proxy=pressure_proxy,
        )
        self._samples.append(sample)
        self.running_pressure_max = max(self.running_pressure_max, pressure_proxy)
        return sample

    def normalized_pressure(self) -> list[float]:
        """Pressure proxy scaled by its session-wide running maximum."""

        if self.running_pressure_max <= 0:
            return [0.0 for _ in self._samples]
        return [sample.pressure_proxy / self.running_pressure_max for sample in self._samples]

    def avg_wss_series(self) -> list[float]:
        return [sample.avg_wss for sample in self._samples]

    def clear(self) -> None:
        self._samples.clear()
        self.running_pressure_max = 0.0


def write_samples_csv(path: str | Path, samples: Sequence[TimeSeriesSample]) -> Path:
    target = Path(path)
    with target.open("w", newline="", encoding="utf-8") as file:
        writer = csv.writer(file)
        writer.writerow(SAMPLES_CSV_HEADER)
        for sample in samples:
            writer.writerow(
                [
                    sample.frame_index,
                    f"{sample.time_s:.6f}",
                    f"{sample.avg_wss:.6f}",
                    f"{sample.area:.6f}",
                    f"{sample.pressure_proxy:.6f}",
                ]
            )
    return target


def read_samples_csv(path: str | Path) -> list[TimeSeriesSample]:
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(source)

    samples: list[TimeSeriesSample] = []
    with source.open("r", newline="", encoding="utf-8") as file:
        reader = csv.DictReader(file)
        missing = set(SAMPLES_CSV_HEADER) - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"samples CSV is missing columns: {', '.join(sorted(missing))}")
        for line_number, row in enumerate(reader, start=2):
            try:
                samples.append(
                    TimeSeriesSample(
                        frame_index=int(row["frame_index"]),
                        time_s=float(row["time_s"]),
                        avg_wss=float(row["avg_wss"]),
                        area=float(row["area"]),
                        pressure_proxy=float(row["pressure_proxy"]),
                    )
                )
            except (TypeError, ValueError) as error:
                raise ValueError(f"row {line_number} is not numeric") from error
    return samples
