from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy.signal import correlate

from .models import TimeSeriesSample

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3
PEAK_TOLERANCE_SAMPLES = 1
CATEGORIES = ("none", "mild", "moderate", "severe")


@dataclass(frozen=True)
class StenosisFeatures:
    """Coupling features between the pressure proxy and mean WSS series."""

    corr: float
    lag_s: float
    simultaneous_peak_count: int
    sample_count: int = 0
    valid_pairs: int = 0
    dt_s: float = 0.0

    @property
    def sufficient(self) -> bool:
        return self.sample_count >= MIN_SAMPLES


@dataclass(frozen=True)
class StenosisReferenceStats:
    """Reference distribution used to z-score features for the mild correction."""

    sim_mean: float = 50.0
    sim_std: float = 15.0
    lag_mean: float = 1.5
    lag_std: float = 1.0
    corr_center: float = 0.3
    corr_width: float = 0.2


DEFAULT_REFERENCE_STATS = StenosisReferenceStats()


@dataclass(frozen=True)
class StenosisClassification:
    """Heuristic severity category and the rules that produced it."""

    category: str
    score_corrected: bool
    rule_trace: tuple[str, ...]
    mild_score: float | None = None

    @property
    def label(self) -> str:
        if self.score_corrected:
            return f"{self.category} (score-corrected)"
        return self.category


def _finite_pairs(a: Sequence[float], b: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    if len(a) != len(b):
        raise ValueError("series must have equal length")
    first = np.asarray(a, dtype=np.float64)
    second = np.asarray(b, dtype=np.float64)
    valid = np.isfinite(first) & np.isfinite(second)
    return first[valid], second[valid]


def pearson_correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson r over index-aligned finite pairs; 0 when undefined."""

    first, second = _finite_pairs(a, b)
    if first.size < MIN_SAMPLES:
        return 0.0
    da = first - first.mean()
    db = second - second.mean()
    denominator = math.sqrt(float(np.dot(da, da)) * float(np.dot(db, db)))
    if denominator <= 0:
        return 0.0
    r = float(np.dot(da, db)) / denominator
    if not math.isfinite(r):
        return 0.0
    return max(-1.0, min(1.0, r))


def cross_correlation_lag(a: Sequence[float], b: Sequence[float]) -> int:
    """Shift k in [-(n-1), n-1] maximizing sum((a[i]-mean a) * (b[i+k]-mean b)).

    Positive k means `b` trails `a`. Ties resolve to the smallest k; a series
    without variance yields 0.
    """

    first, second = _finite_pairs(a, b)
    n = first.size
    if n < 2:
        return 0
    centered_a = first - first.mean()
    centered_b = second - second.mean()
    scores = correlate(centered_b, centered_a, mode="full", method="direct")
    if not np.any(np.abs(scores) > 1e-12):
        return 0
    return int(np.argmax(scores)) - (n - 1)


def detect_local_peaks(values: Sequence[float]) -> list[int]:
    data = np.asarray(values, dtype=np.float64)
    peaks: list[int] = []
    for index in range(1, len(data) - 1):
        if not math.isfinite(data[index]):
            continue
        if data[index] >= data[index - 1] and data[index] >= data[index + 1]:
            peaks.append(index)
    return peaks


def count_simultaneous_peaks(
    wss_peaks: Sequence[int],
    pressure_peaks: Sequence[int],
    tolerance: int = PEAK_TOLERANCE_SAMPLES,
) -> int:
    return sum(
        1
        for wss_peak in wss_peaks
        if any(abs(wss_peak - pressure_peak) <= tolerance for pressure_peak in pressure_peaks)
    )


def sampling_interval(duration_s: float, total_frames: int, sample_every_n_frames: int) -> float:
    """Seconds between samples, from the actual video duration rather than a nominal fps."""

    if duration_s <= 0 or total_frames <= 0:
        return 0.0
    return duration_s * sample_every_n_frames / total_frames


def compute_stenosis_features(
    pressure: Sequence[float], avg_wss: Sequence[float], dt_s: float
) -> StenosisFeatures:
    pressure_valid, wss_valid = _finite_pairs(pressure, avg_wss)
    sample_count = len(pressure)
    if sample_count < MIN_SAMPLES:
        return StenosisFeatures(
            corr=0.0,
            lag_s=0.0,
            simultaneous_peak_count=0,
            sample_count=sample_count,
            valid_pairs=int(pressure_valid.size),
            dt_s=dt_s,
        )

    corr = pearson_correlation(pressure_valid, wss_valid)
    lag_samples = cross_correlation_lag(pressure_valid, wss_valid)
    lag_s = lag_samples * dt_s
    simultaneous = count_simultaneous_peaks(
        detect_local_peaks(wss_valid), detect_local_peaks(pressure_valid)
    )
    return StenosisFeatures(
        corr=corr,
        lag_s=lag_s if math.isfinite(lag_s) else 0.0,
        simultaneous_peak_count=simultaneous,
        sample_count=sample_count,
        valid_pairs=int(pressure_valid.size),
        dt_s=dt_s,
    )


def extract_stenosis_features(
    samples: Sequence[TimeSeriesSample],
    duration_s: float,
    total_frames: int,
    sample_every_n_frames: int = 6,
    pressure_max: float | None = None,
) -> StenosisFeatures:
    """Features from sampled time series; pressure is normalized by its session maximum."""

    if pressure_max is None:
        pressure_max = max((sample.pressure_proxy for sample in samples), default=0.0)
    if pressure_max > 0:
        pressure = [sample.pressure_proxy / pressure_max for sample in samples]
    else:
        pressure = [0.0 for _ in samples]
    avg_wss = [sample.avg_wss for sample in samples]
    dt_s = sampling_interval(duration_s, total_frames, sample_every_n_frames)
    return compute_stenosis_features(pressure, avg_wss, dt_s)


def _z(value: float, mean: float, std: float) -> float:
    if std <= 0:
        return 0.0
    return (value - mean) / std


def mild_suspicion_score(
    features: StenosisFeatures, reference: StenosisReferenceStats = DEFAULT_REFERENCE_STATS
) -> float:
    return (
        _z(features.simultaneous_peak_count, reference.sim_mean, reference.sim_std)
        + _z(abs(features.lag_s), reference.lag_mean, reference.lag_std)
        + 0.5 * _z(abs(features.corr), reference.corr_center, reference.corr_width)
    )


def classify_stenosis(
    features: StenosisFeatures,
    reference: StenosisReferenceStats | None = None,
) -> StenosisClassification:
    """Ordered rule set; later rules override earlier ones, the severe rule is checked last."""

    if not features.sufficient:
        logger.info("stenosis classification skipped: %d samples", features.sample_count)
        return StenosisClassification(
            category="none",
            score_corrected=False,
            rule_trace=(
                f"insufficient samples ({features.sample_count} < {MIN_SAMPLES}): neutral",
            ),
        )

    sim = features.simultaneous_peak_count
    lag = abs(features.lag_s)
    corr = abs(features.corr)
    trace: list[str] = [f"features: sim={sim}, |lag|={lag:.2f}s, |corr|={corr:.2f}"]

    category = "none"
    if sim >= 50 or lag >= 0.8 or corr >= 0.3:
        category = "mild"
        trace.append("mild: sim>=50 or |lag|>=0.8s or |corr|>=0.3")
        if sim >= 70 or lag >= 1.5:
            category = "moderate"
            trace.append("moderate: sim>=70 or |lag|>=1.5s")
    else:
        trace.append("none: no mild criterion met")

    if (sim >= 80 and lag >= 2.0) or corr >= 0.75:
        category = "severe"
        trace.append("severe: (sim>=80 and |lag|>=2.0s) or |corr|>=0.75")

    score_corrected = False
    mild_score: float | None = None
    if reference is not None:
        mild_score = mild_suspicion_score(features, reference)
        if category == "none" and mild_score > 1.0:
            category = "mild"
            score_corrected = True
            trace.append(f"mild_score={mild_score:.2f}>1.0: none -> mild")
        elif category == "mild" and mild_score > 2.0:
            category = "moderate"
            score_corrected = True
            trace.append(f"mild_score={mild_score:.2f}>2.0: mild -> moderate")
        else:
            trace.append(f"mild_score={mild_score:.2f}: no correction")

    return StenosisClassification(
        category=category,
        score_corrected=score_corrected,
        rule_trace=tuple(trace),
        mild_score=mild_score,
    )


def features_to_dict(features: StenosisFeatures) -> dict[str, float | int]:
    return {
        "corr": features.corr,
        "lag_s": features.lag_s,
        "simultaneous_peak_count": features.simultaneous_peak_count,
        "sample_count": features.sample_count,
        "valid_pairs": features.valid_pairs,
        "dt_s": features.dt_s,
    }


def classification_to_dict(classification: StenosisClassification) -> dict[str, Any]:
    return {
        "category": classification.category,
        "label": classification.label,
        "score_corrected": classification.score_corrected,
        "mild_score": classification.mild_score,
        "rule_trace": list(classification.rule_trace),
    }
