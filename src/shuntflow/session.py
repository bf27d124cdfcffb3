from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any

from .diagnostics import SessionDiagnostics, build_diagnostics
from .models import AnalysisConfig, Frame, SectorResult, TimeSeriesSample, config_to_dict
from .point_cloud import PointCloudStack
from .projector import Projector
from .sectors import SectorAccumulator
from .stenosis import (
    DEFAULT_REFERENCE_STATS,
    StenosisClassification,
    StenosisFeatures,
    StenosisReferenceStats,
    classification_to_dict,
    classify_stenosis,
    extract_stenosis_features,
    features_to_dict,
)
from .stress_field import FrameAnalysis, StressFieldExtractor
from .timeseries import TimeSeriesSampler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionReport:
    """Final artifacts of one analysis session."""

    frames_processed: int
    duration_s: float
    area_unit: str
    sector_results: tuple[SectorResult, ...]
    samples: tuple[TimeSeriesSample, ...]
    features: StenosisFeatures
    classification: StenosisClassification
    diagnostics: SessionDiagnostics


class AnalysisSession:
    """Explicit context for one analysis run.

    Owns every accumulator; components only see the state handed to them.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        reference_stats: StenosisReferenceStats | None = DEFAULT_REFERENCE_STATS,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.config.validate()
        self.reference_stats = reference_stats
        self.extractor = StressFieldExtractor()
        self.projector = Projector()
        self.reset()

    def reset(self) -> None:
        cfg = self.config
        self.sectors = SectorAccumulator(cfg.sector_count)
        self.stack = PointCloudStack(cfg.max_stack_slices)
        self.sampler = TimeSeriesSampler(cfg.max_samples)
        self.projector.reset_view()
        self.frame_count = 0
        self.centroid: tuple[float, float] | None = None
        self.last_analysis: FrameAnalysis | None = None
        self.last_timestamp_s = 0.0
        self.report: SessionReport | None = None
        logger.info("analysis session reset (sectors=%d)", cfg.sector_count)

    @property
    def finalized(self) -> bool:
        return self.report is not None

    def update_config(self, config: AnalysisConfig) -> None:
        """Swap the configuration between frames; a new sector count restarts the bins."""

        config.validate()
        previous = self.config
        self.config = config
        if config.sector_count != previous.sector_count:
            logger.info(
                "sector count changed %d -> %d, re-initializing sectors",
                previous.sector_count,
                config.sector_count,
            )
            self.sectors = SectorAccumulator(config.sector_count)

    def configure(self, **changes: Any) -> AnalysisConfig:
        self.update_config(replace(self.config, **changes))
        return self.config

    def process_frame(self, frame: Frame) -> FrameAnalysis:
        if self.finalized:
            raise RuntimeError("session is finalized; reset before processing new frames")

        cfg = self.config
        analysis = self.extractor.extract(
            frame,
            cfg,
            previous_centroid=self.centroid,
            sectors=self.sectors,
            frame_index=self.frame_count,
        )
        self.centroid = analysis.centroid
        self.last_analysis = analysis
        self.last_timestamp_s = frame.timestamp_s
        self.frame_count += 1

        if self.frame_count % cfg.stack_every_n_frames == 0:
            self.stack.push(self.frame_count, analysis.wall_points)
        if self.frame_count % cfg.sample_every_n_frames == 0:
            self.sampler.record(
                frame_index=self.frame_count,
                time_s=frame.timestamp_s,
                total_stress=analysis.total_stress,
                stress_pixels=analysis.stress_pixels,
                flow_pixels=analysis.flow_pixels,
                red_mean=analysis.red_mean,
                scale_px_per_cm=cfg.scale_px_per_cm,
            )
        return analysis

    def finalize(self, duration_s: float | None = None) -> SessionReport:
        """Freeze the accumulators and derive sector, stenosis and narrative results."""

        if self.report is not None:
            return self.report

        duration = duration_s if duration_s and duration_s > 0 else self.last_timestamp_s
        sector_results = tuple(self.sectors.finalize())
        samples = tuple(self.sampler.samples)
        features = extract_stenosis_features(
            samples,
            duration_s=duration,
            total_frames=self.frame_count,
            sample_every_n_frames=self.config.sample_every_n_frames,
            pressure_max=self.sampler.running_pressure_max,
        )
        classification = classify_stenosis(features, self.reference_stats)
        self.report = SessionReport(
            frames_processed=self.frame_count,
            duration_s=duration,
            area_unit=self.config.area_unit,
            sector_results=sector_results,
            samples=samples,
            features=features,
            classification=classification,
            diagnostics=build_diagnostics(sector_results, samples, self.frame_count, duration),
        )
        logger.info(
            "session finalized: frames=%d samples=%d stenosis=%s",
            self.frame_count,
            len(samples),
            classification.label,
        )
        return self.report


def report_to_dict(report: SessionReport, config: AnalysisConfig | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "frames_processed": report.frames_processed,
        "duration_s": report.duration_s,
        "area_unit": report.area_unit,
        "sectors": [asdict(result) for result in report.sector_results],
        "time_series": [asdict(sample) for sample in report.samples],
        "stenosis": {
            "features": features_to_dict(report.features),
            "classification": classification_to_dict(report.classification),
        },
        "diagnostics": asdict(report.diagnostics),
    }
    if config is not None:
        payload["config"] = config_to_dict(config)
    return payload
