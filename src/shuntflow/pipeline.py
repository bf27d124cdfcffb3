from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .models import AnalysisConfig, Frame
from .runner import AnalysisRunner, FrameSource, IterableFrameSource
from .sectors import write_sector_csv
from .session import AnalysisSession, SessionReport, report_to_dict
from .stenosis import DEFAULT_REFERENCE_STATS
from .timeseries import write_samples_csv

logger = logging.getLogger(__name__)


@dataclass
class PipelineArtifacts:
    """Artifacts produced by one pipeline run."""

    source_name: str
    sector_csv_path: Path | None = None
    samples_csv_path: Path | None = None
    report_path: Path | None = None
    report: SessionReport | None = None
    status: str = "idle"
    error: str | None = None


class ShuntFlowPipeline:
    """Frame stream -> analysis session -> sector CSV, time-series CSV and JSON report."""

    def __init__(self, config: AnalysisConfig | None = None, score_correction: bool = True) -> None:
        self.config = config or AnalysisConfig()
        self.config.validate()
        self.score_correction = score_correction

    def analyze(self, source: FrameSource) -> tuple[AnalysisRunner, SessionReport | None]:
        session = AnalysisSession(
            self.config,
            reference_stats=DEFAULT_REFERENCE_STATS if self.score_correction else None,
        )
        runner = AnalysisRunner(session, source)
        status = runner.run()
        if status != "completed":
            logger.warning("analysis ended with status %s: %s", status, runner.error)
        return runner, runner.report

    def analyze_frames(self, frames: Iterable[Frame], duration_s: float = 0.0) -> SessionReport:
        runner, report = self.analyze(IterableFrameSource(frames, duration_s=duration_s))
        if report is None:
            raise RuntimeError(f"analysis failed: {runner.error}")
        return report

    def run(
        self,
        source: FrameSource,
        output_dir: str | Path,
        stem: str,
    ) -> PipelineArtifacts:
        target_dir = Path(output_dir)
        target_dir.mkdir(parents=True, exist_ok=True)

        runner, report = self.analyze(source)
        artifacts = PipelineArtifacts(source_name=stem, status=runner.status, error=runner.error)
        if report is None:
            return artifacts

        artifacts.report = report
        artifacts.sector_csv_path = write_sector_csv(
            target_dir / f"{stem}_sectors.csv", report.sector_results
        )
        artifacts.samples_csv_path = write_samples_csv(
            target_dir / f"{stem}_timeseries.csv", report.samples
        )
        report_path = target_dir / f"{stem}_summary.json"
        report_path.write_text(
            json.dumps(
                report_to_dict(report, self.config),
                ensure_ascii=False,
                indent=2,
                allow_nan=False,
            ),
            encoding="utf-8",
        )
        artifacts.report_path = report_path
        return artifacts

    def run_video(
        self,
        video_path: str | Path,
        output_dir: str | Path | None = None,
        resize_width: int | None = 640,
        max_frames: int | None = None,
    ) -> PipelineArtifacts:
        from .video import VideoFrameSource, VideoSourceConfig

        path = Path(video_path)
        if not path.exists():
            raise FileNotFoundError(path)

        source = VideoFrameSource(
            path, VideoSourceConfig(resize_width=resize_width, max_frames=max_frames)
        )
        with source:
            return self.run(source, output_dir or path.parent, stem=path.stem)
