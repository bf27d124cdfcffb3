"""Wall-shear-stress, sector hemodynamics and stenosis analysis for color-Doppler shunt video."""

from .diagnostics import (
    Finding,
    SessionDiagnostics,
    build_diagnostics,
    distensibility,
    frame_to_time,
    wall_side,
)
from .models import (
    AnalysisConfig,
    Frame,
    RegionOfInterest,
    SectorBin,
    SectorResult,
    TimeSeriesSample,
    WallPointSlice,
    calibrate_scale,
    config_from_dict,
    config_to_dict,
    load_config,
)
from .pipeline import PipelineArtifacts, ShuntFlowPipeline
from .point_cloud import PointCloudStack
from .projector import (
    ProjectedPoint,
    ProjectedSlice,
    Projector,
    SelectionBox,
    ViewState,
    Viewport,
    rotate_point,
)
from .runner import AnalysisRunner, FrameSource, IterableFrameSource
from .sectors import (
    SectorAccumulator,
    read_sector_csv,
    sector_results_to_csv,
    summarize_sectors,
    write_sector_csv,
)
from .session import AnalysisSession, SessionReport, report_to_dict
from .stenosis import (
    DEFAULT_REFERENCE_STATS,
    StenosisClassification,
    StenosisFeatures,
    StenosisReferenceStats,
    classify_stenosis,
    compute_stenosis_features,
    cross_correlation_lag,
    extract_stenosis_features,
    pearson_correlation,
)
from .stress_field import FrameAnalysis, StressFieldExtractor, evaluate_realtime_wss
from .synthetic import (
    SYNTHETIC_SCENARIOS,
    SyntheticVideo,
    SyntheticVideoConfig,
    available_scenarios,
    generate_synthetic_video,
)
from .timeseries import TimeSeriesSampler, read_samples_csv, write_samples_csv

# opencv is imported lazily when a VideoFrameSource is opened.
from .video import VideoFrameSource, VideoSourceConfig

__all__ = [
    "AnalysisConfig",
    "Frame",
    "RegionOfInterest",
    "SectorBin",
    "SectorResult",
    "TimeSeriesSample",
    "WallPointSlice",
    "calibrate_scale",
    "config_from_dict",
    "config_to_dict",
    "load_config",
    "FrameAnalysis",
    "StressFieldExtractor",
    "evaluate_realtime_wss",
    "SectorAccumulator",
    "summarize_sectors",
    "sector_results_to_csv",
    "write_sector_csv",
    "read_sector_csv",
    "PointCloudStack",
    "Projector",
    "ProjectedPoint",
    "ProjectedSlice",
    "SelectionBox",
    "ViewState",
    "Viewport",
    "rotate_point",
    "TimeSeriesSampler",
    "write_samples_csv",
    "read_samples_csv",
    "StenosisFeatures",
    "StenosisReferenceStats",
    "StenosisClassification",
    "DEFAULT_REFERENCE_STATS",
    "pearson_correlation",
    "cross_correlation_lag",
    "compute_stenosis_features",
    "extract_stenosis_features",
    "classify_stenosis",
    "Finding",
    "SessionDiagnostics",
    "build_diagnostics",
    "distensibility",
    "frame_to_time",
    "wall_side",
    "AnalysisSession",
    "SessionReport",
    "report_to_dict",
    "AnalysisRunner",
    "FrameSource",
    "IterableFrameSource",
    "PipelineArtifacts",
    "ShuntFlowPipeline",
    "SYNTHETIC_SCENARIOS",
    "SyntheticVideo",
    "SyntheticVideoConfig",
    "available_scenarios",
    "generate_synthetic_video",
    "VideoFrameSource",
    "VideoSourceConfig",
]
