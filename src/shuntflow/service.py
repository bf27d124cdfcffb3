from __future__ import annotations

from typing import Literal

from fastapi import FastAPI
from pydantic import BaseModel, Field

from .models import SectorBin, TimeSeriesSample
from .point_cloud import PointCloudStack
from .projector import MAX_ZOOM, MIN_ZOOM, Projector, ViewState, Viewport
from .sectors import sector_results_to_csv, summarize_sectors
from .stenosis import DEFAULT_REFERENCE_STATS, classify_stenosis, extract_stenosis_features

INTERACTION_MODE = Literal["rotate", "move", "delete"]


class SectorBinPayload(BaseModel):
    sum_signed_wss: float
    sum_abs_wss: float = Field(ge=0)
    count: int = Field(ge=0)
    max_wss: float = Field(default=0.0, ge=0)
    max_frame: int = Field(default=0, ge=0)


class SummarizeRequest(BaseModel):
    sectors: list[SectorBinPayload] = Field(min_length=1)


class SectorResultPayload(BaseModel):
    angle: float
    tawss: float
    osi: float
    rrt: float
    max_wss: float
    max_frame: int


class SummarizeResponse(BaseModel):
    sectors: list[SectorResultPayload]
    csv: str


class SamplePayload(BaseModel):
    frame_index: int = Field(ge=0)
    time_s: float = Field(ge=0)
    avg_wss: float
    area: float = Field(ge=0)
    pressure_proxy: float = Field(ge=0)


class ClassifyRequest(BaseModel):
    samples: list[SamplePayload]
    duration_s: float = Field(gt=0)
    total_frames: int = Field(gt=0)
    sample_every_n_frames: int = Field(default=6, ge=1)
    score_correction: bool = True


class FeaturesPayload(BaseModel):
    corr: float
    lag_s: float
    simultaneous_peak_count: int
    sample_count: int
    valid_pairs: int
    dt_s: float


class ClassificationPayload(BaseModel):
    category: Literal["none", "mild", "moderate", "severe"]
    label: str
    score_corrected: bool
    mild_score: float | None = None
    rule_trace: list[str]


class ClassifyResponse(BaseModel):
    features: FeaturesPayload
    classification: ClassificationPayload


class SlicePayload(BaseModel):
    frame_index: int
    points: list[tuple[float, float]]


class ViewPayload(BaseModel):
    rot_x: float = 0.5
    rot_y: float = 0.5
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = Field(default=1.0, ge=MIN_ZOOM, le=MAX_ZOOM)
    noise_filter_level: int = Field(default=1, ge=0)
    mode: INTERACTION_MODE = "rotate"


class ProjectionRequest(BaseModel):
    slices: list[SlicePayload]
    view: ViewPayload = Field(default_factory=ViewPayload)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    enlarged: bool = True


class ProjectedSlicePayload(BaseModel):
    frame_index: int
    alpha: float
    points: list[tuple[float, float, float, float]]


class ProjectionResponse(BaseModel):
    slices: list[ProjectedSlicePayload]


def create_analysis_app() -> FastAPI:
    app = FastAPI(
        title="ShuntFlow Analysis API",
        version="0.1.0",
        description="Sector hemodynamics, stenosis classification and 3D projection.",
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/hemodynamics/summarize", response_model=SummarizeResponse)
    def summarize(request: SummarizeRequest) -> SummarizeResponse:
        bins = [SectorBin(**item.model_dump()) for item in request.sectors]
        results = summarize_sectors(bins)
        return SummarizeResponse(
            sectors=[
                SectorResultPayload(
                    angle=result.angle,
                    tawss=result.tawss,
                    osi=result.osi,
                    rrt=result.rrt,
                    max_wss=result.max_wss,
                    max_frame=result.max_frame,
                )
                for result in results
            ],
            csv=sector_results_to_csv(results),
        )

    @app.post("/api/v1/stenosis/classify", response_model=ClassifyResponse)
    def classify(request: ClassifyRequest) -> ClassifyResponse:
        samples = [TimeSeriesSample(**item.model_dump()) for item in request.samples]
        features = extract_stenosis_features(
            samples,
            duration_s=request.duration_s,
            total_frames=request.total_frames,
            sample_every_n_frames=request.sample_every_n_frames,
        )
        classification = classify_stenosis(
            features, DEFAULT_REFERENCE_STATS if request.score_correction else None
        )
        return ClassifyResponse(
            features=FeaturesPayload(
                corr=features.corr,
                lag_s=features.lag_s,
                simultaneous_peak_count=features.simultaneous_peak_count,
                sample_count=features.sample_count,
                valid_pairs=features.valid_pairs,
                dt_s=features.dt_s,
            ),
            classification=ClassificationPayload(
                category=classification.category,
                label=classification.label,
                score_corrected=classification.score_corrected,
                mild_score=classification.mild_score,
                rule_trace=list(classification.rule_trace),
            ),
        )

    @app.post("/api/v1/projection", response_model=ProjectionResponse)
    def project(request: ProjectionRequest) -> ProjectionResponse:
        stack = PointCloudStack(max_slices=max(1, len(request.slices)))
        for item in request.slices:
            stack.push(item.frame_index, item.points)
        projector = Projector(ViewState(**request.view.model_dump()))
        projected = projector.project(
            stack, Viewport(width=request.width, height=request.height, enlarged=request.enlarged)
        )
        return ProjectionResponse(
            slices=[
                ProjectedSlicePayload(
                    frame_index=item.frame_index,
                    alpha=item.alpha,
                    points=[(point.x, point.y, point.z, point.size) for point in item.points],
                )
                for item in projected
            ]
        )

    return app
