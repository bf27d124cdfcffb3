from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import SectorResult, TimeSeriesSample

HIGH_TAWSS = 80.0
HIGH_MEAN_TAWSS = 60.0
HIGH_SHEAR_MAX_OSI = 0.2
STAGNATION_RRT = 0.5
LOW_COMPLIANCE_DISTENSIBILITY = 0.1


@dataclass(frozen=True)
class Finding:
    kind: str
    severity: str
    title: str
    description: str
    angle: float | None = None
    frame_index: int | None = None
    time_s: float | None = None


@dataclass(frozen=True)
class SessionDiagnostics:
    """Narrative summary of a finalized session."""

    bullseye_comment: str
    graph_comment: str
    distensibility: float | None
    findings: tuple[Finding, ...]


def wall_side(angle: float) -> str:
    """Image side of a sector angle (0 deg points right, angles grow clockwise on screen)."""

    if angle >= 315 or angle < 45:
        return "right"
    if angle < 135:
        return "bottom"
    if angle < 225:
        return "left"
    return "top"


def distensibility(samples: Sequence[TimeSeriesSample]) -> float | None:
    if not samples:
        return None
    areas = [sample.area for sample in samples]
    min_area = min(areas)
    if min_area <= 0:
        return 0.0
    return (max(areas) - min_area) / min_area


def frame_to_time(frame_index: int, total_frames: int, duration_s: float) -> float | None:
    """Video time of a processed frame, for seeking to e.g. a sector's max-stress frame."""

    if total_frames <= 0 or duration_s <= 0:
        return None
    return frame_index / total_frames * duration_s


def _bullseye_comment(results: Sequence[SectorResult]) -> str:
    high = [result for result in results if result.tawss > HIGH_TAWSS]
    if not high:
        return "no notable high-WSS region"
    peak = max(high, key=lambda result: result.tawss)
    return f"high WSS near {peak.angle:g} deg ({wall_side(peak.angle)})"


def _graph_comment(mean_tawss: float, ratio: float | None) -> str:
    if mean_tawss > HIGH_MEAN_TAWSS:
        comment = "overall WSS tends to be high."
    else:
        comment = "average WSS level."
    if ratio is None:
        return comment
    if ratio < LOW_COMPLIANCE_DISTENSIBILITY:
        return comment + " vessel wall distensibility may be reduced (low compliance)."
    return comment + " good pulsatile variation observed."


def build_diagnostics(
    results: Sequence[SectorResult],
    samples: Sequence[TimeSeriesSample],
    total_frames: int = 0,
    duration_s: float = 0.0,
) -> SessionDiagnostics:
    """Narrative comments and findings; a high-shear finding carries its seek time when known."""

    mean_tawss = sum(result.tawss for result in results) / len(results) if results else 0.0
    ratio = distensibility(samples)

    findings: list[Finding] = []
    high_shear = [
        result
        for result in results
        if result.tawss > HIGH_TAWSS and result.osi < HIGH_SHEAR_MAX_OSI
    ]
    if high_shear:
        peak = max(high_shear, key=lambda result: result.tawss)
        findings.append(
            Finding(
                kind="high_shear",
                severity="warning",
                title="High Shear",
                description=f"high stress near {peak.angle:g} deg",
                angle=peak.angle,
                frame_index=peak.max_frame,
                time_s=frame_to_time(peak.max_frame, total_frames, duration_s),
            )
        )

    stagnation = [result for result in results if result.rrt > STAGNATION_RRT]
    if stagnation:
        peak = max(stagnation, key=lambda result: result.rrt)
        findings.append(
            Finding(
                kind="stagnation",
                severity="danger",
                title="Stagnation",
                description=f"residence risk near {peak.angle:g} deg",
                angle=peak.angle,
            )
        )

    if not findings:
        findings.append(
            Finding(kind="normal", severity="success", title="Normal", description="no abnormality")
        )

    return SessionDiagnostics(
        bullseye_comment=_bullseye_comment(results),
        graph_comment=_graph_comment(mean_tawss, ratio),
        distensibility=ratio,
        findings=tuple(findings),
    )
