from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from .models import AnalysisConfig, RegionOfInterest, load_config
from .pipeline import PipelineArtifacts, ShuntFlowPipeline
from .runner import IterableFrameSource
from .session import SessionReport
from .stenosis import (
    DEFAULT_REFERENCE_STATS,
    classification_to_dict,
    classify_stenosis,
    extract_stenosis_features,
    features_to_dict,
)
from .synthetic import SyntheticVideoConfig, available_scenarios, generate_synthetic_video
from .timeseries import read_samples_csv

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _parse_roi(value: str) -> RegionOfInterest:
    parts = [item.strip() for item in value.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("ROI must be in format x,y,w,h")
    try:
        x, y, w, h = (float(part) for part in parts)
    except ValueError as error:
        raise argparse.ArgumentTypeError("ROI values must be numbers in [0, 1]") from error
    if min(x, y, w, h) < 0 or max(x + w, y + h) > 1:
        raise argparse.ArgumentTypeError("ROI must lie inside the normalized frame [0, 1]")
    return RegionOfInterest(x=x, y=y, w=w, h=h)


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="JSON file with AnalysisConfig fields.")
    parser.add_argument("--color-threshold", type=float, default=None)
    parser.add_argument("--wall-threshold", type=float, default=None)
    parser.add_argument("--stress-multiplier", type=float, default=None)
    parser.add_argument("--sector-count", type=int, default=None)
    parser.add_argument("--scale-px-per-cm", type=float, default=None)
    parser.add_argument(
        "--roi-flow", type=_parse_roi, default=None, help="Flow ROI as x,y,w,h (0-1)."
    )
    parser.add_argument(
        "--roi-vessel", type=_parse_roi, default=None, help="Vessel ROI as x,y,w,h (0-1)."
    )
    parser.add_argument(
        "--no-correction",
        action="store_true",
        help="Disable the reference-score correction of the stenosis category.",
    )


def _config_from_args(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config) if args.config else AnalysisConfig()
    overrides: dict[str, Any] = {}
    for name in (
        "color_threshold",
        "wall_threshold",
        "stress_multiplier",
        "sector_count",
        "scale_px_per_cm",
    ):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    if args.roi_flow is not None:
        overrides["flow_roi"] = args.roi_flow
    if args.roi_vessel is not None:
        overrides["vessel_roi"] = args.roi_vessel

    config = replace(config, **overrides)
    config.validate()
    return config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shuntflow",
        description="Wall-shear-stress and stenosis analysis of color-Doppler shunt video.",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_video = subparsers.add_parser(
        "analyze-video",
        help="Run sector hemodynamics and stenosis classification on a video.",
    )
    analyze_video.add_argument("video_path", help="Path to color-Doppler recording.")
    analyze_video.add_argument(
        "--output-dir",
        help="Directory for output CSV/JSON files. Default: next to the video.",
    )
    analyze_video.add_argument("--resize-width", type=int, default=640)
    analyze_video.add_argument("--max-frames", type=int, default=None)
    _add_config_arguments(analyze_video)

    synth = subparsers.add_parser(
        "generate-synthetic",
        help="Analyze a synthetic vessel sequence and write the session artifacts.",
    )
    synth.add_argument("--scenario", choices=available_scenarios(), default="pulsatile")
    synth.add_argument("--frame-count", type=int, default=180)
    synth.add_argument("--fps", type=float, default=30.0)
    synth.add_argument("--width", type=int, default=96)
    synth.add_argument("--height", type=int, default=72)
    synth.add_argument("--beat-period-s", type=float, default=1.0)
    synth.add_argument("--seed", type=int, default=42)
    synth.add_argument("--output-dir", required=True, help="Directory for output files.")
    _add_config_arguments(synth)

    classify = subparsers.add_parser(
        "classify-series",
        help="Classify stenosis severity from a saved time-series CSV.",
    )
    classify.add_argument("samples_csv", help="Time-series CSV written by analyze-video.")
    classify.add_argument("--duration-s", type=float, required=True)
    classify.add_argument("--total-frames", type=int, required=True)
    classify.add_argument("--sample-every-n-frames", type=int, default=6)
    classify.add_argument("--output-json", help="Optional path for the classification JSON.")
    classify.add_argument("--no-correction", action="store_true")
    return parser


def _print_report(report: SessionReport, artifacts: PipelineArtifacts) -> None:
    print(f"Sector CSV: {artifacts.sector_csv_path}")
    print(f"Time-series CSV: {artifacts.samples_csv_path}")
    print(f"Summary JSON: {artifacts.report_path}")
    print(f"Frames processed: {report.frames_processed}")
    print(f"Samples: {len(report.samples)}")
    print(f"Stenosis: {report.classification.label}")
    print(f"Bullseye: {report.diagnostics.bullseye_comment}")


def _handle_analyze_video(args: argparse.Namespace) -> int:
    video_path = Path(args.video_path)
    if not video_path.exists():
        raise FileNotFoundError(video_path)

    config = _config_from_args(args)
    pipeline = ShuntFlowPipeline(config, score_correction=not args.no_correction)
    artifacts = pipeline.run_video(
        video_path,
        output_dir=args.output_dir,
        resize_width=args.resize_width,
        max_frames=args.max_frames,
    )
    if artifacts.report is None:
        print(f"Analysis failed: {artifacts.error}")
        return 1

    print(f"Video analyzed: {video_path}")
    _print_report(artifacts.report, artifacts)
    return 0


def _handle_generate_synthetic(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    video = generate_synthetic_video(
        SyntheticVideoConfig(
            scenario=args.scenario,
            width=args.width,
            height=args.height,
            frame_count=args.frame_count,
            fps=args.fps,
            beat_period_s=args.beat_period_s,
            seed=args.seed,
        )
    )
    pipeline = ShuntFlowPipeline(config, score_correction=not args.no_correction)
    artifacts = pipeline.run(
        IterableFrameSource(video.frames, duration_s=video.duration_s),
        output_dir=args.output_dir,
        stem=f"synthetic_{video.scenario}",
    )
    if artifacts.report is None:
        print(f"Analysis failed: {artifacts.error}")
        return 1

    print(f"Synthetic scenario: {video.scenario}")
    _print_report(artifacts.report, artifacts)
    return 0


def _handle_classify_series(args: argparse.Namespace) -> int:
    samples = read_samples_csv(args.samples_csv)
    features = extract_stenosis_features(
        samples,
        duration_s=args.duration_s,
        total_frames=args.total_frames,
        sample_every_n_frames=args.sample_every_n_frames,
    )
    classification = classify_stenosis(
        features, None if args.no_correction else DEFAULT_REFERENCE_STATS
    )
    payload = {
        "samples_csv": str(args.samples_csv),
        "features": features_to_dict(features),
        "classification": classification_to_dict(classification),
    }
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.output_json:
        Path(args.output_json).write_text(text, encoding="utf-8")
        print(f"Classification JSON: {args.output_json}")
    print(text)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "analyze-video":
        return _handle_analyze_video(args)
    if args.command == "generate-synthetic":
        return _handle_generate_synthetic(args)
    if args.command == "classify-series":
        return _handle_classify_series(args)

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
