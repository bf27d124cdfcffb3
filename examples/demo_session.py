from shuntflow.pipeline import ShuntFlowPipeline
from shuntflow.synthetic import SyntheticVideoConfig, generate_synthetic_video


def main() -> None:
    video = generate_synthetic_video(SyntheticVideoConfig(scenario="pulsatile", frame_count=120))
    report = ShuntFlowPipeline().analyze_frames(video.frames, duration_s=video.duration_s)

    peak = max(report.sector_results, key=lambda result: result.tawss)

    print("ShuntFlow session summary")
    print(f"Frames processed: {report.frames_processed}")
    print(f"Duration: {report.duration_s:.2f} s")
    print(f"Peak TAWSS: {peak.tawss:.2f} at {peak.angle:g} deg")
    print(f"Peak OSI: {max(result.osi for result in report.sector_results):.3f}")
    print(f"Samples: {len(report.samples)}")
    print(f"Stenosis: {report.classification.label}")
    print(f"Bullseye: {report.diagnostics.bullseye_comment}")
    print(f"Graph: {report.diagnostics.graph_comment}")


if __name__ == "__main__":
    main()
