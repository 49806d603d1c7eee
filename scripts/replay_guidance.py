#!/usr/bin/env python3
"""Replay a recorded video, image folder or single photo through the guidance pipeline.

Usage:
    python scripts/replay_guidance.py clip.mp4
    python scripts/replay_guidance.py frames/ --fps 15 --report session.json
    python scripts/replay_guidance.py clip.mp4 --preset low_end --verbose
    python scripts/replay_guidance.py mole.jpg
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


def build_source(path: str, fps: float):
    from core.frame_source import ImageFolderSource, VideoCaptureSource

    if Path(path).is_dir():
        return ImageFolderSource(path, fps=fps)
    return VideoCaptureSource(path)


def analyze_image(path: str, coordinator) -> int:
    """Evaluate a single still image and print the full guidance result."""
    from core.image_preprocessor import ImagePreprocessor

    try:
        pixels = ImagePreprocessor.load_bgr(path)
    except OSError as e:
        print(f"ERROR: {e}")
        return 1

    result = coordinator.process_frame(pixels)
    print(f"State: {result.state.value.upper()}")
    print(f"Message: {result.message}")
    print(f"Hint: {result.hint}")
    if result.detection is not None:
        d = result.detection
        print(f"Lesion: center=({d.center.x:.0f}, {d.center.y:.0f}) area={d.area:.0f} "
              f"confidence={d.confidence:.2f} method={d.method}")
        print(f"Centering: {result.centering_percentage:.0f}%  Size: {result.size_percentage:.0f}%")
    if result.metrics is not None:
        m = result.metrics
        print(f"Quality: sharpness={m.sharpness:.2f} brightness={m.brightness:.0f} contrast={m.contrast:.2f}")
    if result.failure_reasons:
        print("Blocking: " + ", ".join(r.value for r in result.failure_reasons))
    print(f"Can capture: {'yes' if result.can_capture else 'no'}")
    return 0


def replay(args) -> int:
    import i18n
    from core.capture_coordinator import CaptureCoordinator
    from core.config import load_config
    from core.report_generator import ReportGenerator, SessionReport
    from core.utils import SUPPORTED_IMAGE_EXTENSIONS, ConfigurationError, configure_logging

    configure_logging("DEBUG" if args.verbose else "WARNING", log_file=False)
    i18n.init(args.lang or "en")

    try:
        config = load_config(args.config, preset=args.preset)
    except ConfigurationError as e:
        print(f"ERROR: invalid configuration: {e}")
        return 2

    coordinator = CaptureCoordinator(config)
    if Path(args.input).suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS:
        return analyze_image(args.input, coordinator)
    source = build_source(args.input, args.fps)

    print("=" * 60)
    print("GUIDANCE REPLAY")
    print(f"Input: {args.input}")
    print("=" * 60)

    last_state = None
    try:
        for buffer in source.iter_buffers():
            result = coordinator.process_buffer(buffer)
            if result is None:
                continue
            if args.verbose or result.state is not last_state:
                confidence = f" conf={result.detection.confidence:.2f}" if result.detection else ""
                print(f"  {result.timestamp_ms:>8} ms  {result.state.value:<14}{confidence}  {result.hint}")
            last_state = result.state
    except IOError as e:
        print(f"ERROR: {e}")
        return 1

    snapshot = coordinator.metrics.snapshot()
    processed = snapshot["frames_processed"]
    print("-" * 60)
    print(f"Frames processed: {processed} (throttled {snapshot['frames_throttled']})")
    for state, count in snapshot["states"].items():
        pct = count / processed * 100 if processed else 0.0
        print(f"  {state:<14} {count:>6}  {pct:5.1f}%")
    print(f"Detection rate: {snapshot['detection_rate'] * 100:.1f}%")
    print(f"Average processing: {coordinator.metrics.average_processing_ms:.1f} ms/frame")

    if args.report:
        report = SessionReport.from_coordinator(coordinator, source=args.input)
        generator = ReportGenerator()
        suffix = Path(args.report).suffix.lower()
        if suffix == ".pdf":
            ok = generator.generate_pdf(report, args.report)
        elif suffix == ".txt":
            ok = generator.generate_txt(report, args.report)
        else:
            ok = generator.generate_json(report, args.report)
        print(f"Report {'written to' if ok else 'FAILED for'} {args.report}")
        if not ok:
            return 1
    return 0


def main():
    parser = argparse.ArgumentParser(description="Replay frames through the capture guidance pipeline")
    parser.add_argument("input", help="Video file, folder of images, or a single image")
    parser.add_argument("--fps", type=float, default=10.0, help="Frame rate for image folders")
    parser.add_argument("--config", help="Guidance configuration JSON file")
    parser.add_argument("--preset", help="Configuration preset (default, low_end, high_precision)")
    parser.add_argument("--lang", help="Message language (en, es)")
    parser.add_argument("--report", help="Write a session report (.json, .txt or .pdf)")
    parser.add_argument("--verbose", action="store_true", help="Print every processed frame")
    args = parser.parse_args()
    sys.exit(replay(args))


if __name__ == "__main__":
    main()
