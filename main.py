"""MoleGuide: real-time capture guidance for skin lesion photos.

Entry point for live guidance from a webcam or video file. Guidance states are
printed to the console as they change.
"""

import argparse
import logging
import os
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

import i18n
from core.auto_capture import AutoCaptureTrigger
from core.camera_session import DigitalZoomSession
from core.capture_coordinator import CaptureCoordinator
from core.config import load_config
from core.frame_source import VideoCaptureSource
from core.performance_manager import PerformanceManager
from core.report_generator import ReportGenerator, SessionReport
from core.utils import ConfigurationError, configure_logging
from core.zoom_controller import ZoomController
from workers.guidance_worker import GuidanceWorker

logger = logging.getLogger("moleguide")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Live mole capture guidance")
    parser.add_argument("--source", default="0", help="Camera index or video file path")
    parser.add_argument("--config", help="Guidance configuration JSON file")
    parser.add_argument("--preset", help="Configuration preset (default, low_end, high_precision)")
    parser.add_argument("--zoom", type=float, help="Initial digital zoom level")
    parser.add_argument("--small-moles", action="store_true", help="Start at the zoom level for small moles")
    parser.add_argument("--auto-capture", action="store_true", help="Announce auto-capture after READY is held")
    parser.add_argument("--lang", help="Message language (en, es)")
    parser.add_argument("--report", help="Write a session report (.json, .txt or .pdf) on exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def write_report(path: str, coordinator: CaptureCoordinator, source: str, zoom: ZoomController) -> bool:
    report = SessionReport.from_coordinator(coordinator, source=source, zoom_info=zoom.zoom_info)
    generator = ReportGenerator()
    suffix = os.path.splitext(path)[1].lower()
    if suffix == ".pdf":
        return generator.generate_pdf(report, path)
    if suffix == ".txt":
        return generator.generate_txt(report, path)
    return generator.generate_json(report, path)


def main(argv=None):
    """Application entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    app = QCoreApplication(sys.argv[:1])
    app.setApplicationName("MoleGuide")
    app.setApplicationVersion("1.0.0")
    app.setOrganizationName("MoleGuide")

    i18n.init(args.lang)

    try:
        config = load_config(args.config, preset=args.preset)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    source_arg = int(args.source) if args.source.isdigit() else args.source
    session = DigitalZoomSession(min_ratio=config.min_zoom, max_ratio=config.max_zoom)
    session.open()
    zoom = ZoomController(session, config)
    zoom.initialize()
    zoom.add_listener(lambda info: logger.info(
        "Zoom %.1fx%s", info.current_level, " (stabilization)" if info.is_stabilization_active else ""
    ))
    if args.small_moles:
        zoom.set_optimal_for_small_moles()
    elif args.zoom is not None:
        zoom.set_level(args.zoom)

    coordinator = CaptureCoordinator(config, performance=PerformanceManager())
    worker = GuidanceWorker(coordinator)
    trigger = AutoCaptureTrigger(
        delay_ms=config.auto_capture_delay_ms,
        enabled=args.auto_capture or config.enable_auto_capture,
        on_capture=lambda result: print(f"[capture] auto-capture at {result.timestamp_ms} ms"),
    )

    last_state = [None]

    def on_result():
        result = worker.latest_result()
        if result is None:
            return
        if result.state is not last_state[0]:
            last_state[0] = result.state
            print(f"[{result.state.value}] {result.message} - {result.hint}")
        trigger.update(result)

    worker.result_ready.connect(on_result)
    worker.error.connect(lambda message: logger.error(message))

    source = VideoCaptureSource(source_arg, zoom_session=session, realtime=True)

    def check_source():
        if not source.is_running:
            app.quit()

    watchdog = QTimer()
    watchdog.timeout.connect(check_source)
    watchdog.start(200)

    signal.signal(signal.SIGINT, lambda *_: app.quit())

    worker.start()
    source.start(worker.submit)
    try:
        app.exec()
    finally:
        source.stop()
        worker.stop()
        zoom.cleanup()
        session.close()

    if args.report:
        if write_report(args.report, coordinator, str(args.source), zoom):
            print(f"Report written to {args.report}")
        else:
            logger.error("Could not write report to %s", args.report)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
