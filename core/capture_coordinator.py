"""Per-frame pipeline: throttle, convert, detect, analyze, decide."""

import logging
import time
from typing import Optional, Union

import numpy as np

from core.capture_metrics import CaptureMetrics
from core.color_space import ColorSpaceAdapter
from core.config import GuidanceConfig
from core.frame_source import ImageBuffer, LatestSlot
from core.frame_throttle import FrameThrottle
from core.guidance import GuidanceStateMachine, message_for
from core.lesion_detector import LesionDetector
from core.performance_manager import PROFILES, PerformanceLevel, PerformanceManager
from core.quality_analyzer import QualityAnalyzer
from core.utils import (
    Frame,
    FrameConversionError,
    GuideRegion,
    GuidanceResult,
    GuidanceState,
    LesionDetection,
    QualityMetrics,
    ValidationFailureReason,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class CaptureCoordinator:
    """Runs one accepted frame through the guidance pipeline.

    Intended to be driven from a single analysis thread. Detector and analyzer
    failures are contained here: they are logged and the frame is treated as
    having no detection. Every buffer handed to process_buffer is closed
    before it returns.
    """

    def __init__(
        self,
        config: Optional[GuidanceConfig] = None,
        detector: Optional[LesionDetector] = None,
        analyzer: Optional[QualityAnalyzer] = None,
        state_machine: Optional[GuidanceStateMachine] = None,
        adapter: Optional[ColorSpaceAdapter] = None,
        throttle: Optional[FrameThrottle] = None,
        metrics: Optional[CaptureMetrics] = None,
        performance: Optional[PerformanceManager] = None,
    ):
        self._config = (config or GuidanceConfig()).validate()
        self._detector = detector or LesionDetector()
        self._analyzer = analyzer or QualityAnalyzer()
        self._state_machine = state_machine or GuidanceStateMachine(self._config)
        self._adapter = adapter or ColorSpaceAdapter()
        self._throttle = throttle or FrameThrottle(self._config.throttle_interval_ms)
        self._metrics = metrics or CaptureMetrics()
        self._results: LatestSlot[GuidanceResult] = LatestSlot()
        self._guide_region: Optional[GuideRegion] = None
        self._performance = performance
        self._applied_level: Optional[PerformanceLevel] = None
        if performance is not None:
            self._base_working_size = self._detector.max_working_size
            self._apply_performance_level(performance.level)

    @property
    def config(self) -> GuidanceConfig:
        return self._config

    @property
    def metrics(self) -> CaptureMetrics:
        return self._metrics

    @property
    def throttle(self) -> FrameThrottle:
        return self._throttle

    @property
    def performance(self) -> Optional[PerformanceManager]:
        return self._performance

    @property
    def latest_result(self) -> Optional[GuidanceResult]:
        """Most recently published result, left in place for later readers."""
        return self._results.peek()

    def take_result(self, timeout: Optional[float] = None) -> Optional[GuidanceResult]:
        """Remove and return the latest published result."""
        return self._results.take(timeout)

    def guide_region_for(self, width: int, height: int) -> GuideRegion:
        """Guide region for a frame size, rebuilt when the size changes."""
        region = self._guide_region
        if region is None or not region.matches(width, height):
            region = GuideRegion.for_frame(width, height, self._config.guide_circle_radius)
            self._guide_region = region
            logger.debug(
                "Guide region rebuilt for %dx%d (radius %.0f px)",
                width, height, region.radius_px,
            )
        return region

    # --- Entry points ---

    def process_buffer(self, buffer: ImageBuffer) -> Optional[GuidanceResult]:
        """Process a native buffer. Returns None when the throttle drops it."""
        try:
            self._metrics.record_offered()
            if not self._throttle.accept(buffer.timestamp_ms):
                self._metrics.record_throttled()
                return None

            start = time.perf_counter()
            try:
                frame = self._adapter.to_frame(buffer)
            except FrameConversionError as e:
                logger.warning("Dropping malformed frame at %d ms: %s", buffer.timestamp_ms, e)
                self._metrics.record_malformed()
                return self._publish(self._malformed_result(buffer.timestamp_ms, start))
            self._metrics.record_stage("conversion", _elapsed_ms(start))

            return self._publish(self._evaluate(frame, start))
        finally:
            buffer.close()

    def process_frame(
        self, frame: Union[Frame, np.ndarray], timestamp_ms: int = 0
    ) -> Optional[GuidanceResult]:
        """Process an already-decoded BGR or grayscale frame."""
        if not isinstance(frame, Frame):
            frame = Frame(pixels=np.asarray(frame, dtype=np.uint8), timestamp_ms=timestamp_ms)

        self._metrics.record_offered()
        if not self._throttle.accept(frame.timestamp_ms):
            self._metrics.record_throttled()
            return None
        return self._publish(self._evaluate(frame, time.perf_counter()))

    # --- Pipeline ---

    def _evaluate(self, frame: Frame, start: float) -> GuidanceResult:
        guide_region = self.guide_region_for(frame.width, frame.height)

        detection = self._detect(frame)
        metrics = self._analyze(frame, detection)
        if metrics is None:
            detection, metrics = None, QualityMetrics.empty()

        sm = self._state_machine
        state, message = sm.evaluate(detection, metrics, guide_region)
        reasons = sm.failure_reasons(detection, metrics, guide_region)

        distance = area_ratio = centering = size = 0.0
        if detection is not None:
            distance = sm.distance_from_center(detection, guide_region)
            area_ratio = sm.area_ratio(detection, guide_region)
            centering = sm.centering_percentage(distance)
            size = sm.size_percentage(area_ratio)

        total_ms = _elapsed_ms(start)
        self._metrics.record_stage("total", total_ms)
        logger.debug("Frame %d ms -> %s", frame.timestamp_ms, state.value)
        if self._performance is not None:
            self._apply_performance_level(self._performance.record_processing_time(total_ms))

        return GuidanceResult(
            state=state,
            message=message,
            detection=detection,
            metrics=metrics,
            timestamp_ms=frame.timestamp_ms,
            hint=sm.hint(state, reasons, distance),
            failure_reasons=reasons,
            distance_from_center=distance,
            area_ratio=area_ratio,
            centering_percentage=centering,
            size_percentage=size,
            processing_time_ms=total_ms,
        )

    def _detect(self, frame: Frame) -> Optional[LesionDetection]:
        start = time.perf_counter()
        try:
            return self._detector.detect(frame)
        except Exception:
            logger.exception("Lesion detection failed at %d ms", frame.timestamp_ms)
            self._metrics.record_failure()
            return None
        finally:
            self._metrics.record_stage("detection", _elapsed_ms(start))

    def _analyze(
        self, frame: Frame, detection: Optional[LesionDetection]
    ) -> Optional[QualityMetrics]:
        region = None
        if detection is not None:
            region = detection.bounding_box.expanded(
                self._config.quality_region_expansion, frame.width, frame.height
            )

        start = time.perf_counter()
        try:
            return self._analyzer.analyze(frame, region)
        except Exception:
            logger.exception("Quality analysis failed at %d ms", frame.timestamp_ms)
            self._metrics.record_failure()
            return None
        finally:
            self._metrics.record_stage("quality", _elapsed_ms(start))

    def _malformed_result(self, timestamp_ms: int, start: float) -> GuidanceResult:
        state = GuidanceState.SEARCHING
        reasons = (ValidationFailureReason.MALFORMED_FRAME,)
        total_ms = _elapsed_ms(start)
        self._metrics.record_stage("total", total_ms)
        return GuidanceResult(
            state=state,
            message=message_for(state),
            timestamp_ms=timestamp_ms,
            hint=self._state_machine.hint(state, reasons),
            failure_reasons=reasons,
            processing_time_ms=total_ms,
        )

    def _publish(self, result: GuidanceResult) -> GuidanceResult:
        self._metrics.record_result(result.state, result.detection is not None)
        self._results.put(result)
        return result

    def _apply_performance_level(self, level: PerformanceLevel):
        """Switch analyzer and detector cost settings when the level changes."""
        if level is self._applied_level:
            return
        self._applied_level = level
        profile = PROFILES[level]
        self._analyzer.fast = not profile.advanced_filters
        self._detector.max_working_size = max(
            self._detector.config.min_frame_size,
            int(self._base_working_size * profile.processing_quality),
        )
        logger.debug(
            "Pipeline set for %s: fast quality=%s working size=%d",
            level.value, self._analyzer.fast, self._detector.max_working_size,
        )
