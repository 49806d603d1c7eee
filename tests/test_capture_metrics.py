"""Tests for core.capture_metrics module."""

import threading

import pytest

from core.capture_metrics import CaptureMetrics
from core.utils import GuidanceState


class TestCounters:
    def test_empty(self):
        m = CaptureMetrics()
        assert m.detection_rate == 0.0
        assert m.average_processing_ms == 0.0
        snap = m.snapshot()
        assert snap["frames_processed"] == 0
        assert set(snap["states"]) == {s.value for s in GuidanceState}

    def test_detection_rate(self):
        m = CaptureMetrics()
        m.record_result(GuidanceState.READY, True)
        m.record_result(GuidanceState.SEARCHING, False)
        m.record_result(GuidanceState.CENTERING, True)
        m.record_result(GuidanceState.SEARCHING, False)
        assert m.detection_rate == pytest.approx(0.5)
        assert m.state_count(GuidanceState.SEARCHING) == 2

    def test_average_processing(self):
        m = CaptureMetrics()
        for ms in (10.0, 30.0):
            m.record_stage("total", ms)
            m.record_result(GuidanceState.READY, True)
        assert m.average_processing_ms == pytest.approx(20.0)
        assert m.snapshot()["average_stage_ms"]["total"] == pytest.approx(20.0)

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            CaptureMetrics().record_stage("upload", 1.0)

    def test_reset(self):
        m = CaptureMetrics()
        m.record_offered()
        m.record_throttled()
        m.record_malformed()
        m.record_failure()
        m.record_result(GuidanceState.READY, True)
        m.reset()
        snap = m.snapshot()
        assert snap["frames_offered"] == 0
        assert snap["frames_throttled"] == 0
        assert snap["malformed_frames"] == 0
        assert snap["pipeline_failures"] == 0
        assert snap["states"]["ready"] == 0


class TestThreadSafety:
    def test_concurrent_recording(self):
        m = CaptureMetrics()

        def work():
            for _ in range(1000):
                m.record_offered()
                m.record_result(GuidanceState.CENTERING, True)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = m.snapshot()
        assert snap["frames_offered"] == 4000
        assert snap["states"]["centering"] == 4000
