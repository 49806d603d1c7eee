"""Per-session pipeline counters and stage timings."""

import threading
from typing import Dict

from core.utils import GuidanceState

STAGES = ("conversion", "detection", "quality", "total")


class CaptureMetrics:
    """Thread-safe counters for a capture session.

    The analysis worker records while a UI thread reads snapshots, so every
    access goes through one lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self):
        self._frames_offered = 0
        self._frames_throttled = 0
        self._frames_processed = 0
        self._malformed_frames = 0
        self._pipeline_failures = 0
        self._detections = 0
        self._states: Dict[GuidanceState, int] = {state: 0 for state in GuidanceState}
        self._stage_ms: Dict[str, float] = {stage: 0.0 for stage in STAGES}

    def reset(self):
        with self._lock:
            self._reset_locked()

    # --- Recording ---

    def record_offered(self):
        with self._lock:
            self._frames_offered += 1

    def record_throttled(self):
        with self._lock:
            self._frames_throttled += 1

    def record_malformed(self):
        with self._lock:
            self._malformed_frames += 1

    def record_failure(self):
        with self._lock:
            self._pipeline_failures += 1

    def record_stage(self, stage: str, elapsed_ms: float):
        if stage not in STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        with self._lock:
            self._stage_ms[stage] += elapsed_ms

    def record_result(self, state: GuidanceState, detected: bool):
        with self._lock:
            self._frames_processed += 1
            self._states[state] += 1
            if detected:
                self._detections += 1

    # --- Reading ---

    @property
    def frames_processed(self) -> int:
        with self._lock:
            return self._frames_processed

    @property
    def detection_rate(self) -> float:
        """Fraction of processed frames with a lesion detection."""
        with self._lock:
            if not self._frames_processed:
                return 0.0
            return self._detections / self._frames_processed

    @property
    def average_processing_ms(self) -> float:
        with self._lock:
            if not self._frames_processed:
                return 0.0
            return self._stage_ms["total"] / self._frames_processed

    def state_count(self, state: GuidanceState) -> int:
        with self._lock:
            return self._states[state]

    def snapshot(self) -> Dict:
        """Plain-dict copy suitable for JSON export."""
        with self._lock:
            processed = self._frames_processed
            return {
                "frames_offered": self._frames_offered,
                "frames_throttled": self._frames_throttled,
                "frames_processed": processed,
                "malformed_frames": self._malformed_frames,
                "pipeline_failures": self._pipeline_failures,
                "detections": self._detections,
                "detection_rate": self._detections / processed if processed else 0.0,
                "states": {state.value: count for state, count in self._states.items()},
                "average_stage_ms": {
                    stage: (total / processed if processed else 0.0)
                    for stage, total in self._stage_ms.items()
                },
            }
