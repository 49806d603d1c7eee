"""Runtime performance level derived from recent processing times."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Dict

logger = logging.getLogger(__name__)


class PerformanceLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"


_SEVERITY = {
    PerformanceLevel.HIGH: 0,
    PerformanceLevel.MEDIUM: 1,
    PerformanceLevel.LOW: 2,
    PerformanceLevel.MINIMAL: 3,
}


@dataclass(frozen=True)
class PerformanceProfile:
    """What the pipeline may spend at a given level."""
    processing_quality: float
    advanced_filters: bool


PROFILES = {
    PerformanceLevel.HIGH: PerformanceProfile(processing_quality=1.0, advanced_filters=True),
    PerformanceLevel.MEDIUM: PerformanceProfile(processing_quality=0.8, advanced_filters=True),
    PerformanceLevel.LOW: PerformanceProfile(processing_quality=0.6, advanced_filters=False),
    PerformanceLevel.MINIMAL: PerformanceProfile(processing_quality=0.4, advanced_filters=False),
}


class PerformanceManager:
    """Tracks the last `window` frame processing times and picks a level.

    The average over the window maps to HIGH, MEDIUM (above medium_ms) or LOW
    (above low_ms). An external floor, such as a thermal or battery report,
    can hold the level at MINIMAL or any other level regardless of timing;
    the more degraded of the two wins.
    """

    DEFAULT_WINDOW = 10

    def __init__(
        self,
        window: int = DEFAULT_WINDOW,
        medium_ms: float = 300.0,
        low_ms: float = 500.0,
    ):
        if window <= 0:
            raise ValueError("window must be positive")
        if not 0 < medium_ms <= low_ms:
            raise ValueError("thresholds must satisfy 0 < medium_ms <= low_ms")
        self._times = deque(maxlen=window)
        self._medium_ms = medium_ms
        self._low_ms = low_ms
        self._floor = PerformanceLevel.HIGH
        self._level = PerformanceLevel.HIGH
        self._lock = threading.Lock()

    @property
    def level(self) -> PerformanceLevel:
        with self._lock:
            return self._level

    @property
    def profile(self) -> PerformanceProfile:
        return PROFILES[self.level]

    @property
    def average_processing_ms(self) -> float:
        with self._lock:
            return self._average_locked()

    @property
    def fast_mode(self) -> bool:
        """True when the cheaper quality measures should be used."""
        return not self.profile.advanced_filters

    def record_processing_time(self, elapsed_ms: float) -> PerformanceLevel:
        with self._lock:
            self._times.append(float(elapsed_ms))
            return self._update_locked()

    def set_floor(self, level: PerformanceLevel) -> PerformanceLevel:
        """Keep the level at least as degraded as `level`. HIGH lifts the floor."""
        with self._lock:
            self._floor = level
            return self._update_locked()

    def reset(self):
        with self._lock:
            self._times.clear()
            self._floor = PerformanceLevel.HIGH
            self._level = PerformanceLevel.HIGH

    def stats(self) -> Dict:
        with self._lock:
            profile = PROFILES[self._level]
            return {
                "level": self._level.value,
                "floor": self._floor.value,
                "samples": len(self._times),
                "average_processing_ms": self._average_locked(),
                "processing_quality": profile.processing_quality,
                "advanced_filters": profile.advanced_filters,
            }

    def _average_locked(self) -> float:
        if not self._times:
            return 0.0
        return sum(self._times) / len(self._times)

    def _update_locked(self) -> PerformanceLevel:
        average = self._average_locked()
        if average > self._low_ms:
            timed = PerformanceLevel.LOW
        elif average > self._medium_ms:
            timed = PerformanceLevel.MEDIUM
        else:
            timed = PerformanceLevel.HIGH

        level = max(timed, self._floor, key=_SEVERITY.__getitem__)
        if level is not self._level:
            logger.info(
                "Performance level %s -> %s (avg %.0f ms)",
                self._level.value, level.value, average,
            )
            self._level = level
        return level
