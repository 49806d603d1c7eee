"""Rate limiter that admits at most one frame per interval."""

import threading
from typing import Optional


class FrameThrottle:
    """Caps processing to one frame per interval_ms of source time.

    The compare-and-update on the last accepted timestamp is done under a
    lock, so concurrent callers can never both accept the same window.
    """

    DEFAULT_INTERVAL_MS = 100

    def __init__(self, interval_ms: int = DEFAULT_INTERVAL_MS):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._interval_ms = interval_ms
        self._last_accepted_ms: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def last_accepted_ms(self) -> Optional[int]:
        return self._last_accepted_ms

    def accept(self, timestamp_ms: int) -> bool:
        """Return True and record timestamp_ms if enough time has passed."""
        with self._lock:
            last = self._last_accepted_ms
            if last is not None and timestamp_ms - last < self._interval_ms:
                return False
            self._last_accepted_ms = timestamp_ms
            return True

    def reset(self):
        with self._lock:
            self._last_accepted_ms = None
