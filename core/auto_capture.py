"""Fires a capture callback once READY has been held for a fixed delay."""

import logging
from typing import Callable, Optional

from core.utils import GuidanceResult, GuidanceState

logger = logging.getLogger(__name__)


class AutoCaptureTrigger:
    """Countdown driven by GuidanceResult timestamps.

    Any non-READY result cancels the countdown. After firing, the trigger
    stays quiet until READY is lost and regained.
    """

    def __init__(
        self,
        delay_ms: int = 3000,
        enabled: bool = True,
        on_capture: Optional[Callable[[GuidanceResult], None]] = None,
    ):
        if delay_ms < 0:
            raise ValueError("delay_ms must be non-negative")
        self._delay_ms = delay_ms
        self._enabled = enabled
        self._on_capture = on_capture
        self._ready_since_ms: Optional[int] = None
        self._fired = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool):
        self._enabled = enabled
        if not enabled:
            self.cancel()

    @property
    def is_counting(self) -> bool:
        return self._ready_since_ms is not None and not self._fired

    def cancel(self):
        if self.is_counting:
            logger.debug("Auto-capture countdown cancelled")
        self._ready_since_ms = None
        self._fired = False

    def remaining_ms(self, now_ms: int) -> Optional[int]:
        """Milliseconds left in the countdown, or None when not counting."""
        if not self.is_counting:
            return None
        return max(self._delay_ms - (now_ms - self._ready_since_ms), 0)

    def update(self, result: GuidanceResult) -> bool:
        """Feed one result. Returns True when this result fires the capture."""
        if not self._enabled:
            return False
        if result.state is not GuidanceState.READY or not result.can_capture:
            self.cancel()
            return False

        if self._ready_since_ms is None:
            self._ready_since_ms = result.timestamp_ms
            logger.debug("Auto-capture countdown started at %d ms", result.timestamp_ms)
        if self._fired or result.timestamp_ms - self._ready_since_ms < self._delay_ms:
            return False

        self._fired = True
        logger.info("Auto-capture fired after %d ms of READY", result.timestamp_ms - self._ready_since_ms)
        if self._on_capture is not None:
            self._on_capture(result)
        return True
