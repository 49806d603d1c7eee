"""Background worker that runs the guidance pipeline off the camera thread."""

import logging
import threading
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from core.capture_coordinator import CaptureCoordinator
from core.frame_source import ImageBuffer, LatestSlot
from core.utils import GuidanceResult

logger = logging.getLogger(__name__)


class GuidanceWorker(QThread):
    """Single serialized analysis worker.

    The camera thread calls submit() with every buffer; only the newest
    pending buffer is kept and older ones are released unprocessed.

    result_ready carries no payload and is not re-emitted until the receiver
    calls latest_result(), so at most one notification waits in the Qt event
    queue no matter how fast results are produced.
    """

    result_ready = pyqtSignal()        # read latest_result()
    error = pyqtSignal(str)            # error message

    def __init__(self, coordinator: Optional[CaptureCoordinator] = None, parent=None):
        super().__init__(parent)
        self._coordinator = coordinator or CaptureCoordinator()
        self._pending: LatestSlot[ImageBuffer] = LatestSlot()
        self._dropped = 0
        self._notify_lock = threading.Lock()
        self._notified = False

    @property
    def coordinator(self) -> CaptureCoordinator:
        return self._coordinator

    @property
    def frames_dropped(self) -> int:
        """Buffers released without analysis because a newer one arrived."""
        return self._dropped

    def latest_result(self) -> Optional[GuidanceResult]:
        """Newest published result. Re-arms result_ready."""
        with self._notify_lock:
            self._notified = False
        return self._coordinator.latest_result

    def submit(self, buffer: ImageBuffer) -> bool:
        """Offer a buffer for analysis. Safe to call from any thread."""
        displaced = self._pending.put(buffer)
        if displaced is buffer:
            buffer.close()
            return False
        if displaced is not None:
            self._dropped += 1
            displaced.close()
        return True

    def run(self):
        logger.info("Guidance worker started")
        while True:
            buffer = self._pending.take()
            if buffer is None:
                if self._pending.closed:
                    break
                continue
            error = None
            try:
                result = self._coordinator.process_buffer(buffer)
            except Exception as e:
                logger.exception("Guidance pipeline failed")
                result, error = None, f"Guidance failed: {str(e)}"
            finally:
                buffer.close()

            if error is not None:
                self.error.emit(error)
            elif result is not None:
                self._notify()
        logger.info("Guidance worker stopped (%d frames dropped)", self._dropped)

    def _notify(self):
        with self._notify_lock:
            if self._notified:
                return
            self._notified = True
        self.result_ready.emit()

    def stop(self, timeout_ms: int = 2000) -> bool:
        """Stop accepting frames, release the pending one, and join the thread."""
        pending = self._pending.close()
        if pending is not None:
            pending.close()
        if self.isRunning():
            return self.wait(timeout_ms)
        return True
