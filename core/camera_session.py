"""Explicit camera session handle with open/close lifecycle and zoom-state callbacks."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List

import cv2
import numpy as np

from core.utils import CameraUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ZoomState:
    """Zoom as reported by the camera."""
    ratio: float
    min_ratio: float
    max_ratio: float


ZoomStateCallback = Callable[[ZoomState], None]


class CameraSession:
    """Base camera session.

    Subclasses implement zoom_state and _apply_zoom_ratio. Observers are called
    on whatever thread reports the zoom change.
    """

    def __init__(self):
        self._observers: List[ZoomStateCallback] = []
        self._lock = threading.Lock()
        self._is_open = False

    def open(self):
        self._is_open = True
        logger.info("%s opened", type(self).__name__)

    def close(self):
        self._is_open = False
        with self._lock:
            if self._observers:
                logger.warning(
                    "%s closed with %d zoom observer(s) still registered",
                    type(self).__name__, len(self._observers),
                )
            self._observers.clear()
        logger.info("%s closed", type(self).__name__)

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def zoom_state(self) -> ZoomState:
        raise NotImplementedError

    def set_zoom_ratio(self, ratio: float):
        """Request a zoom ratio. Raises CameraUnavailableError when closed."""
        if not self._is_open:
            raise CameraUnavailableError("Camera session is not open")
        self._apply_zoom_ratio(ratio)

    def _apply_zoom_ratio(self, ratio: float):
        raise NotImplementedError

    # --- Zoom observers ---

    def observe_zoom(self, callback: ZoomStateCallback):
        with self._lock:
            if callback not in self._observers:
                self._observers.append(callback)

    def remove_zoom_observer(self, callback: ZoomStateCallback):
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def _publish_zoom(self, state: ZoomState):
        with self._lock:
            observers = list(self._observers)
        for callback in observers:
            callback(state)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class DigitalZoomSession(CameraSession):
    """Software zoom: crops the frame center by 1/ratio and scales it back up."""

    def __init__(self, min_ratio: float = 1.0, max_ratio: float = 5.0):
        super().__init__()
        if not 0 < min_ratio <= max_ratio:
            raise ValueError("zoom range must satisfy 0 < min_ratio <= max_ratio")
        self._min_ratio = min_ratio
        self._max_ratio = max_ratio
        self._ratio = min_ratio

    @property
    def zoom_state(self) -> ZoomState:
        return ZoomState(self._ratio, self._min_ratio, self._max_ratio)

    def _apply_zoom_ratio(self, ratio: float):
        ratio = min(max(ratio, self._min_ratio), self._max_ratio)
        if ratio == self._ratio:
            return
        self._ratio = ratio
        self._publish_zoom(self.zoom_state)

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        """Return the zoomed view of a frame at the current ratio."""
        ratio = self._ratio
        if ratio <= 1.0:
            return pixels
        height, width = pixels.shape[:2]
        crop_w = max(int(round(width / ratio)), 1)
        crop_h = max(int(round(height / ratio)), 1)
        x0 = (width - crop_w) // 2
        y0 = (height - crop_h) // 2
        crop = pixels[y0:y0 + crop_h, x0:x0 + crop_w]
        return cv2.resize(crop, (width, height), interpolation=cv2.INTER_LINEAR)
