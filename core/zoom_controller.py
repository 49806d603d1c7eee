"""Magnification control with a derived stabilization flag for small lesions."""

import logging
import threading
from typing import List, Optional

from core.camera_session import CameraSession, ZoomState
from core.config import GuidanceConfig
from core.utils import CameraUnavailableError, ZoomCallback, ZoomInfo

logger = logging.getLogger(__name__)


class ZoomController:
    """Tracks and adjusts the camera zoom level.

    The controller subscribes to the session's zoom-state callbacks in
    initialize() and must be detached with cleanup() before the session is
    closed. Every change is republished as a ZoomInfo to listeners.
    """

    def __init__(self, session: CameraSession, config: Optional[GuidanceConfig] = None):
        self._session = session
        self._config = (config or GuidanceConfig()).validate()
        self._lock = threading.RLock()
        self._attached = False
        self._min_level = self._config.min_zoom
        self._max_level = self._config.max_zoom
        self._current_level = self._config.min_zoom
        self._listeners: List[ZoomCallback] = []

    # --- Lifecycle ---

    def initialize(self):
        """Attach to the camera session and adopt its current zoom state."""
        if self._attached:
            return
        self._session.observe_zoom(self._on_zoom_state)
        self._attached = True
        try:
            state = self._session.zoom_state
        except NotImplementedError:
            state = None
        if state is not None:
            self._on_zoom_state(state)
        logger.info("ZoomController attached to %s", type(self._session).__name__)

    def cleanup(self):
        """Unregister from the camera session."""
        if not self._attached:
            return
        self._session.remove_zoom_observer(self._on_zoom_state)
        self._attached = False
        logger.info("ZoomController detached")

    # --- Listeners ---

    def add_listener(self, callback: ZoomCallback):
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback: ZoomCallback):
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    # --- Commands ---

    def set_level(self, level: float) -> bool:
        """Clamp level to the supported range and apply it.

        Returns False only when the camera control cannot be reached.
        """
        if not self._attached:
            logger.warning("Zoom requested before the controller was initialized")
            return False

        clamped = self._clamp(level)
        try:
            self._session.set_zoom_ratio(clamped)
        except CameraUnavailableError:
            logger.exception("Cannot set zoom to %.2fx", clamped)
            return False

        self._update_level(clamped)
        logger.debug("Zoom set to %.2fx", clamped)
        return True

    def zoom_in(self) -> bool:
        return self.set_level(self._current_level + self._config.zoom_step)

    def zoom_out(self) -> bool:
        return self.set_level(self._current_level - self._config.zoom_step)

    def reset(self) -> bool:
        return self.set_level(self._min_level)

    def set_optimal_for_small_moles(self) -> bool:
        return self.set_level(min(self._config.optimal_zoom, self._max_level))

    # --- State ---

    @property
    def current_level(self) -> float:
        return self._current_level

    @property
    def min_level(self) -> float:
        return self._min_level

    @property
    def max_level(self) -> float:
        return self._max_level

    @property
    def is_stabilization_active(self) -> bool:
        return self._current_level >= self._config.stabilization_threshold

    @property
    def is_optimal_for_small_moles(self) -> bool:
        return self._current_level >= self._config.small_lesion_zoom_threshold

    @property
    def zoom_info(self) -> ZoomInfo:
        with self._lock:
            return ZoomInfo(
                current_level=self._current_level,
                min_level=self._min_level,
                max_level=self._max_level,
                is_stabilization_active=self.is_stabilization_active,
                is_optimal_for_small_moles=self.is_optimal_for_small_moles,
            )

    # --- Internals ---

    def _clamp(self, level: float) -> float:
        return round(min(max(level, self._min_level), self._max_level), 4)

    def _on_zoom_state(self, state: ZoomState):
        with self._lock:
            self._min_level = max(state.min_ratio, self._config.min_zoom)
            self._max_level = max(min(state.max_ratio, self._config.max_zoom), self._min_level)
        self._update_level(self._clamp(state.ratio), force_publish=True)

    def _update_level(self, level: float, force_publish: bool = False):
        with self._lock:
            was_stabilizing = self.is_stabilization_active
            changed = level != self._current_level
            self._current_level = level
            stabilizing = self.is_stabilization_active
            info = self.zoom_info
            listeners = list(self._listeners)

        if stabilizing != was_stabilizing:
            logger.debug(
                "Stabilization %s at %.2fx", "enabled" if stabilizing else "disabled", level
            )
        if changed or force_publish:
            for callback in listeners:
                callback(info)
