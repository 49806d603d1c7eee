"""Shared dataclasses, enums, exceptions, logging setup, and platform-specific paths."""

import logging
import logging.handlers
import math
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

import numpy as np


# --- Type aliases ---

ResultCallback = Callable[["GuidanceResult"], None]
ZoomCallback = Callable[["ZoomInfo"], None]


# --- Exceptions ---

class MoleGuideError(Exception):
    """Base class for capture-guidance errors."""


class FrameConversionError(MoleGuideError):
    """A camera buffer could not be converted into a frame matrix."""


class ConfigurationError(MoleGuideError):
    """Guidance configuration is inconsistent. Fatal at startup."""


class CameraUnavailableError(MoleGuideError):
    """The camera session is closed or its zoom control cannot be reached."""


# --- Enums ---

class GuidanceState(Enum):
    SEARCHING = "searching"
    CENTERING = "centering"
    POOR_LIGHTING = "poor_lighting"
    READY = "ready"


class ValidationFailureReason(Enum):
    NO_LESION = "no_lesion"
    MALFORMED_FRAME = "malformed_frame"
    UNDEREXPOSED = "underexposed"
    OVEREXPOSED = "overexposed"
    BLURRY = "blurry"
    LOW_CONTRAST = "low_contrast"
    NOT_CENTERED = "not_centered"


# --- Geometry ---

@dataclass(frozen=True)
class Point:
    """A point in frame pixel coordinates."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned pixel rectangle."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return max(self.width, 0) * max(self.height, 0)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def clipped(self, frame_width: int, frame_height: int) -> "Rect":
        """Intersect with the frame bounds. May return an empty rect."""
        x0 = min(max(self.x, 0), frame_width)
        y0 = min(max(self.y, 0), frame_height)
        x1 = min(max(self.x + self.width, 0), frame_width)
        y1 = min(max(self.y + self.height, 0), frame_height)
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def expanded(self, factor: float, frame_width: int, frame_height: int) -> "Rect":
        """Scale around the center by factor, clipped to the frame."""
        cx, cy = self.center.x, self.center.y
        w = self.width * factor
        h = self.height * factor
        rect = Rect(
            int(round(cx - w / 2.0)),
            int(round(cy - h / 2.0)),
            int(round(w)),
            int(round(h)),
        )
        return rect.clipped(frame_width, frame_height)

    def scaled(self, scale: float) -> "Rect":
        return Rect(
            int(round(self.x * scale)),
            int(round(self.y * scale)),
            int(round(self.width * scale)),
            int(round(self.height * scale)),
        )


# --- Dataclasses ---

@dataclass(frozen=True)
class Frame:
    """An immutable pixel matrix with its source timestamp.

    Pixels are uint8, either (H, W) grayscale or (H, W, 3) BGR. A writeable
    array is copied on construction so the caller keeps its own array
    unchanged and writeable; the stored copy is read-only.
    """
    pixels: np.ndarray
    timestamp_ms: int = 0

    def __post_init__(self):
        pixels = self.pixels
        if pixels.flags.writeable:
            pixels = pixels.copy()
            pixels.flags.writeable = False
            object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    def is_empty(self) -> bool:
        return self.pixels.size == 0 or self.width == 0 or self.height == 0


@dataclass(frozen=True)
class GuideRegion:
    """Circular target area in normalized frame coordinates.

    The center is expressed as fractions of width and height; the radius as a
    fraction of the shorter frame side. The region is bound to the frame size
    it was computed for.
    """
    center_x: float
    center_y: float
    radius: float
    frame_width: int
    frame_height: int

    @classmethod
    def for_frame(
        cls,
        frame_width: int,
        frame_height: int,
        radius_px: float,
        center: Tuple[float, float] = (0.5, 0.5),
    ) -> "GuideRegion":
        short_side = max(min(frame_width, frame_height), 1)
        return cls(
            center_x=center[0],
            center_y=center[1],
            radius=radius_px / short_side,
            frame_width=frame_width,
            frame_height=frame_height,
        )

    @property
    def center_px(self) -> Point:
        return Point(self.center_x * self.frame_width, self.center_y * self.frame_height)

    @property
    def radius_px(self) -> float:
        return self.radius * min(self.frame_width, self.frame_height)

    @property
    def area_px(self) -> float:
        return math.pi * self.radius_px ** 2

    def matches(self, frame_width: int, frame_height: int) -> bool:
        return self.frame_width == frame_width and self.frame_height == frame_height


@dataclass(frozen=True)
class LesionDetection:
    """A lesion-like region found in a single frame."""
    center: Point
    bounding_box: Rect
    area: float
    confidence: float
    method: str = "color_contrast"


@dataclass(frozen=True)
class QualityMetrics:
    """Image quality over a region.

    sharpness is in [0, 1), brightness is mean luma in [0, 255], contrast is
    luma standard deviation scaled into [0, 1].
    """
    sharpness: float
    brightness: float
    contrast: float
    underexposed_ratio: float = 0.0
    overexposed_ratio: float = 0.0

    EXPOSURE_PIXEL_RATIO = 0.1

    @classmethod
    def empty(cls) -> "QualityMetrics":
        """Sentinel for zero-size input."""
        return cls(sharpness=0.0, brightness=0.0, contrast=0.0)

    @property
    def is_underexposed(self) -> bool:
        return self.underexposed_ratio > self.EXPOSURE_PIXEL_RATIO

    @property
    def is_overexposed(self) -> bool:
        return self.overexposed_ratio > self.EXPOSURE_PIXEL_RATIO


@dataclass(frozen=True)
class GuidanceResult:
    """Per-frame output handed to the presentation layer."""
    state: GuidanceState
    message: str
    detection: Optional[LesionDetection] = None
    metrics: Optional[QualityMetrics] = None
    timestamp_ms: int = 0
    hint: str = ""
    failure_reasons: Tuple[ValidationFailureReason, ...] = field(default_factory=tuple)
    distance_from_center: float = 0.0
    area_ratio: float = 0.0
    centering_percentage: float = 0.0
    size_percentage: float = 0.0
    processing_time_ms: float = 0.0

    @property
    def can_capture(self) -> bool:
        return self.state is GuidanceState.READY and self.detection is not None


@dataclass(frozen=True)
class ZoomInfo:
    """Snapshot of the magnification state."""
    current_level: float
    min_level: float
    max_level: float
    is_stabilization_active: bool
    is_optimal_for_small_moles: bool


# --- Platform-specific paths ---

def get_data_dir() -> Path:
    """Get the platform-specific application data directory."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / "MoleGuide"
    elif sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home())) / "MoleGuide"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "moleguide"
    base.mkdir(parents=True, exist_ok=True)
    return base


def get_logs_dir() -> Path:
    """Get the directory for rotating log files."""
    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_config_path() -> Path:
    """Get the path to the user's guidance configuration file."""
    return get_data_dir() / "guidance.json"


# --- Logging ---

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_HANDLER_NAME = "moleguide"


def configure_logging(level: str = "INFO", log_file: bool = True) -> logging.Logger:
    """Install console and rotating file handlers on the root logger.

    Safe to call more than once; existing handlers installed here are replaced.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(_LOG_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.set_name(f"{_LOG_HANDLER_NAME}.console")
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            get_logs_dir() / "moleguide.log",
            maxBytes=1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.set_name(f"{_LOG_HANDLER_NAME}.file")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


# --- Image files ---

SUPPORTED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif"}


def list_image_files(folder: str) -> list:
    """List supported image files in a folder, sorted by name."""
    path = Path(folder)
    if not path.is_dir():
        return []
    return sorted(
        p for p in path.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
    )
