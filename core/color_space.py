"""Conversion from native camera buffers to the BGR matrix the detector expects."""

import logging

import cv2
import numpy as np

from core.frame_source import ImageBuffer, PixelFormat, Plane
from core.utils import Frame, FrameConversionError

logger = logging.getLogger(__name__)

_PACKED_CHANNELS = {
    PixelFormat.GRAY8: 1,
    PixelFormat.RGB888: 3,
    PixelFormat.RGBA8888: 4,
    PixelFormat.BGR888: 3,
}


class ColorSpaceAdapter:
    """Turns an ImageBuffer into a Frame of (H, W, 3) uint8 BGR pixels.

    With luma_only=True only the Y (or gray) channel is decoded and the frame
    is (H, W) grayscale, matching devices that expose just the luminance plane.
    """

    def __init__(self, luma_only: bool = False):
        self._luma_only = luma_only

    def to_frame(self, buffer: ImageBuffer) -> Frame:
        """Convert buffer, raising FrameConversionError on malformed input."""
        if buffer.width <= 0 or buffer.height <= 0:
            raise FrameConversionError(f"Invalid buffer size {buffer.width}x{buffer.height}")
        if not buffer.planes:
            raise FrameConversionError("Buffer has no planes")

        fmt = buffer.pixel_format
        if fmt in _PACKED_CHANNELS:
            pixels = self._convert_packed(buffer)
        elif fmt is PixelFormat.NV21:
            pixels = self._convert_nv21(buffer)
        elif fmt is PixelFormat.YUV_420_888:
            pixels = self._convert_yuv420(buffer)
        else:
            raise FrameConversionError(f"Unsupported pixel format: {fmt}")

        return Frame(pixels=pixels, timestamp_ms=buffer.timestamp_ms)

    # --- Packed formats ---

    def _convert_packed(self, buffer: ImageBuffer) -> np.ndarray:
        channels = _PACKED_CHANNELS[buffer.pixel_format]
        plane = buffer.planes[0]
        if plane.pixel_stride != channels:
            raise FrameConversionError(
                f"{buffer.pixel_format.value} expects pixel stride {channels}, got {plane.pixel_stride}"
            )
        rows = _plane_rows(plane, buffer.height, buffer.width * channels)
        pixels = rows.reshape(buffer.height, buffer.width, channels)

        fmt = buffer.pixel_format
        if fmt is PixelFormat.GRAY8:
            gray = pixels[:, :, 0].copy()
            return gray if self._luma_only else cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)
        if fmt is PixelFormat.RGB888:
            code = cv2.COLOR_RGB2GRAY if self._luma_only else cv2.COLOR_RGB2BGR
        elif fmt is PixelFormat.RGBA8888:
            code = cv2.COLOR_RGBA2GRAY if self._luma_only else cv2.COLOR_RGBA2BGR
        else:
            if not self._luma_only:
                return pixels.copy()
            code = cv2.COLOR_BGR2GRAY
        return cv2.cvtColor(np.ascontiguousarray(pixels), code)

    # --- YUV formats ---

    def _convert_nv21(self, buffer: ImageBuffer) -> np.ndarray:
        width, height = buffer.width, buffer.height
        _require_even(width, height)
        plane = buffer.planes[0]
        rows = _plane_rows(plane, height * 3 // 2, width)
        if self._luma_only:
            return rows[:height].copy()
        return cv2.cvtColor(np.ascontiguousarray(rows), cv2.COLOR_YUV2BGR_NV21)

    def _convert_yuv420(self, buffer: ImageBuffer) -> np.ndarray:
        width, height = buffer.width, buffer.height
        y = _plane_rows(buffer.planes[0], height, width)
        if self._luma_only:
            return y.copy()

        if len(buffer.planes) < 3:
            raise FrameConversionError("YUV_420_888 needs three planes")
        _require_even(width, height)

        chroma_w, chroma_h = width // 2, height // 2
        u = _chroma_plane(buffer.planes[1], chroma_h, chroma_w)
        v = _chroma_plane(buffer.planes[2], chroma_h, chroma_w)

        i420 = np.concatenate([y.ravel(), u.ravel(), v.ravel()]).reshape(height * 3 // 2, width)
        return cv2.cvtColor(i420, cv2.COLOR_YUV2BGR_I420)


def to_gray(frame: Frame) -> np.ndarray:
    """Luma channel of a frame as an (H, W) uint8 array."""
    if frame.channels == 1:
        return frame.pixels
    return cv2.cvtColor(frame.pixels, cv2.COLOR_BGR2GRAY)


def _as_uint8(data) -> np.ndarray:
    if isinstance(data, np.ndarray):
        return data.reshape(-1).view(np.uint8) if data.dtype == np.uint8 else data.astype(np.uint8).reshape(-1)
    return np.frombuffer(data, dtype=np.uint8)


def _plane_rows(plane: Plane, rows: int, row_bytes: int) -> np.ndarray:
    """Read rows x row_bytes from a plane that may carry row padding."""
    if plane.row_stride < row_bytes:
        raise FrameConversionError(f"Row stride {plane.row_stride} is shorter than a row ({row_bytes})")
    data = _as_uint8(plane.data)
    needed = plane.row_stride * (rows - 1) + row_bytes
    if data.size < needed:
        raise FrameConversionError(f"Plane holds {data.size} bytes, expected at least {needed}")
    if data.size < plane.row_stride * rows:
        data = np.concatenate([data, np.zeros(plane.row_stride * rows - data.size, dtype=np.uint8)])
    return data[: plane.row_stride * rows].reshape(rows, plane.row_stride)[:, :row_bytes]


def _chroma_plane(plane: Plane, rows: int, cols: int) -> np.ndarray:
    if plane.pixel_stride not in (1, 2):
        raise FrameConversionError(f"Unsupported chroma pixel stride {plane.pixel_stride}")
    span = (cols - 1) * plane.pixel_stride + 1
    block = _plane_rows(plane, rows, span)
    return np.ascontiguousarray(block[:, :: plane.pixel_stride])


def _require_even(width: int, height: int):
    if width % 2 or height % 2:
        raise FrameConversionError(f"YUV 4:2:0 needs even dimensions, got {width}x{height}")
