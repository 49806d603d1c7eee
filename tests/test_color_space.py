"""Tests for core.color_space module."""

import cv2
import numpy as np
import pytest

from core.color_space import ColorSpaceAdapter, to_gray
from core.frame_source import ImageBuffer, PixelFormat, Plane
from core.utils import Frame, FrameConversionError

W, H = 64, 48
COLOR_BGR = (120, 150, 190)


def _uniform_bgr():
    img = np.empty((H, W, 3), dtype=np.uint8)
    img[:] = COLOR_BGR
    return img


def _i420_planes(bgr):
    i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420).ravel()
    y = i420[: W * H]
    u = i420[W * H: W * H + W * H // 4].reshape(H // 2, W // 2)
    v = i420[W * H + W * H // 4:].reshape(H // 2, W // 2)
    return y, u, v


def _assert_close(pixels, expected, tol=3):
    diff = np.abs(pixels.astype(int) - np.array(expected, dtype=int))
    assert diff.max() <= tol


class TestPackedFormats:
    def test_bgr_passthrough(self):
        bgr = _uniform_bgr()
        frame = ColorSpaceAdapter().to_frame(ImageBuffer.from_array(bgr, 7))
        assert frame.pixels.shape == (H, W, 3)
        assert frame.timestamp_ms == 7
        assert np.array_equal(frame.pixels, bgr)

    def test_rgb_is_swapped(self):
        rgb = _uniform_bgr()[:, :, ::-1]
        frame = ColorSpaceAdapter().to_frame(ImageBuffer.from_array(rgb, 0, PixelFormat.RGB888))
        assert tuple(frame.pixels[0, 0]) == COLOR_BGR

    def test_rgba_drops_alpha(self):
        rgba = np.dstack([_uniform_bgr()[:, :, ::-1], np.full((H, W), 255, dtype=np.uint8)])
        frame = ColorSpaceAdapter().to_frame(ImageBuffer.from_array(rgba, 0, PixelFormat.RGBA8888))
        assert frame.channels == 3
        assert tuple(frame.pixels[5, 5]) == COLOR_BGR

    def test_gray_expands_to_bgr(self):
        gray = np.full((H, W), 90, dtype=np.uint8)
        frame = ColorSpaceAdapter().to_frame(ImageBuffer.from_array(gray, 0, PixelFormat.GRAY8))
        assert frame.pixels.shape == (H, W, 3)
        assert (frame.pixels == 90).all()

    def test_row_padding(self):
        bgr = _uniform_bgr()
        stride = W * 3 + 16
        padded = np.zeros((H, stride), dtype=np.uint8)
        padded[:, : W * 3] = bgr.reshape(H, W * 3)
        buffer = ImageBuffer(W, H, PixelFormat.BGR888, (Plane(padded.tobytes(), stride, 3),), 0)
        frame = ColorSpaceAdapter().to_frame(buffer)
        assert np.array_equal(frame.pixels, bgr)

    @pytest.mark.parametrize("luma_only", [False, True])
    def test_gray_frame_does_not_alias_buffer(self, luma_only):
        plane_data = np.full(H * W, 90, dtype=np.uint8)
        buffer = ImageBuffer(W, H, PixelFormat.GRAY8, (Plane(plane_data, W, 1),), 0)
        frame = ColorSpaceAdapter(luma_only=luma_only).to_frame(buffer)
        assert not np.shares_memory(frame.pixels, plane_data)

        plane_data[:] = 0
        assert (frame.pixels == 90).all()

    def test_luma_only(self):
        frame = ColorSpaceAdapter(luma_only=True).to_frame(ImageBuffer.from_array(_uniform_bgr(), 0))
        assert frame.pixels.ndim == 2
        _assert_close(frame.pixels, cv2.cvtColor(_uniform_bgr(), cv2.COLOR_BGR2GRAY)[0, 0], tol=0)


class TestYuvFormats:
    def test_yuv420_planar(self):
        y, u, v = _i420_planes(_uniform_bgr())
        buffer = ImageBuffer(W, H, PixelFormat.YUV_420_888, (
            Plane(y.tobytes(), W, 1),
            Plane(u.tobytes(), W // 2, 1),
            Plane(v.tobytes(), W // 2, 1),
        ), 0)
        frame = ColorSpaceAdapter().to_frame(buffer)
        assert frame.pixels.shape == (H, W, 3)
        _assert_close(frame.pixels, COLOR_BGR)

    def test_yuv420_semi_planar(self):
        y, u, v = _i420_planes(_uniform_bgr())
        uv = np.empty((H // 2, W), dtype=np.uint8)
        uv[:, 0::2] = u
        uv[:, 1::2] = v
        flat = uv.ravel()
        buffer = ImageBuffer(W, H, PixelFormat.YUV_420_888, (
            Plane(y.tobytes(), W, 1),
            Plane(flat[:-1].tobytes(), W, 2),
            Plane(flat[1:].tobytes(), W, 2),
        ), 0)
        frame = ColorSpaceAdapter().to_frame(buffer)
        _assert_close(frame.pixels, COLOR_BGR)

    def test_nv21(self):
        y, u, v = _i420_planes(_uniform_bgr())
        vu = np.empty((H // 2, W), dtype=np.uint8)
        vu[:, 0::2] = v
        vu[:, 1::2] = u
        data = np.concatenate([y, vu.ravel()]).tobytes()
        buffer = ImageBuffer(W, H, PixelFormat.NV21, (Plane(data, W, 1),), 0)
        frame = ColorSpaceAdapter().to_frame(buffer)
        _assert_close(frame.pixels, COLOR_BGR)

    def test_nv21_luma_only_returns_y_plane(self):
        y, u, v = _i420_planes(_uniform_bgr())
        data = np.concatenate([y, np.full(W * H // 2, 128, dtype=np.uint8)]).tobytes()
        buffer = ImageBuffer(W, H, PixelFormat.NV21, (Plane(data, W, 1),), 0)
        frame = ColorSpaceAdapter(luma_only=True).to_frame(buffer)
        assert np.array_equal(frame.pixels, y.reshape(H, W))


class TestMalformedBuffers:
    def test_zero_size(self):
        buffer = ImageBuffer(0, 10, PixelFormat.BGR888, (Plane(b"", 0, 3),), 0)
        with pytest.raises(FrameConversionError):
            ColorSpaceAdapter().to_frame(buffer)

    def test_no_planes(self):
        with pytest.raises(FrameConversionError):
            ColorSpaceAdapter().to_frame(ImageBuffer(W, H, PixelFormat.BGR888, (), 0))

    def test_truncated_data(self):
        buffer = ImageBuffer(W, H, PixelFormat.BGR888, (Plane(b"\x00" * 100, W * 3, 3),), 0)
        with pytest.raises(FrameConversionError, match="expected at least"):
            ColorSpaceAdapter().to_frame(buffer)

    def test_wrong_pixel_stride(self):
        buffer = ImageBuffer(W, H, PixelFormat.RGBA8888, (Plane(b"\x00" * (W * H * 3), W * 3, 3),), 0)
        with pytest.raises(FrameConversionError):
            ColorSpaceAdapter().to_frame(buffer)

    def test_odd_dimensions_for_yuv(self):
        data = b"\x00" * (63 * 47 * 2)
        buffer = ImageBuffer(63, 47, PixelFormat.NV21, (Plane(data, 63, 1),), 0)
        with pytest.raises(FrameConversionError, match="even"):
            ColorSpaceAdapter().to_frame(buffer)

    def test_yuv420_missing_chroma(self):
        buffer = ImageBuffer(W, H, PixelFormat.YUV_420_888, (Plane(b"\x00" * W * H, W, 1),), 0)
        with pytest.raises(FrameConversionError, match="three planes"):
            ColorSpaceAdapter().to_frame(buffer)


class TestToGray:
    def test_bgr(self):
        gray = to_gray(Frame(_uniform_bgr()))
        assert gray.shape == (H, W)

    def test_gray_passthrough(self):
        pixels = np.full((H, W), 33, dtype=np.uint8)
        assert to_gray(Frame(pixels)) is pixels
