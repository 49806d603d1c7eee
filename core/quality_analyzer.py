"""Sharpness, brightness, contrast and exposure metrics over a frame region."""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from core.color_space import to_gray
from core.utils import Frame, QualityMetrics, Rect

logger = logging.getLogger(__name__)

# Mean squared Sobel gradient (Tenengrad) at which sharpness reads 0.5.
TENENGRAD_HALF_SCALE = 1000.0
# Mean Sobel magnitude at which sharpness reads 0.5 in fast mode.
SOBEL_HALF_SCALE = 20.0
# Luma standard deviation that maps to contrast 1.0.
CONTRAST_SCALE = 128.0

UNDEREXPOSED_LUMA = 30
OVEREXPOSED_LUMA = 240


@dataclass(frozen=True)
class HistogramAnalysis:
    """Luma histogram summary."""
    distribution: np.ndarray
    peak: int
    is_well_distributed: bool


class QualityAnalyzer:
    """Computes QualityMetrics over a frame or a sub-region of it.

    sharpness = v / (v + k), where v is the Tenengrad gradient energy (or the
    cheaper mean Sobel magnitude when fast=True). It falls as the image is
    blurred. brightness is the mean luma; contrast is the luma standard
    deviation over CONTRAST_SCALE, capped at 1. The fast flag may be switched
    between frames by the performance manager.
    """

    def __init__(self, fast: bool = False):
        self._fast = fast

    @property
    def fast(self) -> bool:
        return self._fast

    @fast.setter
    def fast(self, value: bool):
        self._fast = bool(value)

    def analyze(self, frame: Frame, region: Optional[Rect] = None) -> QualityMetrics:
        if frame.is_empty():
            return QualityMetrics.empty()

        gray = to_gray(frame)
        if region is not None:
            region = region.clipped(frame.width, frame.height)
            if region.is_empty():
                logger.debug("Quality region is empty after clipping")
                return QualityMetrics.empty()
            gray = gray[region.y:region.y + region.height, region.x:region.x + region.width]

        gray = np.ascontiguousarray(gray)
        mean, std = cv2.meanStdDev(gray)
        brightness = float(mean[0][0])
        contrast = min(float(std[0][0]) / CONTRAST_SCALE, 1.0)
        sharpness = self._sharpness_sobel(gray) if self._fast else self._sharpness_tenengrad(gray)

        total = float(gray.size)
        underexposed = float(np.count_nonzero(gray < UNDEREXPOSED_LUMA)) / total
        overexposed = float(np.count_nonzero(gray > OVEREXPOSED_LUMA)) / total

        return QualityMetrics(
            sharpness=sharpness,
            brightness=brightness,
            contrast=contrast,
            underexposed_ratio=underexposed,
            overexposed_ratio=overexposed,
        )

    @staticmethod
    def _sharpness_tenengrad(gray: np.ndarray) -> float:
        luma = gray.astype(np.float32)
        gx = cv2.Sobel(luma, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(luma, cv2.CV_32F, 0, 1, ksize=3)
        energy = float(np.mean(gx * gx + gy * gy))
        return energy / (energy + TENENGRAD_HALF_SCALE)

    @staticmethod
    def _sharpness_sobel(gray: np.ndarray) -> float:
        gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = float(cv2.magnitude(gx, gy).mean())
        return magnitude / (magnitude + SOBEL_HALF_SCALE)

    @staticmethod
    def analyze_histogram(frame: Frame) -> HistogramAnalysis:
        """Histogram peak and whether every luma quarter holds at least 5% of pixels."""
        if frame.is_empty():
            return HistogramAnalysis(np.zeros(256, dtype=np.float32), 0, False)

        gray = np.ascontiguousarray(to_gray(frame))
        hist = cv2.calcHist([gray], [0], None, [256], [0, 256]).ravel()
        total = float(hist.sum())

        well_distributed = total > 0 and all(
            hist[start:start + 64].sum() / total >= 0.05 for start in range(0, 256, 64)
        )
        return HistogramAnalysis(
            distribution=hist,
            peak=int(np.argmax(hist)),
            is_well_distributed=bool(well_distributed),
        )
