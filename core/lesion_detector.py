"""Lesion localization in a single frame.

The primary method thresholds pixels that are darker than, or differently
coloured from, the frame's median skin tone in Lab space, then keeps the
contour that looks most like a mole. When that finds nothing an adaptive
threshold on luma is tried. Confidence rises with colour distinctiveness from
the surrounding ring, gradient strength along the boundary, and shape
regularity.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

import cv2
import numpy as np

from core.utils import Frame, LesionDetection, Point, Rect

logger = logging.getLogger(__name__)

# Lab distance between lesion and surrounding skin that scores full colour confidence.
COLOR_DISTANCE_SCALE = 40.0
# Mean Sobel magnitude along the boundary that scores full edge confidence.
EDGE_STRENGTH_SCALE = 80.0

COLOR_WEIGHT = 0.45
EDGE_WEIGHT = 0.35
SHAPE_WEIGHT = 0.20


@dataclass(frozen=True)
class DetectionConfig:
    """Tuning for the detector. Area bounds are fractions of the frame area."""
    min_frame_size: int = 100
    max_working_size: int = 640
    min_area_ratio: float = 0.0005
    max_area_ratio: float = 0.25
    min_compactness: float = 0.1
    min_solidity: float = 0.3
    min_aspect_ratio: float = 0.15
    max_aspect_ratio: float = 3.0
    min_confidence: float = 0.5
    max_candidates: int = 5
    darkness_ratio: float = 0.2
    min_darkness_delta: float = 10.0
    chroma_delta: float = 18.0
    blur_size: int = 5
    morph_size: int = 5
    enable_fallback: bool = True


@dataclass(frozen=True)
class _ShapeFeatures:
    area: float
    compactness: float
    solidity: float
    bounding_box: Rect
    center: Point


class LesionDetector:
    """Finds the most lesion-like region in a frame, or None.

    detect() is a pure function of the frame and the current configuration.
    Only the working size may change at runtime, between frames.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self._config = config or DetectionConfig()

    @property
    def config(self) -> DetectionConfig:
        return self._config

    @property
    def max_working_size(self) -> int:
        return self._config.max_working_size

    @max_working_size.setter
    def max_working_size(self, size: int):
        if size < self._config.min_frame_size:
            raise ValueError(f"max_working_size must be at least {self._config.min_frame_size}")
        if size != self._config.max_working_size:
            self._config = replace(self._config, max_working_size=int(size))

    def detect(self, frame: Frame) -> Optional[LesionDetection]:
        cfg = self._config
        if frame.is_empty() or frame.width < cfg.min_frame_size or frame.height < cfg.min_frame_size:
            logger.debug("Frame %dx%d too small for detection", frame.width, frame.height)
            return None

        work, scale = self._working_image(frame)
        lab = cv2.cvtColor(work, cv2.COLOR_BGR2LAB)
        gray = cv2.cvtColor(work, cv2.COLOR_BGR2GRAY)

        candidates = self._evaluate_contours(self._contrast_mask(lab), lab, gray, "color_contrast")
        if not candidates and cfg.enable_fallback:
            candidates = self._evaluate_contours(
                self._adaptive_mask(gray), lab, gray, "adaptive_threshold"
            )

        if not candidates:
            logger.debug("No lesion candidates in frame")
            return None

        best = max(candidates, key=lambda d: d.confidence)
        if best.confidence < cfg.min_confidence:
            logger.debug("Best candidate confidence %.2f below threshold", best.confidence)
            return None

        if scale != 1.0:
            best = self._rescale(best, 1.0 / scale)
        logger.debug(
            "Lesion at (%.0f, %.0f) area=%.0f confidence=%.2f method=%s",
            best.center.x, best.center.y, best.area, best.confidence, best.method,
        )
        return best

    # --- Preprocessing ---

    def _working_image(self, frame: Frame) -> Tuple[np.ndarray, float]:
        """BGR image downscaled so the long side fits max_working_size, then smoothed."""
        cfg = self._config
        bgr = frame.pixels
        if frame.channels == 1:
            bgr = cv2.cvtColor(bgr, cv2.COLOR_GRAY2BGR)
        elif frame.channels == 4:
            bgr = cv2.cvtColor(bgr, cv2.COLOR_BGRA2BGR)

        scale = min(1.0, cfg.max_working_size / float(max(frame.width, frame.height)))
        if scale < 1.0:
            bgr = cv2.resize(bgr, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)

        if cfg.blur_size > 1:
            bgr = cv2.GaussianBlur(bgr, (cfg.blur_size, cfg.blur_size), 0)
        return bgr, scale

    def _contrast_mask(self, lab: np.ndarray) -> np.ndarray:
        """Pixels notably darker than, or chromatically distinct from, median skin."""
        cfg = self._config
        lightness = lab[:, :, 0].astype(np.float32)
        a = lab[:, :, 1].astype(np.float32)
        b = lab[:, :, 2].astype(np.float32)

        bg_l = float(np.median(lightness))
        bg_a = float(np.median(a))
        bg_b = float(np.median(b))

        threshold = max(cfg.min_darkness_delta, cfg.darkness_ratio * bg_l)
        darker = (bg_l - lightness) > threshold
        chroma = np.hypot(a - bg_a, b - bg_b) > cfg.chroma_delta

        mask = (darker | chroma).astype(np.uint8) * 255
        return self._clean_mask(mask, cfg.morph_size)

    def _adaptive_mask(self, gray: np.ndarray) -> np.ndarray:
        binary = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV, 31, 7
        )
        return self._clean_mask(binary, 3)

    @staticmethod
    def _clean_mask(mask: np.ndarray, size: int) -> np.ndarray:
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)
        return cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)

    # --- Candidate evaluation ---

    def _evaluate_contours(
        self, mask: np.ndarray, lab: np.ndarray, gray: np.ndarray, method: str
    ) -> List[LesionDetection]:
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return []

        contours = sorted(contours, key=cv2.contourArea, reverse=True)[: self._config.max_candidates]
        frame_area = float(mask.shape[0] * mask.shape[1])
        gradient = None
        detections = []

        for contour in contours:
            shape = self._shape_features(contour, frame_area)
            if shape is None:
                continue
            if gradient is None:
                gradient = _gradient_magnitude(gray)

            color_score = self._color_score(contour, shape.bounding_box, lab)
            edge_score = self._edge_score(contour, shape.bounding_box, gradient)
            shape_score = 0.5 * min(shape.compactness, 1.0) + 0.5 * shape.solidity
            confidence = (
                COLOR_WEIGHT * color_score
                + EDGE_WEIGHT * edge_score
                + SHAPE_WEIGHT * shape_score
            )
            detections.append(LesionDetection(
                center=shape.center,
                bounding_box=shape.bounding_box,
                area=shape.area,
                confidence=float(min(max(confidence, 0.0), 1.0)),
                method=method,
            ))
        return detections

    def _shape_features(self, contour: np.ndarray, frame_area: float) -> Optional[_ShapeFeatures]:
        cfg = self._config
        area = cv2.contourArea(contour)
        if area < cfg.min_area_ratio * frame_area or area > cfg.max_area_ratio * frame_area:
            return None

        perimeter = cv2.arcLength(contour, True)
        if perimeter <= 0:
            return None
        compactness = 4 * math.pi * area / (perimeter * perimeter)
        if compactness < cfg.min_compactness:
            return None

        hull_area = cv2.contourArea(cv2.convexHull(contour))
        solidity = area / hull_area if hull_area > 0 else 0.0
        if solidity < cfg.min_solidity:
            return None

        x, y, w, h = cv2.boundingRect(contour)
        aspect = w / float(h) if h else 0.0
        if aspect < cfg.min_aspect_ratio or aspect > cfg.max_aspect_ratio:
            return None

        moments = cv2.moments(contour)
        if moments["m00"] == 0:
            return None
        center = Point(moments["m10"] / moments["m00"], moments["m01"] / moments["m00"])

        return _ShapeFeatures(
            area=float(area),
            compactness=float(compactness),
            solidity=float(min(solidity, 1.0)),
            bounding_box=Rect(int(x), int(y), int(w), int(h)),
            center=center,
        )

    @staticmethod
    def _color_score(contour: np.ndarray, box: Rect, lab: np.ndarray) -> float:
        """Lab distance between the region and a ring of surrounding skin."""
        ring = max(3, int(round(0.5 * math.sqrt(box.area))))
        roi = Rect(box.x - ring, box.y - ring, box.width + 2 * ring, box.height + 2 * ring)
        roi = roi.clipped(lab.shape[1], lab.shape[0])
        if roi.is_empty():
            return 0.0

        inside = np.zeros((roi.height, roi.width), dtype=np.uint8)
        cv2.drawContours(inside, [contour], -1, 255, thickness=cv2.FILLED, offset=(-roi.x, -roi.y))
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (2 * ring + 1, 2 * ring + 1))
        outside = cv2.subtract(cv2.dilate(inside, kernel), inside)
        if not inside.any() or not outside.any():
            return 0.0

        patch = lab[roi.y:roi.y + roi.height, roi.x:roi.x + roi.width]
        mean_in = np.array(cv2.mean(patch, mask=inside)[:3])
        mean_out = np.array(cv2.mean(patch, mask=outside)[:3])
        distance = float(np.linalg.norm(mean_in - mean_out))
        return min(distance / COLOR_DISTANCE_SCALE, 1.0)

    @staticmethod
    def _edge_score(contour: np.ndarray, box: Rect, gradient: np.ndarray) -> float:
        """Mean gradient magnitude along the contour line."""
        roi = Rect(box.x - 2, box.y - 2, box.width + 4, box.height + 4)
        roi = roi.clipped(gradient.shape[1], gradient.shape[0])
        if roi.is_empty():
            return 0.0
        line = np.zeros((roi.height, roi.width), dtype=np.uint8)
        cv2.drawContours(line, [contour], -1, 255, thickness=2, offset=(-roi.x, -roi.y))
        if not line.any():
            return 0.0
        patch = gradient[roi.y:roi.y + roi.height, roi.x:roi.x + roi.width]
        strength = cv2.mean(patch, mask=line)[0]
        return min(strength / EDGE_STRENGTH_SCALE, 1.0)

    @staticmethod
    def _rescale(detection: LesionDetection, factor: float) -> LesionDetection:
        return LesionDetection(
            center=Point(detection.center.x * factor, detection.center.y * factor),
            bounding_box=detection.bounding_box.scaled(factor),
            area=detection.area * factor * factor,
            confidence=detection.confidence,
            method=detection.method,
        )


def _gradient_magnitude(gray: np.ndarray) -> np.ndarray:
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    return cv2.magnitude(gx, gy)
