"""Per-frame guidance decision: SEARCHING, POOR_LIGHTING, CENTERING or READY."""

import logging
from typing import Dict, Optional, Tuple

from core.config import GuidanceConfig, QualityThresholds
from core.utils import (
    GuideRegion,
    GuidanceState,
    LesionDetection,
    QualityMetrics,
    ValidationFailureReason,
)
from i18n import t

logger = logging.getLogger(__name__)

STATE_MESSAGE_KEYS: Dict[GuidanceState, str] = {
    GuidanceState.SEARCHING: "guidance.searching",
    GuidanceState.CENTERING: "guidance.centering",
    GuidanceState.POOR_LIGHTING: "guidance.poor_lighting",
    GuidanceState.READY: "guidance.ready",
}

if set(STATE_MESSAGE_KEYS) != set(GuidanceState):
    raise RuntimeError("Every GuidanceState needs a message key")


def message_for(state: GuidanceState) -> str:
    """Fixed user-facing message for a state."""
    return t(STATE_MESSAGE_KEYS[state])


class GuidanceStateMachine:
    """Stateless decision table evaluated in fixed precedence order.

    1. no detection              -> SEARCHING
    2. metrics outside the band  -> POOR_LIGHTING
    3. center beyond tolerance   -> CENTERING
    4. otherwise                 -> READY

    Lighting is checked before centering so an unusable exposure is never
    reported as a positioning problem. Nothing is remembered between calls.
    """

    def __init__(self, config: Optional[GuidanceConfig] = None):
        self._config = (config or GuidanceConfig()).validate()

    @property
    def config(self) -> GuidanceConfig:
        return self._config

    def evaluate(
        self,
        detection: Optional[LesionDetection],
        metrics: QualityMetrics,
        guide_region: GuideRegion,
    ) -> Tuple[GuidanceState, str]:
        state = self.classify(detection, metrics, guide_region)
        return state, message_for(state)

    def classify(
        self,
        detection: Optional[LesionDetection],
        metrics: QualityMetrics,
        guide_region: GuideRegion,
    ) -> GuidanceState:
        if detection is None:
            return GuidanceState.SEARCHING
        if self.quality_failures(metrics):
            return GuidanceState.POOR_LIGHTING
        if self.distance_from_center(detection, guide_region) > self._config.centering_tolerance:
            return GuidanceState.CENTERING
        return GuidanceState.READY

    # --- Supporting measurements ---

    def quality_failures(self, metrics: QualityMetrics) -> Tuple[ValidationFailureReason, ...]:
        """Which quality thresholds the metrics violate, in reporting order."""
        q: QualityThresholds = self._config.quality
        reasons = []
        if metrics.brightness < q.min_brightness:
            reasons.append(ValidationFailureReason.UNDEREXPOSED)
        elif metrics.brightness > q.max_brightness:
            reasons.append(ValidationFailureReason.OVEREXPOSED)
        if metrics.sharpness < q.min_sharpness:
            reasons.append(ValidationFailureReason.BLURRY)
        if metrics.contrast < q.min_contrast:
            reasons.append(ValidationFailureReason.LOW_CONTRAST)
        return tuple(reasons)

    def failure_reasons(
        self,
        detection: Optional[LesionDetection],
        metrics: QualityMetrics,
        guide_region: GuideRegion,
    ) -> Tuple[ValidationFailureReason, ...]:
        """Everything currently blocking capture, empty when READY."""
        if detection is None:
            return (ValidationFailureReason.NO_LESION,)
        reasons = list(self.quality_failures(metrics))
        if self.distance_from_center(detection, guide_region) > self._config.centering_tolerance:
            reasons.append(ValidationFailureReason.NOT_CENTERED)
        return tuple(reasons)

    @staticmethod
    def distance_from_center(detection: LesionDetection, guide_region: GuideRegion) -> float:
        return detection.center.distance_to(guide_region.center_px)

    @staticmethod
    def area_ratio(detection: LesionDetection, guide_region: GuideRegion) -> float:
        """Lesion area as a fraction of the guide circle area."""
        guide_area = guide_region.area_px
        return detection.area / guide_area if guide_area > 0 else 0.0

    def centering_percentage(self, distance: float) -> float:
        """100 at the guide center, falling to 0 at the centering tolerance."""
        tolerance = self._config.centering_tolerance
        return min(max((tolerance - distance) / tolerance * 100.0, 0.0), 100.0)

    def size_percentage(self, area_ratio: float) -> float:
        """100 at the middle of the preferred area band, 0 at or beyond its edges."""
        low = self._config.min_lesion_area_ratio
        high = self._config.max_lesion_area_ratio
        tolerance = (high - low) / 2.0
        if tolerance <= 0:
            return 100.0 if area_ratio == low else 0.0
        optimal = (low + high) / 2.0
        return min(max((tolerance - abs(area_ratio - optimal)) / tolerance * 100.0, 0.0), 100.0)

    def hint(
        self,
        state: GuidanceState,
        reasons: Tuple[ValidationFailureReason, ...],
        distance: float = 0.0,
    ) -> str:
        """Finer-grained advice to accompany the fixed state message."""
        if state is GuidanceState.SEARCHING:
            return t("hint.searching")
        if state is GuidanceState.POOR_LIGHTING:
            if ValidationFailureReason.UNDEREXPOSED in reasons:
                return t("hint.more_light")
            if ValidationFailureReason.OVEREXPOSED in reasons:
                return t("hint.less_light")
            if ValidationFailureReason.BLURRY in reasons:
                return t("hint.hold_steady")
            return t("hint.low_contrast")
        if state is GuidanceState.CENTERING:
            if distance > self._config.centering_tolerance * 1.5:
                return t("hint.move_to_center")
            return t("hint.almost_centered")
        if state is GuidanceState.READY:
            return t("hint.ready")
        raise ValueError(f"Unhandled guidance state: {state}")
