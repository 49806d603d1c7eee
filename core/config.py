"""Guidance configuration, presets, validation, and JSON persistence."""

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional

from core.utils import ConfigurationError, get_config_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityThresholds:
    """Acceptable band for image quality metrics."""
    min_sharpness: float = 0.3
    min_brightness: float = 80.0
    max_brightness: float = 180.0
    min_contrast: float = 0.2


@dataclass(frozen=True)
class GuidanceConfig:
    """Static configuration for a capture session. Immutable once loaded."""
    guide_circle_radius: float = 150.0
    centering_tolerance: float = 50.0
    min_lesion_area_ratio: float = 0.15
    max_lesion_area_ratio: float = 0.80
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    throttle_interval_ms: int = 100
    quality_region_expansion: float = 1.5
    zoom_step: float = 0.1
    min_zoom: float = 1.0
    max_zoom: float = 5.0
    optimal_zoom: float = 3.0
    small_lesion_zoom_threshold: float = 2.5
    stabilization_threshold: float = 2.0
    enable_auto_capture: bool = False
    auto_capture_delay_ms: int = 3000

    def validate(self) -> "GuidanceConfig":
        """Raise ConfigurationError if any value is out of range. Returns self."""
        errors = []
        q = self.quality

        if self.guide_circle_radius <= 0:
            errors.append("guide_circle_radius must be positive")
        if self.centering_tolerance <= 0:
            errors.append("centering_tolerance must be positive")
        if not 0 < self.min_lesion_area_ratio <= self.max_lesion_area_ratio <= 1:
            errors.append("lesion area ratios must satisfy 0 < min <= max <= 1")
        if not 0 <= q.min_brightness <= q.max_brightness <= 255:
            errors.append(
                f"brightness band [{q.min_brightness}, {q.max_brightness}] must lie within 0-255 "
                "with min <= max"
            )
        if q.min_sharpness < 0:
            errors.append("min_sharpness must be non-negative")
        if not 0 <= q.min_contrast <= 1:
            errors.append("min_contrast must be within [0, 1]")
        if self.throttle_interval_ms <= 0:
            errors.append("throttle_interval_ms must be positive")
        if self.quality_region_expansion < 1:
            errors.append("quality_region_expansion must be >= 1")
        if self.zoom_step <= 0:
            errors.append("zoom_step must be positive")
        if not 1.0 <= self.min_zoom <= self.max_zoom:
            errors.append("zoom range must satisfy 1 <= min_zoom <= max_zoom")
        if self.stabilization_threshold <= 0:
            errors.append("stabilization_threshold must be positive")
        if self.auto_capture_delay_ms < 0:
            errors.append("auto_capture_delay_ms must be non-negative")

        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict, base: Optional["GuidanceConfig"] = None) -> "GuidanceConfig":
        """Build a config from a dict, filling missing keys from base."""
        base = base or DEFAULT_CONFIG
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        quality = values.pop("quality", None)
        if quality is not None:
            if not isinstance(quality, dict):
                raise ConfigurationError("quality must be a mapping")
            try:
                values["quality"] = replace(base.quality, **quality)
            except TypeError as e:
                raise ConfigurationError(f"Invalid quality thresholds: {e}") from e
        return replace(base, **values)


DEFAULT_CONFIG = GuidanceConfig()

LOW_END_CONFIG = replace(
    DEFAULT_CONFIG,
    guide_circle_radius=120.0,
    quality=QualityThresholds(
        min_sharpness=0.25,
        min_brightness=70.0,
        max_brightness=190.0,
        min_contrast=0.15,
    ),
)

HIGH_PRECISION_CONFIG = replace(
    DEFAULT_CONFIG,
    centering_tolerance=30.0,
    min_lesion_area_ratio=0.20,
    max_lesion_area_ratio=0.70,
    quality=QualityThresholds(
        min_sharpness=0.4,
        min_brightness=90.0,
        max_brightness=170.0,
        min_contrast=0.25,
    ),
)

PRESETS: Dict[str, GuidanceConfig] = {
    "default": DEFAULT_CONFIG,
    "low_end": LOW_END_CONFIG,
    "high_precision": HIGH_PRECISION_CONFIG,
}


def get_preset(name: str) -> GuidanceConfig:
    """Look up a named preset."""
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown preset: {name}") from None


def get_saved_preset() -> str:
    """Get the preset name stored in the user's settings."""
    from PyQt6.QtCore import QSettings

    settings = QSettings("MoleGuide", "MoleGuide")
    name = settings.value("guidance/preset", "default")
    if name not in PRESETS:
        logger.warning("Saved preset %r is unknown, using default", name)
        return "default"
    return name


def set_preset(name: str):
    """Save the preset preference. Takes effect on the next session."""
    get_preset(name)
    from PyQt6.QtCore import QSettings

    settings = QSettings("MoleGuide", "MoleGuide")
    settings.setValue("guidance/preset", name)


def load_config(path: Optional[str] = None, preset: Optional[str] = None) -> GuidanceConfig:
    """Load and validate the guidance configuration.

    Overrides in the JSON file are applied on top of the preset. When no file
    exists the preset alone is used. The preset defaults to the saved one.
    """
    base = get_preset(preset) if preset else get_preset(get_saved_preset())
    config_path = Path(path) if path else get_config_path()

    if not config_path.exists():
        logger.info("No configuration file at %s, using preset values", config_path)
        return base.validate()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")

    config = GuidanceConfig.from_dict(data, base=base).validate()
    logger.info("Loaded guidance configuration from %s", config_path)
    return config


def save_config(config: GuidanceConfig, path: Optional[str] = None) -> Path:
    """Validate and write the configuration as JSON."""
    config.validate()
    config_path = Path(path) if path else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    return config_path
