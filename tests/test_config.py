"""Tests for core.config module."""

import json
from dataclasses import replace

import pytest

from core.config import (
    DEFAULT_CONFIG,
    HIGH_PRECISION_CONFIG,
    LOW_END_CONFIG,
    GuidanceConfig,
    QualityThresholds,
    get_preset,
    load_config,
    save_config,
)
from core.utils import ConfigurationError


class TestDefaults:
    def test_default_values(self):
        c = GuidanceConfig()
        assert c.guide_circle_radius == 150.0
        assert c.centering_tolerance == 50.0
        assert c.throttle_interval_ms == 100
        assert c.zoom_step == 0.1
        assert c.stabilization_threshold == 2.0
        assert c.quality == QualityThresholds(0.3, 80.0, 180.0, 0.2)

    def test_presets_are_valid(self):
        for preset in (DEFAULT_CONFIG, LOW_END_CONFIG, HIGH_PRECISION_CONFIG):
            assert preset.validate() is preset

    def test_high_precision_is_stricter(self):
        assert HIGH_PRECISION_CONFIG.centering_tolerance < DEFAULT_CONFIG.centering_tolerance
        assert HIGH_PRECISION_CONFIG.quality.min_sharpness > DEFAULT_CONFIG.quality.min_sharpness

    def test_get_preset(self):
        assert get_preset("low_end") is LOW_END_CONFIG
        with pytest.raises(ConfigurationError):
            get_preset("ultra")

    def test_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_CONFIG.centering_tolerance = 10


class TestValidate:
    def test_inverted_brightness_band(self):
        bad = replace(DEFAULT_CONFIG, quality=QualityThresholds(min_brightness=200, max_brightness=100))
        with pytest.raises(ConfigurationError, match="brightness"):
            bad.validate()

    def test_non_positive_tolerance(self):
        with pytest.raises(ConfigurationError, match="centering_tolerance"):
            replace(DEFAULT_CONFIG, centering_tolerance=0).validate()

    def test_zoom_range(self):
        with pytest.raises(ConfigurationError, match="zoom"):
            replace(DEFAULT_CONFIG, min_zoom=4.0, max_zoom=2.0).validate()

    def test_reports_every_error(self):
        bad = replace(DEFAULT_CONFIG, guide_circle_radius=-1, zoom_step=0)
        with pytest.raises(ConfigurationError) as exc:
            bad.validate()
        assert "guide_circle_radius" in str(exc.value)
        assert "zoom_step" in str(exc.value)


class TestFromDict:
    def test_partial_override(self):
        c = GuidanceConfig.from_dict({"centering_tolerance": 30, "quality": {"min_brightness": 60}})
        assert c.centering_tolerance == 30
        assert c.quality.min_brightness == 60
        assert c.quality.max_brightness == DEFAULT_CONFIG.quality.max_brightness

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            GuidanceConfig.from_dict({"centring_tolerance": 30})

    def test_bad_quality_key(self):
        with pytest.raises(ConfigurationError):
            GuidanceConfig.from_dict({"quality": {"max_blur": 1}})

    def test_roundtrip_dict(self):
        assert GuidanceConfig.from_dict(HIGH_PRECISION_CONFIG.to_dict()) == HIGH_PRECISION_CONFIG


class TestPersistence:
    def test_missing_file_uses_preset(self, tmp_dir):
        c = load_config(str(tmp_dir / "missing.json"), preset="low_end")
        assert c == LOW_END_CONFIG

    def test_save_and_load(self, tmp_dir):
        path = tmp_dir / "guidance.json"
        custom = replace(DEFAULT_CONFIG, centering_tolerance=42.0)
        assert save_config(custom, str(path)) == path
        assert load_config(str(path), preset="default") == custom

    def test_overrides_apply_on_top_of_preset(self, tmp_dir):
        path = tmp_dir / "guidance.json"
        path.write_text(json.dumps({"guide_circle_radius": 100}))
        c = load_config(str(path), preset="high_precision")
        assert c.guide_circle_radius == 100
        assert c.centering_tolerance == HIGH_PRECISION_CONFIG.centering_tolerance

    def test_invalid_json(self, tmp_dir):
        path = tmp_dir / "guidance.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_config(str(path), preset="default")

    def test_invalid_values_fail_at_load(self, tmp_dir):
        path = tmp_dir / "guidance.json"
        path.write_text(json.dumps({"quality": {"min_brightness": 250, "max_brightness": 20}}))
        with pytest.raises(ConfigurationError):
            load_config(str(path), preset="default")

    def test_save_rejects_invalid(self, tmp_dir):
        with pytest.raises(ConfigurationError):
            save_config(replace(DEFAULT_CONFIG, zoom_step=-1), str(tmp_dir / "x.json"))
