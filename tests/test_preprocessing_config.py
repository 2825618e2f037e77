"""Tests for preprocessing configuration dataclasses and presets."""

import dataclasses

import pytest

from journalprep.services.preprocessing_config import (
    DETECTION_MODES,
    PRESETS,
    BandTrimConfig,
    DetectionConfig,
    EnhancementParameters,
)
from journalprep.utils.exceptions import ConfigurationError


class TestEnhancementParameters:
    def test_defaults(self):
        p = EnhancementParameters()
        assert p.posterize_levels == 4
        assert p.contrast_level == 2.0
        assert p.gamma_level == 0.4
        assert p.min_dimension == 1500
        assert p.total_colors == 64

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            EnhancementParameters().gamma_level = 0.5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"posterize_levels": 1},
            {"posterize_levels": 9},
            {"posterize_levels": 4.0},
            {"contrast_level": 1.4},
            {"contrast_level": 2.6},
            {"gamma_level": 0.2},
            {"gamma_level": 0.7},
            {"min_dimension": 0},
            {"tone_curve": ((0.0, 0.0),)},
            {"tone_curve": ((0.0, 0.0), (0.5, 0.2), (0.4, 0.9))},
            {"tone_curve": ((0.0, 0.0), (1.0, 1.5))},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            EnhancementParameters(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"contrast_level": "2.0"},
            {"gamma_level": None},
            {"saturation": True},
            {"tone_curve": "steep"},
            {"tone_curve": ((0.0, "low"), (1.0, 1.0))},
        ],
    )
    def test_wrong_types_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            EnhancementParameters(**kwargs)

    def test_range_bounds_accepted(self):
        EnhancementParameters(posterize_levels=2, contrast_level=1.5, gamma_level=0.3)
        EnhancementParameters(posterize_levels=8, contrast_level=2.5, gamma_level=0.6)

    def test_presets(self):
        assert [(p.posterize_levels, p.contrast_level, p.gamma_level) for p in PRESETS.values()] == [
            (3, 2.5, 0.3),
            (4, 2.0, 0.4),
            (6, 1.8, 0.5),
            (8, 1.5, 0.6),
        ]
        assert [p.total_colors for p in PRESETS.values()] == [27, 64, 216, 512]

    def test_from_preset(self):
        assert EnhancementParameters.from_preset("subtle").posterize_levels == 8

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError, match="unknown preset"):
            EnhancementParameters.from_preset("vivid")

    def test_with_overrides_ignores_none(self):
        p = EnhancementParameters().with_overrides(posterize_levels=6, gamma_level=None)
        assert p.posterize_levels == 6
        assert p.gamma_level == 0.4

    def test_with_overrides_unknown_key(self):
        with pytest.raises(ConfigurationError):
            EnhancementParameters().with_overrides(sharpness=3)

    def test_from_dict_with_preset(self):
        p = EnhancementParameters.from_dict({"preset": "moderate", "gamma_level": 0.35})
        assert p.posterize_levels == 6
        assert p.gamma_level == 0.35

    def test_dict_round_trip(self):
        original = EnhancementParameters.from_preset("extreme").with_overrides(exposure_ev=0.1)
        assert EnhancementParameters.from_dict(original.to_dict()) == original

    def test_tone_curve_lists_are_normalized(self):
        p = EnhancementParameters(tone_curve=[[0, 0], [1, 1]])
        assert p.tone_curve == ((0.0, 0.0), (1.0, 1.0))


class TestDetectionConfig:
    def test_strict_default(self):
        c = DetectionConfig.for_mode("strict")
        assert c == DetectionConfig()
        assert (c.min_aspect, c.max_aspect, c.min_size) == (0.2, 1.0, 0.2)
        assert (c.min_confidence, c.quadrature_tolerance, c.max_candidates) == (0.3, 20.0, 10)
        assert c.enable_edge_fallback is False

    def test_lenient(self):
        c = DetectionConfig.for_mode("lenient")
        assert (c.min_aspect, c.min_size, c.min_confidence) == (0.3, 0.15, 0.6)
        assert c.quadrature_tolerance == 45.0

    def test_mode_overrides(self):
        c = DetectionConfig.for_mode("lenient", enable_edge_fallback=True, position_bias=None)
        assert c.enable_edge_fallback is True
        assert c.position_bias == 0.05

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            DetectionConfig.for_mode("relaxed")

    def test_modes_are_named(self):
        assert set(DETECTION_MODES) == {"strict", "lenient"}

    def test_invalid_aspect(self):
        with pytest.raises(ConfigurationError):
            DetectionConfig(min_aspect=0.8, max_aspect=0.5)

    def test_wrong_types_rejected(self):
        with pytest.raises(ConfigurationError, match="enable_edge_fallback"):
            DetectionConfig(enable_edge_fallback="yes")
        with pytest.raises(ConfigurationError, match="position_bias"):
            DetectionConfig.for_mode("lenient", position_bias="0.1")


class TestBandTrimConfig:
    def test_defaults(self):
        c = BandTrimConfig()
        assert (c.max_scan_ratio, c.luminance_threshold, c.min_band_ratio, c.scan_width) == (
            0.3,
            0.12,
            0.03,
            512,
        )

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_scan_ratio": 0.0},
            {"luminance_threshold": 1.5},
            {"min_band_ratio": 0.5},
            {"scan_width": 4},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            BandTrimConfig(**kwargs)

    def test_wrong_type(self):
        with pytest.raises(ConfigurationError, match="scan_width"):
            BandTrimConfig(scan_width="512")
