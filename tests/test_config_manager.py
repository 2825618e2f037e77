"""Tests for config_manager module."""

import json
import os
import tempfile

import pytest

from journalprep.utils.config_manager import ConfigManager
from journalprep.utils.exceptions import ConfigurationError


class TestConfigManager:
    def _make_manager(self, tmp_dir, initial=None, raw=None):
        path = os.path.join(tmp_dir, "config.json")
        if initial is not None:
            with open(path, "w") as f:
                json.dump(initial, f)
        elif raw is not None:
            with open(path, "w") as f:
                f.write(raw)
        return ConfigManager(config_path=path)

    def test_get_default_value(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.get("nonexistent.key", "fallback") == "fallback"

    def test_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.get("enhancement.preset") == "strong"
            assert cm.get("detection.mode") == "strict"
            assert cm.get("output.suffix") == "prepared"

    def test_constructor_does_not_create_directory(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "sub", "settings.json")
            ConfigManager(config_path=path)
            assert not os.path.exists(os.path.join(d, "sub"))

    def test_set_and_get(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            cm.set("detection.mode", "lenient")
            assert cm.get("detection.mode") == "lenient"

    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "sub", "config.json")
            cm = ConfigManager(config_path=path)
            cm.set("test.key", "value123", save_immediately=True)
            cm2 = ConfigManager(config_path=path)
            assert cm2.get("test.key") == "value123"

    def test_nested_key_path(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            cm.set("a.b.c", 42)
            assert cm.get("a.b.c") == 42

    def test_broken_file_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d, raw="{not json")
            assert cm.get("enhancement.preset") == "strong"

    def test_non_object_file_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d, raw="[1, 2, 3]")
            assert cm.get("detection.mode") == "strict"

    def test_upgrade_merges_missing_defaults(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d, initial={"enhancement": {"preset": "subtle"}})
            assert cm.get("enhancement.preset") == "subtle"
            assert cm.get("output.workers") == 4
            assert cm.get("version") == 1

    def test_save_returns_true(self):
        with tempfile.TemporaryDirectory() as d:
            cm = self._make_manager(d)
            assert cm.save() is True


class TestPipelineConfigs:
    def test_enhancement_parameters(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "config.json")
            with open(path, "w") as f:
                json.dump({"enhancement": {"preset": "moderate", "contrast_level": 2.2}}, f)
            params = ConfigManager(config_path=path).enhancement_parameters()
            assert params.posterize_levels == 6
            assert params.contrast_level == 2.2

    def test_invalid_enhancement_value(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("enhancement.gamma_level", 5.0)
            with pytest.raises(ConfigurationError):
                cm.enhancement_parameters()

    def test_detection_config(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("detection.mode", "lenient")
            cm.set("detection.enable_edge_fallback", True)
            config = cm.detection_config()
            assert config.min_confidence == 0.6
            assert config.enable_edge_fallback is True

    def test_detection_unknown_key(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("detection.frobnicate", 1)
            with pytest.raises(ConfigurationError):
                cm.detection_config()

    def test_band_trim_config(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("band_trim.luminance_threshold", 0.2)
            assert cm.band_trim_config().luminance_threshold == 0.2

    def test_section_must_be_object(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("band_trim", "loose")
            with pytest.raises(ConfigurationError):
                cm.band_trim_config()

    def test_wrong_enhancement_type(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("enhancement.contrast_level", "2.0")
            with pytest.raises(ConfigurationError, match="contrast_level"):
                cm.enhancement_parameters()

    def test_unhashable_preset(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("enhancement.preset", ["strong"])
            with pytest.raises(ConfigurationError):
                cm.enhancement_parameters()

    def test_detection_mode_argument_keeps_overrides(self):
        with tempfile.TemporaryDirectory() as d:
            cm = ConfigManager(config_path=os.path.join(d, "c.json"))
            cm.set("detection.position_bias", 0.2)
            cm.set("detection.min_segment_area", 0.3)
            config = cm.detection_config("lenient")
            assert config.min_confidence == 0.6
            assert config.position_bias == 0.2
            assert config.min_segment_area == 0.3
