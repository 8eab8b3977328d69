"""
Tests for Pipeline Configuration.

Tests cover:
- Defaults
- Validation
- Dictionary round trip
- Environment overrides
"""

import pytest

from ZR_Libs.GenerationLib.prompts import GLOBAL_QUALITY_INSTRUCTION
from ZR_Libs.PipelineLib.pipeline_config import PipelineConfig


class TestPipelineConfig:
    """Test PipelineConfig."""

    def test_defaults(self):
        """Test default values."""
        config = PipelineConfig()
        assert config.max_attempts == 2
        assert config.call_timeout_s == 120.0
        assert config.ordering_policy == "instruction_length"
        assert config.attach_zone_mask is True
        assert config.mask_threshold == 26
        assert config.global_instruction == GLOBAL_QUALITY_INSTRUCTION

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"call_timeout_s": 0},
        {"mask_threshold": 0},
        {"mask_threshold": 256},
        {"ordering_policy": " "},
    ])
    def test_invalid_values(self, kwargs):
        """Test that invalid values are rejected."""
        with pytest.raises(ValueError):
            PipelineConfig(**kwargs)

    def test_dict_round_trip(self):
        """Test to_dict / from_dict with unknown keys ignored."""
        config = PipelineConfig(max_attempts=3, ordering_policy="mask_area")
        data = config.to_dict()
        data["unknown"] = True

        assert PipelineConfig.from_dict(data) == config

    def test_from_env(self, monkeypatch):
        """Test environment overrides."""
        monkeypatch.setenv("ZR_MAX_ATTEMPTS", "4")
        monkeypatch.setenv("ZR_CALL_TIMEOUT", "30.5")
        monkeypatch.setenv("ZR_ORDERING_POLICY", "mask_area")
        monkeypatch.setenv("ZR_ATTACH_ZONE_MASK", "off")

        config = PipelineConfig.from_env()
        assert config.max_attempts == 4
        assert config.call_timeout_s == 30.5
        assert config.ordering_policy == "mask_area"
        assert config.attach_zone_mask is False

    def test_from_env_defaults(self, monkeypatch):
        """Test that unset variables keep defaults."""
        for name in ("ZR_MAX_ATTEMPTS", "ZR_CALL_TIMEOUT", "ZR_ORDERING_POLICY", "ZR_ATTACH_ZONE_MASK"):
            monkeypatch.delenv(name, raising=False)
        assert PipelineConfig.from_env() == PipelineConfig()

    def test_from_env_bad_boolean(self, monkeypatch):
        """Test that an unreadable boolean is rejected."""
        monkeypatch.setenv("ZR_ATTACH_ZONE_MASK", "maybe")
        with pytest.raises(ValueError):
            PipelineConfig.from_env()
