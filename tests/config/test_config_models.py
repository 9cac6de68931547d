"""Tests for configuration models."""

import pytest
from pydantic import ValidationError

from tracecov.config import TracecovConfig
from tracecov.config.constants import ROOT_BLOCK_ID, SNAPSHOT_VERSION


class TestConfigModels:
    """Configuration model validation tests."""

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    def test_given_log_level_when_validated_then_accepts_standard_levels(self, level: str) -> None:
        config = TracecovConfig(logging={"level": level})
        assert config.logging.level == level

    def test_given_invalid_log_level_when_validated_then_rejects(self) -> None:
        with pytest.raises(ValidationError):
            TracecovConfig(logging={"level": "VERBOSE"})

    @pytest.mark.parametrize(
        ("field", "value", "valid"),
        [
            ("max_analysis_nodes", 1, True),
            ("max_analysis_nodes", 0, False),
            ("max_analysis_time_ms", -5, False),
            ("cache_size", 64, True),
            ("cache_size", 0, False),
        ],
    )
    def test_given_analysis_budget_when_validated_then_must_be_positive(
        self, field: str, value: int, valid: bool
    ) -> None:
        """Analysis budgets reject zero and negative values."""
        if valid:
            config = TracecovConfig(analysis={field: value})
            assert getattr(config.analysis, field) == value
        else:
            with pytest.raises(ValidationError):
                TracecovConfig(analysis={field: value})

    def test_default_excludes_cover_installed_packages(self) -> None:
        config = TracecovConfig()
        assert "*/site-packages/*" in config.tracking.exclude
        assert config.tracking.include == []
        assert config.tracking.trace_threads is False


class TestConstants:
    def test_root_block_id_is_zero(self) -> None:
        assert ROOT_BLOCK_ID == 0

    def test_snapshot_version_is_string(self) -> None:
        assert isinstance(SNAPSHOT_VERSION, str)
