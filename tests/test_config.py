"""
Tests for configuration.
"""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from field_arbiter.config import ArbiterConfig, ConflictResolutionConfig, CorrectionConfig
from field_arbiter.logging_config import configure_logging


class TestDefaults:
    """Tests for default configuration values."""

    def test_conflict_defaults(self):
        config = ConflictResolutionConfig()
        assert config.min_confidence_threshold == 0.7
        assert config.review_threshold == 0.5
        assert config.numeric_averaging_threshold == 0.05
        assert config.max_history_entries == 1000
        assert config.persistence_interval == 300.0
        assert config.enable_audit_trail is True
        assert config.debug_mode is False
        assert config.apply_learned_adjustments is False
        assert config.type_specific_strategies == {
            "number": "numeric_averaging",
            "date": "latest_value",
            "timestamp": "latest_value",
            "string": "highest_confidence",
            "boolean": "highest_confidence",
        }

    def test_correction_defaults(self):
        config = CorrectionConfig()
        assert config.maintenance_interval_seconds == 60.0
        assert config.min_learning_weight == 0.1
        assert config.max_pattern_age_days == 30
        assert config.max_correction_history == 1000

    def test_type_strategies_not_shared(self):
        a = ConflictResolutionConfig()
        b = ConflictResolutionConfig()
        a.type_specific_strategies["number"] = "latest_value"
        assert b.type_specific_strategies["number"] == "numeric_averaging"

    @pytest.mark.parametrize("field,value", [
        ("review_threshold", 1.5),
        ("numeric_averaging_threshold", -0.1),
        ("max_history_entries", 0),
        ("persistence_interval", 0),
    ])
    def test_validation(self, field, value):
        with pytest.raises(ValidationError):
            ConflictResolutionConfig(**{field: value})


class TestArbiterConfig:
    """Tests for the master configuration."""

    def test_resolved_paths(self, temp_directory):
        config = ArbiterConfig(data_directory=temp_directory).resolved()
        assert config.conflict.persistence_path == temp_directory / "conflicts"
        assert config.correction.storage_path == temp_directory / "corrections"

    def test_resolved_keeps_explicit_paths(self, temp_directory):
        config = ArbiterConfig(
            data_directory=temp_directory,
            conflict=ConflictResolutionConfig(persistence_path=Path("/elsewhere")),
        ).resolved()
        assert config.conflict.persistence_path == Path("/elsewhere")

    def test_resolved_does_not_mutate(self, temp_directory):
        config = ArbiterConfig(data_directory=temp_directory)
        config.resolved()
        assert config.conflict.persistence_path is None

    def test_file_round_trip(self, temp_directory):
        config = ArbiterConfig(
            data_directory=temp_directory / "data",
            debug=True,
            conflict=ConflictResolutionConfig(review_threshold=0.6, apply_learned_adjustments=True),
            correction=CorrectionConfig(max_correction_history=50),
        )
        path = temp_directory / "config" / "arbiter.json"
        config.to_file(path)

        loaded = ArbiterConfig.from_file(path)
        assert loaded == config

    def test_unsupported_format(self, temp_directory):
        with pytest.raises(ValueError):
            ArbiterConfig.from_file(temp_directory / "arbiter.yaml")


class TestLoggingSetup:
    """Tests for configure_logging."""

    def test_levels(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging()
        configure_logging(debug=True, force=True)

        assert calls[0]["level"] == logging.INFO
        assert calls[0]["force"] is False
        assert calls[1]["level"] == logging.DEBUG
        assert calls[1]["force"] is True
