"""
Configuration management for the field arbiter.

Provides centralized configuration for:
- Conflict resolution thresholds and strategy selection
- Correction learning and background maintenance
- Persistence locations
"""

import json
from pathlib import Path

from pydantic import BaseModel, Field


def _default_type_strategies() -> dict[str, str]:
    return {
        "number": "numeric_averaging",
        "date": "latest_value",
        "timestamp": "latest_value",
        "string": "highest_confidence",
        "boolean": "highest_confidence",
    }


class ConflictResolutionConfig(BaseModel):
    """Configuration for the conflict resolver."""

    min_confidence_threshold: float = Field(
        default=0.7,
        description="Confidence considered trustworthy without further checks",
        ge=0.0,
        le=1.0,
    )
    review_threshold: float = Field(
        default=0.5,
        description="Below this confidence a resolution is flagged for review",
        ge=0.0,
        le=1.0,
    )
    numeric_averaging_threshold: float = Field(
        default=0.05,
        description="Confidence spread above which a conflict is confidence-driven",
        ge=0.0,
        le=1.0,
    )
    max_history_entries: int = Field(
        default=1000,
        description="Max resolution records kept per field key",
        ge=1,
    )
    persistence_interval: float = Field(
        default=300.0,  # 5 minutes
        description="Seconds between automatic history/audit flushes",
        gt=0.0,
    )
    default_strategies: list[str] = Field(
        default_factory=lambda: ["highest_confidence", "numeric_averaging", "manual_review"],
        description="Strategies enabled for automatic selection",
    )
    type_specific_strategies: dict[str, str] = Field(
        default_factory=_default_type_strategies,
        description="Field type -> strategy key overrides",
    )
    enable_audit_trail: bool = Field(
        default=True,
        description="Record detected/resolved audit entries",
    )
    debug_mode: bool = Field(
        default=False,
        description="Log strategy diagnostics at INFO level",
    )
    apply_learned_adjustments: bool = Field(
        default=False,
        description="Lower final confidence by learned per-field correction adjustments",
    )
    persistence_path: Path | None = Field(
        default=None,
        description="Directory for conflict_history.json and audit_trail.json",
    )


class CorrectionConfig(BaseModel):
    """Configuration for correction learning."""

    maintenance_interval_seconds: float = Field(
        default=60.0,
        description="Interval between background maintenance runs",
        gt=0.0,
    )
    min_learning_weight: float = Field(
        default=0.1,
        description="Floor applied to computed learning weights",
        ge=0.0,
    )
    max_pattern_age_days: int = Field(
        default=30,
        description="Patterns unseen for longer than this are deactivated",
        ge=1,
    )
    max_correction_history: int = Field(
        default=1000,
        description="Max stored corrections (oldest evicted first)",
        ge=1,
    )
    storage_path: Path | None = Field(
        default=None,
        description="Directory for correction_state.json",
    )


class ArbiterConfig(BaseModel):
    """Master configuration for the field arbiter."""

    conflict: ConflictResolutionConfig = Field(default_factory=ConflictResolutionConfig)
    correction: CorrectionConfig = Field(default_factory=CorrectionConfig)

    data_directory: Path | None = Field(
        default=None,
        description="Root directory; fills unset persistence paths with conflicts/ and corrections/",
    )
    debug: bool = Field(
        default=False,
        description="Configure root logging at DEBUG level on system start-up",
    )

    def resolved(self) -> "ArbiterConfig":
        """Return a copy with persistence paths derived from data_directory."""
        config = self.model_copy(deep=True)
        if config.data_directory is not None:
            if config.conflict.persistence_path is None:
                config.conflict.persistence_path = config.data_directory / "conflicts"
            if config.correction.storage_path is None:
                config.correction.storage_path = config.data_directory / "corrections"
        return config

    @classmethod
    def from_file(cls, path: Path) -> "ArbiterConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

    def to_file(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
