"""
Correction learning models.

Corrections are human overrides of resolved or extracted values. Patterns
track recurring correction shapes; the learning model aggregates both.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from field_arbiter.models.base import _utcnow, ensure_utc


class CorrectionType(str, Enum):
    """Kinds of human correction."""

    FIELD_VALUE = "field_value"
    FIELD_MAPPING = "field_mapping"
    TEMPLATE = "template_selection"
    FORMULA = "formula_correction"
    VALIDATION = "validation_override"
    CATEGORY = "document_category"


class LearningConfidence(str, Enum):
    """Confidence level of a learned pattern."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    LearningConfidence.LOW: 0,
    LearningConfidence.MEDIUM: 1,
    LearningConfidence.HIGH: 2,
    LearningConfidence.VERY_HIGH: 3,
}


class Correction(BaseModel):
    """A single human correction. Immutable once stored."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    deal_id: str = ""
    document_id: str = ""
    template_id: str = ""
    field_name: str = ""
    original_value: Any = None
    corrected_value: Any = None
    correction_type: CorrectionType = CorrectionType.FIELD_VALUE
    user_id: str = ""
    timestamp: datetime | None = None
    original_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    learning_weight: float = 0.0
    context: dict[str, Any] = Field(default_factory=dict)
    processing_method: str = ""
    correction_reason: str = ""

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class LearningPattern(BaseModel):
    """A recurring (correction type, field) shape."""

    id: str
    pattern_type: CorrectionType
    field_name: str = ""
    original_pattern: str = ""
    corrected_pattern: str = ""
    document_category: str = ""  # Empty applies to every category
    confidence_level: LearningConfidence = LearningConfidence.LOW
    frequency_count: int = Field(default=1, ge=0)
    first_seen: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    is_active: bool = True
    supporting_examples: list[str] = Field(default_factory=list)


class PerformanceMetrics(BaseModel):
    """Effectiveness tracking for the learning model."""

    correction_frequency: dict[str, int] = Field(default_factory=dict)
    field_accuracy: dict[str, float] = Field(default_factory=dict)
    learning_effectiveness: float = 0.0
    total_processed_docs: int = 0
    total_corrections: int = 0
    patterns_learned: int = 0
    last_evaluation_date: datetime = Field(default_factory=_utcnow)


class LearningModel(BaseModel):
    """Aggregate learning state; one per correction engine."""

    version: str = "1.0.0"
    last_updated: datetime = Field(default_factory=_utcnow)
    total_corrections: int = 0
    active_patterns: dict[str, LearningPattern] = Field(default_factory=dict)
    confidence_adjustments: dict[str, float] = Field(default_factory=dict)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


class LearningInsights(BaseModel):
    """Read-only snapshot of learning progress for dashboards."""

    total_corrections: int
    active_patterns: int
    learning_version: str
    last_update: datetime
    performance_metrics: PerformanceMetrics
    top_corrections_by_type: dict[str, int] = Field(default_factory=dict)
    improvement_trends: dict[str, float] = Field(default_factory=dict)
    recommended_actions: list[str] = Field(default_factory=list)


class CorrectionStatistics(BaseModel):
    """Counts over stored corrections."""

    total_corrections: int
    total_active_patterns: int
    learning_version: str
    last_updated: datetime
    corrections_by_type: dict[str, int] = Field(default_factory=dict)
    corrections_by_field: dict[str, int] = Field(default_factory=dict)
    corrections_by_user: dict[str, int] = Field(default_factory=dict)
    learning_effectiveness: float = 0.0
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


class CorrectionHistoryFilters(BaseModel):
    """Filters for correction history queries. Empty fields match anything."""

    deal_id: str = ""
    field_name: str = ""
    user_id: str = ""
    correction_type: CorrectionType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_dates(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class LearningApplication(BaseModel):
    """Result of applying learned patterns to extracted document data."""

    enhanced_data: dict[str, Any] = Field(default_factory=dict)
    confidence_adjustments: dict[str, float] = Field(default_factory=dict)
    applied_patterns: list[str] = Field(default_factory=list)
    learning_applied: bool = False
