"""
Conflict resolution models.

Candidates come from the upstream extraction pipeline; outcomes, records and
audit entries are produced by the resolver.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from field_arbiter.models.base import _utcnow, ensure_utc, new_id


class ConflictType(str, Enum):
    """Why a set of candidate values disagrees."""

    NONE = "none"  # Zero or one candidate
    DUPLICATE = "duplicate"  # Same value, possibly different confidences
    CONFIDENCE = "confidence"  # Confidence spread above threshold
    NUMERIC = "numeric"  # All numbers, similar confidence
    TEXTUAL = "textual"  # All strings, similar confidence
    MIXED = "mixed"  # Anything else


class StrategyKey(str, Enum):
    """Registered resolution strategies."""

    HIGHEST_CONFIDENCE = "highest_confidence"
    NUMERIC_AVERAGING = "numeric_averaging"
    LATEST_VALUE = "latest_value"
    MANUAL_REVIEW = "manual_review"
    SOURCE_PRIORITY = "source_priority"


class AuditAction(str, Enum):
    """Lifecycle actions recorded in the audit trail."""

    DETECTED = "detected"
    RESOLVED = "resolved"
    REVIEWED = "reviewed"
    OVERRIDDEN = "overridden"


class CandidateValue(BaseModel):
    """One proposed value for a field, with confidence and provenance."""

    model_config = ConfigDict(frozen=True)

    value: Any = None
    confidence: float = Field(ge=0.0, le=1.0)
    source: str = ""
    method: str = ""
    observed_at: datetime = Field(default_factory=_utcnow)

    @field_validator("observed_at")
    @classmethod
    def _normalize_observed_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ConflictContext(BaseModel):
    """A unit of work submitted to the resolver."""

    deal_id: str
    template_path: str = ""
    field_name: str
    field_type: str = ""
    candidates: list[CandidateValue] = Field(default_factory=list)
    prior_value: Any = None
    requires_review: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def history_key(self) -> str:
        return history_key(self.deal_id, self.template_path, self.field_name)

    @property
    def max_confidence(self) -> float:
        return max((c.confidence for c in self.candidates), default=0.0)


class ResolutionOutcome(BaseModel):
    """Result of resolving one conflict."""

    resolved_value: Any = None
    strategy_key: StrategyKey | str
    final_confidence: float = Field(ge=0.0, le=1.0)
    requires_review: bool = False
    notes: str = ""
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    # Filled in by the resolver
    conflict_id: str | None = None
    field_name: str | None = None
    conflict_type: ConflictType | None = None
    candidates: list[CandidateValue] = Field(default_factory=list)


class ResolutionRecord(BaseModel):
    """Persisted, append-only entry in a field's resolution history."""

    id: str = Field(default_factory=new_id)
    deal_id: str
    template_path: str = ""
    field_name: str
    conflict_type: ConflictType
    candidates: list[CandidateValue] = Field(default_factory=list)
    resolved_value: Any = None
    strategy_key: str
    final_confidence: float = Field(ge=0.0, le=1.0)
    requires_review: bool = False
    resolved_at: datetime = Field(default_factory=_utcnow)
    resolved_by: str = "system"
    notes: str = ""
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def history_key(self) -> str:
        return history_key(self.deal_id, self.template_path, self.field_name)


class AuditEntry(BaseModel):
    """Immutable trace of a conflict lifecycle action."""

    id: str = Field(default_factory=new_id)
    conflict_id: str
    action: AuditAction
    timestamp: datetime = Field(default_factory=_utcnow)
    actor: str = ""
    details: str = ""
    before_state: Any = None
    after_state: Any = None
    confidence: float = 0.0


def history_key(deal_id: str, template_path: str, field_name: str) -> str:
    """Key under which a field's resolution history is stored."""
    return f"{deal_id}:{template_path}:{field_name}"
