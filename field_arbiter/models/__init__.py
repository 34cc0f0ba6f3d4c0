"""
Data models for the field arbiter.

This module contains Pydantic models for:
- Conflict resolution: candidates, contexts, outcomes, history and audit
- Correction learning: corrections, patterns and the learning model
"""

from field_arbiter.models.conflict import (
    AuditAction,
    AuditEntry,
    CandidateValue,
    ConflictContext,
    ConflictType,
    ResolutionOutcome,
    ResolutionRecord,
    StrategyKey,
    history_key,
)
from field_arbiter.models.learning import (
    Correction,
    CorrectionHistoryFilters,
    CorrectionStatistics,
    CorrectionType,
    LearningApplication,
    LearningConfidence,
    LearningInsights,
    LearningModel,
    LearningPattern,
    PerformanceMetrics,
)

__all__ = [
    # Conflict
    "AuditAction",
    "AuditEntry",
    "CandidateValue",
    "ConflictContext",
    "ConflictType",
    "ResolutionOutcome",
    "ResolutionRecord",
    "StrategyKey",
    "history_key",
    # Learning
    "Correction",
    "CorrectionHistoryFilters",
    "CorrectionStatistics",
    "CorrectionType",
    "LearningApplication",
    "LearningConfidence",
    "LearningInsights",
    "LearningModel",
    "LearningPattern",
    "PerformanceMetrics",
]
