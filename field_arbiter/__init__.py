"""
Field Arbiter - Confidence-weighted conflict resolution for document extraction

When several extraction passes (AI models, OCR, heuristics) disagree about a
field, the arbiter:
- Picks one value with a confidence-aware strategy
- Keeps an auditable history of every decision
- Persists state safely across restarts
- Learns from human corrections

Quick Start:
    from field_arbiter import ArbiterSystem, CandidateValue, ConflictContext

    with ArbiterSystem() as system:
        outcome = system.resolve(ConflictContext(
            deal_id="deal-1",
            field_name="revenue",
            field_type="currency",
            candidates=[
                CandidateValue(value=100.0, confidence=0.80, method="ocr_standard"),
                CandidateValue(value=110.0, confidence=0.82, method="nlp_extraction"),
            ],
        ))
        print(outcome.resolved_value)  # 105.06
"""

from field_arbiter.config import ArbiterConfig, ConflictResolutionConfig, CorrectionConfig
from field_arbiter.exceptions import (
    ArbiterError,
    EmptyCandidateSetError,
    InvalidCorrectionError,
    NoValidNumericValuesError,
    PatternNotFoundError,
    ResolutionError,
    UnserializableValueError,
    ZeroConfidenceWeightError,
)
from field_arbiter.models import (
    AuditAction,
    AuditEntry,
    CandidateValue,
    ConflictContext,
    ConflictType,
    Correction,
    CorrectionHistoryFilters,
    CorrectionType,
    LearningConfidence,
    LearningPattern,
    ResolutionOutcome,
    ResolutionRecord,
    StrategyKey,
)
from field_arbiter.storage import StorageError
from field_arbiter.conflict import ConflictClassifier, ConflictResolver
from field_arbiter.learning import CorrectionEngine, PatternDetector
from field_arbiter.api.system import ArbiterSystem

__version__ = "0.1.0"

__all__ = [
    # Config
    "ArbiterConfig",
    "ConflictResolutionConfig",
    "CorrectionConfig",
    # Errors
    "ArbiterError",
    "EmptyCandidateSetError",
    "InvalidCorrectionError",
    "NoValidNumericValuesError",
    "PatternNotFoundError",
    "ResolutionError",
    "StorageError",
    "UnserializableValueError",
    "ZeroConfidenceWeightError",
    # Models
    "AuditAction",
    "AuditEntry",
    "CandidateValue",
    "ConflictContext",
    "ConflictType",
    "Correction",
    "CorrectionHistoryFilters",
    "CorrectionType",
    "LearningConfidence",
    "LearningPattern",
    "ResolutionOutcome",
    "ResolutionRecord",
    "StrategyKey",
    # Components
    "ConflictClassifier",
    "ConflictResolver",
    "CorrectionEngine",
    "PatternDetector",
    "ArbiterSystem",
]
