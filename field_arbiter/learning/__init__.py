"""
Correction learning module.

Provides:
- Pattern detection over recurring corrections
- The correction engine: weighting, learning model, maintenance
"""

from field_arbiter.learning.patterns import PatternDetector
from field_arbiter.learning.corrections import (
    CorrectionEngine,
    calculate_learning_weight,
    classify_change,
    detect_changes,
    generate_correction_id,
)

__all__ = [
    "PatternDetector",
    "CorrectionEngine",
    "calculate_learning_weight",
    "classify_change",
    "detect_changes",
    "generate_correction_id",
]
