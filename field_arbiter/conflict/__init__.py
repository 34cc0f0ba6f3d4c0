"""
Conflict resolution module.

Provides:
- Conflict classification of candidate value sets
- Confidence-aware resolution strategies
- The resolver with history, audit trail and persistence
"""

from field_arbiter.conflict.classifier import (
    ConflictClassifier,
    is_numeric,
    stringify_value,
    values_equal,
)
from field_arbiter.conflict.strategies import (
    STRATEGIES,
    BaseResolutionStrategy,
    HighestConfidenceStrategy,
    LatestValueStrategy,
    ManualReviewStrategy,
    NumericAveragingStrategy,
    SourcePriorityStrategy,
    get_strategy,
    parse_number,
)
from field_arbiter.conflict.resolver import ConflictResolver

__all__ = [
    # Classifier
    "ConflictClassifier",
    "is_numeric",
    "stringify_value",
    "values_equal",
    # Strategies
    "STRATEGIES",
    "BaseResolutionStrategy",
    "HighestConfidenceStrategy",
    "LatestValueStrategy",
    "ManualReviewStrategy",
    "NumericAveragingStrategy",
    "SourcePriorityStrategy",
    "get_strategy",
    "parse_number",
    # Resolver
    "ConflictResolver",
]
