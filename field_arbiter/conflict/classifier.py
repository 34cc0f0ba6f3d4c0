"""
Conflict classification for candidate value sets.

Determines why extraction passes disagree:
- Duplicate values (same value, different confidence)
- Confidence-driven conflicts (large confidence spread)
- Numeric, textual or mixed conflicts (similar confidence)
"""

from typing import Any, Sequence

from field_arbiter.models.conflict import CandidateValue, ConflictType


def stringify_value(value: Any) -> str:
    """Render a value for equality checks; integral floats render as integers."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def values_equal(a: Any, b: Any) -> bool:
    """Case-insensitive comparison of stringified values."""
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return stringify_value(a).casefold() == stringify_value(b).casefold()


def is_numeric(value: Any) -> bool:
    """True for int/float values; bools are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConflictClassifier:
    """
    Assigns a conflict category to a set of candidates.

    The duplicate check runs before the confidence-spread check, so identical
    values are never classified as a confidence conflict.
    """

    def __init__(self, numeric_averaging_threshold: float = 0.05):
        self.numeric_averaging_threshold = numeric_averaging_threshold

    def classify(self, candidates: Sequence[CandidateValue]) -> ConflictType:
        """
        Classify a candidate set.

        Args:
            candidates: Candidate values in submission order

        Returns:
            The conflict category
        """
        if len(candidates) <= 1:
            return ConflictType.NONE

        first = candidates[0].value
        if all(values_equal(c.value, first) for c in candidates):
            return ConflictType.DUPLICATE

        confidences = [c.confidence for c in candidates]
        if max(confidences) - min(confidences) > self.numeric_averaging_threshold:
            return ConflictType.CONFIDENCE

        if all(is_numeric(c.value) for c in candidates):
            return ConflictType.NUMERIC
        if all(isinstance(c.value, str) for c in candidates):
            return ConflictType.TEXTUAL

        return ConflictType.MIXED
