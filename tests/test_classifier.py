"""
Tests for conflict classification.
"""

import pytest

from field_arbiter.conflict.classifier import (
    ConflictClassifier,
    is_numeric,
    stringify_value,
    values_equal,
)
from field_arbiter.models import CandidateValue, ConflictType


def candidates(*pairs):
    """Build candidates from (value, confidence) pairs."""
    return [CandidateValue(value=value, confidence=confidence) for value, confidence in pairs]


class TestValueHelpers:
    """Tests for value comparison helpers."""

    def test_integral_float_matches_integer_string(self):
        assert stringify_value(100.0) == "100"
        assert values_equal(100.0, "100")

    def test_non_integral_float_kept(self):
        assert stringify_value(100.5) == "100.5"

    def test_case_insensitive(self):
        assert values_equal("ACME Corp", "acme corp")

    def test_none_only_equals_none(self):
        assert values_equal(None, None)
        assert not values_equal(None, "None")
        assert not values_equal("", None)

    def test_bool_is_not_numeric(self):
        assert is_numeric(3)
        assert is_numeric(2.5)
        assert not is_numeric(True)
        assert not is_numeric("3")


class TestConflictClassifier:
    """Tests for ConflictClassifier.classify."""

    def test_empty_is_none(self):
        assert ConflictClassifier().classify([]) == ConflictType.NONE

    def test_single_candidate_is_none(self):
        assert ConflictClassifier().classify(candidates(("x", 0.9))) == ConflictType.NONE

    def test_duplicate_dominates_confidence_spread(self):
        """Identical values are duplicates even with a large confidence spread."""
        result = ConflictClassifier().classify(candidates(("100", 0.5), ("100", 0.9)))
        assert result == ConflictType.DUPLICATE

    def test_duplicate_ignores_case(self):
        result = ConflictClassifier().classify(candidates(("Net Revenue", 0.1), ("net revenue", 0.99)))
        assert result == ConflictType.DUPLICATE

    def test_confidence_spread(self):
        result = ConflictClassifier().classify(
            candidates(("120000", 0.6), ("125000", 0.9), ("125000", 0.55))
        )
        assert result == ConflictType.CONFIDENCE

    def test_spread_at_threshold_is_not_confidence(self):
        """Only a spread strictly above the threshold is confidence-driven."""
        classifier = ConflictClassifier(numeric_averaging_threshold=0.25)
        result = classifier.classify(candidates((1, 0.5), (2, 0.75)))
        assert result == ConflictType.NUMERIC

    def test_numeric(self):
        result = ConflictClassifier().classify(candidates((100, 0.80), (110.5, 0.82)))
        assert result == ConflictType.NUMERIC

    def test_numeric_strings_are_textual(self):
        result = ConflictClassifier().classify(candidates(("100", 0.80), ("110", 0.82)))
        assert result == ConflictType.TEXTUAL

    def test_bools_are_mixed(self):
        result = ConflictClassifier().classify(candidates((True, 0.8), (False, 0.8)))
        assert result == ConflictType.MIXED

    def test_mixed(self):
        result = ConflictClassifier().classify(candidates((100, 0.8), ("one hundred", 0.8)))
        assert result == ConflictType.MIXED

    @pytest.mark.parametrize("threshold", [0.0, 0.05, 0.3])
    def test_spread_above_threshold_always_confidence(self, threshold):
        classifier = ConflictClassifier(numeric_averaging_threshold=threshold)
        result = classifier.classify(candidates(("a", 0.1), ("b", 0.1 + threshold + 0.01)))
        assert result == ConflictType.CONFIDENCE
