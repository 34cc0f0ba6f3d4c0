"""
Conflict resolution strategies.

Different strategies for turning conflicting candidates into one value:
- Highest confidence: prefer the most confident extraction
- Numeric averaging: confidence-weighted mean of numeric candidates
- Latest value: prefer the most recently observed candidate
- Manual review: placeholder value, flagged for a human
- Source priority: prefer more reliable extraction methods

Strategies are stateless and shared by all resolver calls.
"""

import math
from abc import ABC, abstractmethod
from typing import Any

from field_arbiter.exceptions import (
    EmptyCandidateSetError,
    NoValidNumericValuesError,
    ZeroConfidenceWeightError,
)
from field_arbiter.models.conflict import (
    CandidateValue,
    ConflictContext,
    ResolutionOutcome,
    StrategyKey,
)
from field_arbiter.conflict.classifier import is_numeric


ALL_FIELD_TYPES = ("string", "number", "date", "boolean")


def _round2(value: float) -> float:
    """Round half away from zero to two decimals; magnitudes too large to scale are returned as is."""
    scaled = abs(value) * 100
    if not math.isfinite(scaled):
        return value
    return math.copysign(math.floor(scaled + 0.5), value) / 100


def parse_number(value: Any) -> float | None:
    """Parse numeric types and numeric strings; anything else gives None."""
    if is_numeric(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class BaseResolutionStrategy(ABC):
    """Base class for resolution strategies."""

    key: StrategyKey
    display_name: str
    description: str = ""
    priority: int
    min_confidence_diff: float = 0.0
    applicable_field_types: tuple[str, ...] = ALL_FIELD_TYPES

    def resolve(self, context: ConflictContext, review_threshold: float) -> ResolutionOutcome:
        """Resolve the context's candidates into one outcome."""
        if not context.candidates:
            raise EmptyCandidateSetError(context.field_name)
        return self._resolve(context.candidates, review_threshold)

    @abstractmethod
    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        pass

    def describe(self) -> dict[str, Any]:
        """Strategy metadata as a plain dict."""
        return {
            "key": self.key.value,
            "display_name": self.display_name,
            "description": self.description,
            "priority": self.priority,
            "min_confidence_diff": self.min_confidence_diff,
            "applicable_field_types": list(self.applicable_field_types),
        }


class HighestConfidenceStrategy(BaseResolutionStrategy):
    """
    Prefer the candidate with the highest confidence.

    Ties keep submission order.
    """

    key = StrategyKey.HIGHEST_CONFIDENCE
    display_name = "Highest Confidence"
    description = "Select the value with the highest confidence score"
    priority = 1
    min_confidence_diff = 0.1

    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        ranked = sorted(candidates, key=lambda c: c.confidence, reverse=True)
        best = ranked[0]

        return ResolutionOutcome(
            resolved_value=best.value,
            strategy_key=self.key,
            final_confidence=best.confidence,
            requires_review=best.confidence < review_threshold,
            notes=(
                f"Selected value with highest confidence ({best.confidence:.3f}) "
                f"from {best.source} using {best.method} method"
            ),
            diagnostics={
                "selected_source": best.source,
                "selected_method": best.method,
                "confidence_spread": ranked[0].confidence - ranked[-1].confidence,
                "total_candidates": len(ranked),
            },
        )


class NumericAveragingStrategy(BaseResolutionStrategy):
    """
    Confidence-weighted mean of the numeric candidates.

    Non-numeric candidates are skipped. Sums are exactly rounded so the
    result does not depend on candidate order.
    """

    key = StrategyKey.NUMERIC_AVERAGING
    display_name = "Numeric Averaging"
    description = "Average numeric values when confidence scores are similar"
    priority = 2
    min_confidence_diff = 0.05
    applicable_field_types = ("number",)

    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        numbers: list[float] = []
        weights: list[float] = []
        for candidate in candidates:
            number = parse_number(candidate.value)
            if number is None:
                continue
            numbers.append(number)
            weights.append(candidate.confidence)

        if not numbers:
            raise NoValidNumericValuesError()

        total_weight = math.fsum(weights)
        if total_weight == 0:
            raise ZeroConfidenceWeightError()

        average = math.fsum(n * w for n, w in zip(numbers, weights)) / total_weight
        rounded = _round2(average)
        average_confidence = min(1.0, total_weight / len(numbers))

        return ResolutionOutcome(
            resolved_value=rounded,
            strategy_key=self.key,
            final_confidence=average_confidence,
            requires_review=average_confidence < review_threshold,
            notes=(
                f"Calculated weighted average ({rounded:.2f}) from {len(numbers)} numeric "
                f"values with average confidence {average_confidence:.3f}"
            ),
            diagnostics={
                "averaging_method": "weighted",
                "source_values": len(numbers),
                "skipped_values": len(candidates) - len(numbers),
                "raw_average": average,
                "rounded_average": rounded,
                "average_confidence": average_confidence,
            },
        )


class LatestValueStrategy(BaseResolutionStrategy):
    """Prefer the most recently observed candidate, regardless of confidence."""

    key = StrategyKey.LATEST_VALUE
    display_name = "Latest Value"
    description = "Select the most recent value for date/timestamp fields"
    priority = 3
    applicable_field_types = ("date", "timestamp")

    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        ranked = sorted(candidates, key=lambda c: c.observed_at, reverse=True)
        latest = ranked[0]

        return ResolutionOutcome(
            resolved_value=latest.value,
            strategy_key=self.key,
            final_confidence=latest.confidence,
            requires_review=latest.confidence < review_threshold,
            notes=(
                f"Selected most recent value (observed {latest.observed_at.isoformat()}) "
                f"with confidence {latest.confidence:.3f} from {latest.source}"
            ),
            diagnostics={
                "selected_timestamp": latest.observed_at.isoformat(),
                "selected_source": latest.source,
                "total_candidates": len(ranked),
                "time_span_seconds": (ranked[0].observed_at - ranked[-1].observed_at).total_seconds(),
            },
        )


class ManualReviewStrategy(BaseResolutionStrategy):
    """
    Defer the decision to a human.

    The first candidate is returned as a placeholder with zero confidence;
    callers must not treat it as resolved.
    """

    key = StrategyKey.MANUAL_REVIEW
    display_name = "Manual Review"
    description = "Flag conflicts requiring manual review"
    priority = 99

    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            resolved_value=candidates[0].value,
            strategy_key=self.key,
            final_confidence=0.0,
            requires_review=True,
            notes=(
                f"Conflict requires manual review - {len(candidates)} values "
                f"with varying confidence levels"
            ),
            diagnostics={
                "review_reason": "confidence_levels_require_human_judgment",
                "candidate_count": len(candidates),
                "default_selected": True,
                "review_priority": "high",
            },
        )


class SourcePriorityStrategy(BaseResolutionStrategy):
    """
    Prefer values from more reliable extraction methods.

    Composite score: 60% method priority (0-100), 40% confidence (scaled to 0-40).
    """

    key = StrategyKey.SOURCE_PRIORITY
    display_name = "Source Priority"
    description = "Prioritize values based on extraction method reliability"
    priority = 4

    METHOD_PRIORITIES = {
        "manual_entry": 100,
        "user_correction": 90,
        "ocr_high_conf": 80,
        "nlp_extraction": 70,
        "pattern_match": 60,
        "ocr_standard": 50,
        "template_guess": 30,
        "heuristic": 20,
        "fallback": 10,
    }
    UNKNOWN_METHOD_PRIORITY = 40

    def score(self, candidate: CandidateValue) -> float:
        priority = self.METHOD_PRIORITIES.get(candidate.method, self.UNKNOWN_METHOD_PRIORITY)
        return priority * 0.6 + candidate.confidence * 40

    def _resolve(
        self,
        candidates: list[CandidateValue],
        review_threshold: float,
    ) -> ResolutionOutcome:
        scored = sorted(
            ((self.score(c), c) for c in candidates),
            key=lambda pair: pair[0],
            reverse=True,
        )
        best_score, best = scored[0]

        return ResolutionOutcome(
            resolved_value=best.value,
            strategy_key=self.key,
            final_confidence=best.confidence,
            requires_review=best.confidence < review_threshold,
            notes=(
                f"Selected value from {best.method} method (priority score: {best_score:.2f}) "
                f"with confidence {best.confidence:.3f}"
            ),
            diagnostics={
                "selected_method": best.method,
                "selected_source": best.source,
                "composite_score": best_score,
                "priority_weighting": "60% method priority, 40% confidence",
                "total_candidates": len(scored),
            },
        )


# Strategy registry, built once and shared read-only
STRATEGIES: dict[StrategyKey, BaseResolutionStrategy] = {
    strategy.key: strategy
    for strategy in (
        HighestConfidenceStrategy(),
        NumericAveragingStrategy(),
        LatestValueStrategy(),
        ManualReviewStrategy(),
        SourcePriorityStrategy(),
    )
}


def get_strategy(key: StrategyKey | str) -> BaseResolutionStrategy | None:
    """Look up a registered strategy; unknown keys give None."""
    try:
        return STRATEGIES[StrategyKey(key)]
    except ValueError:
        return None
