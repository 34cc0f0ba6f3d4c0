"""
Pattern detection over human corrections.

A pattern is keyed by (correction type, field name). Repeated corrections of
the same shape raise the pattern's frequency and escalate its confidence:
- 3 observations: medium
- 5 observations: high
- 10 observations: very high

Levels are never downgraded by observation. Maintenance sweeps deactivate
stale patterns and drop ones that proved ineffective.
"""

import hashlib
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Iterable

from field_arbiter.conflict.classifier import stringify_value
from field_arbiter.exceptions import PatternNotFoundError
from field_arbiter.models.base import _utcnow, ensure_utc
from field_arbiter.models.learning import (
    Correction,
    CorrectionType,
    LearningConfidence,
    LearningPattern,
)

logger = logging.getLogger(__name__)

# Frequency thresholds, highest first
ESCALATION_THRESHOLDS = (
    (10, LearningConfidence.VERY_HIGH),
    (5, LearningConfidence.HIGH),
    (3, LearningConfidence.MEDIUM),
)

# Patterns below this success rate with more than MIN_FREQUENCY_FOR_REMOVAL
# observations are removed on sweep
MIN_SUCCESS_RATE = 0.1
MIN_FREQUENCY_FOR_REMOVAL = 10

MAX_SUPPORTING_EXAMPLES = 100


def pattern_key(correction_type: CorrectionType, field_name: str) -> str:
    return f"{correction_type.value}_{field_name}"


def generate_pattern_id(correction: Correction) -> str:
    """Short hash id for a new pattern."""
    data = f"pattern_{correction.correction_type.value}_{correction.field_name}_{time.time_ns()}"
    return hashlib.sha256(data.encode()).hexdigest()[:12]


def confidence_for_frequency(frequency: int) -> LearningConfidence:
    for threshold, level in ESCALATION_THRESHOLDS:
        if frequency >= threshold:
            return level
    return LearningConfidence.LOW


class PatternDetector:
    """
    Tracks recurring correction shapes.

    Thread-safe with its own lock, independent of the correction engine's.
    """

    def __init__(self, max_pattern_age_days: int = 30):
        self.max_pattern_age_days = max_pattern_age_days

        self._lock = threading.Lock()
        self._patterns: dict[str, LearningPattern] = {}

    def observe(self, correction: Correction) -> LearningPattern | None:
        """
        Record a correction against its pattern.

        Never raises; failures are logged and None is returned.

        Returns:
            Copy of the created or updated pattern
        """
        try:
            return self._observe(correction)
        except Exception:
            logger.exception(f"Failed to analyze correction {correction.id} for patterns")
            return None

    def _observe(self, correction: Correction) -> LearningPattern:
        seen_at = correction.timestamp or _utcnow()
        key = pattern_key(correction.correction_type, correction.field_name)

        with self._lock:
            pattern = self._patterns.get(key)

            if pattern is None:
                pattern = LearningPattern(
                    id=generate_pattern_id(correction),
                    pattern_type=correction.correction_type,
                    field_name=correction.field_name,
                    original_pattern=stringify_value(correction.original_value),
                    corrected_pattern=stringify_value(correction.corrected_value),
                    document_category=str(correction.context.get("document_category", "")),
                    first_seen=seen_at,
                    last_seen=seen_at,
                    supporting_examples=[correction.id] if correction.id else [],
                )
                self._patterns[key] = pattern
                logger.debug(f"New pattern {pattern.id} for {key}")
                return pattern.model_copy(deep=True)

            pattern.frequency_count += 1
            pattern.last_seen = max(pattern.last_seen, seen_at)
            if correction.id:
                pattern.supporting_examples.append(correction.id)
                del pattern.supporting_examples[:-MAX_SUPPORTING_EXAMPLES]

            escalated = confidence_for_frequency(pattern.frequency_count)
            if escalated.rank > pattern.confidence_level.rank:
                logger.info(
                    f"Pattern {pattern.id} ({key}) escalated to {escalated.value} "
                    f"after {pattern.frequency_count} corrections"
                )
                pattern.confidence_level = escalated

            if not pattern.is_active:
                logger.info(f"Pattern {pattern.id} ({key}) reactivated")
                pattern.is_active = True

            return pattern.model_copy(deep=True)

    def sweep(self, now: datetime | None = None) -> tuple[int, int]:
        """
        Deactivate stale patterns and remove ineffective ones.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            (deactivated, removed) counts
        """
        now = ensure_utc(now) if now is not None else _utcnow()
        max_age = timedelta(days=self.max_pattern_age_days)
        deactivated = 0
        removed = 0

        with self._lock:
            for key, pattern in list(self._patterns.items()):
                if pattern.is_active and now - pattern.last_seen > max_age:
                    pattern.is_active = False
                    deactivated += 1

                if (
                    pattern.success_rate < MIN_SUCCESS_RATE
                    and pattern.frequency_count > MIN_FREQUENCY_FOR_REMOVAL
                ):
                    del self._patterns[key]
                    removed += 1

        if deactivated or removed:
            logger.info(f"Pattern sweep: {deactivated} deactivated, {removed} removed")
        return deactivated, removed

    def snapshot(self) -> dict[str, LearningPattern]:
        """Copies of all patterns keyed by pattern id."""
        with self._lock:
            return {p.id: p.model_copy(deep=True) for p in self._patterns.values()}

    def get(self, pattern_id: str) -> LearningPattern | None:
        with self._lock:
            pattern = self._find(pattern_id)
            return pattern.model_copy(deep=True) if pattern else None

    def load(self, patterns: Iterable[LearningPattern]) -> None:
        """Replace all patterns, e.g. from persisted learning state."""
        with self._lock:
            self._patterns = {
                pattern_key(p.pattern_type, p.field_name): p.model_copy(deep=True)
                for p in patterns
            }

    def update_pattern(
        self,
        pattern_id: str,
        is_active: bool | None = None,
        confidence_level: LearningConfidence | None = None,
        success_rate: float | None = None,
    ) -> LearningPattern:
        """
        Manually adjust a pattern. Only the given fields change.

        Raises:
            PatternNotFoundError: If no pattern has this id
            ValueError: If success_rate is outside [0, 1]
        """
        if success_rate is not None and not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be within [0, 1], got {success_rate}")

        with self._lock:
            pattern = self._find(pattern_id)
            if pattern is None:
                raise PatternNotFoundError(pattern_id)

            if is_active is not None:
                pattern.is_active = is_active
            if confidence_level is not None:
                pattern.confidence_level = LearningConfidence(confidence_level)
            if success_rate is not None:
                pattern.success_rate = success_rate

            return pattern.model_copy(deep=True)

    def reset(self) -> None:
        with self._lock:
            self._patterns.clear()

    def _find(self, pattern_id: str) -> LearningPattern | None:
        for pattern in self._patterns.values():
            if pattern.id == pattern_id:
                return pattern
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)
