"""
Correction learning engine.

Turns human corrections into learning state:
- Validates and weights each correction
- Updates the learning model (adjustments, performance metrics)
- Feeds the pattern detector
- Periodically sweeps patterns, evaluates effectiveness and persists state
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic_core import PydanticSerializationError

from field_arbiter.concurrency import ReadWriteLock
from field_arbiter.config import CorrectionConfig
from field_arbiter.conflict.classifier import stringify_value
from field_arbiter.exceptions import InvalidCorrectionError
from field_arbiter.learning.patterns import PatternDetector
from field_arbiter.models.base import _utcnow
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
)
from field_arbiter.scheduler import MaintenanceScheduler
from field_arbiter.storage.base import BaseDocumentStore, StorageError
from field_arbiter.storage.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)

STATE_DOCUMENT = "correction_state"

# Base learning weight per correction type
LEARNING_WEIGHTS = {
    CorrectionType.FIELD_VALUE: 0.8,
    CorrectionType.FIELD_MAPPING: 1.2,
    CorrectionType.TEMPLATE: 1.5,
    CorrectionType.FORMULA: 1.3,
    CorrectionType.VALIDATION: 0.6,
    CorrectionType.CATEGORY: 1.1,
}

# Share of a correction's weight added to its field's confidence adjustment
ADJUSTMENT_RATE = 0.1

# Per-correction decay of tracked field accuracy
FIELD_ACCURACY_DECAY = 0.95

# Adjustment reported by apply_learning per pattern confidence level
PATTERN_ADJUSTMENTS = {
    LearningConfidence.VERY_HIGH: 0.15,
    LearningConfidence.HIGH: 0.10,
    LearningConfidence.MEDIUM: 0.05,
    LearningConfidence.LOW: 0.0,
}

# Recommendation thresholds
MIN_EFFECTIVENESS = 0.7
MIN_PATTERNS = 5
MAX_CORRECTION_RATE = 0.3

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def calculate_learning_weight(correction: Correction, min_weight: float = 0.1) -> float:
    """
    Weight of a correction for learning.

    Base weight by type, scaled by how unconfident the original value was.
    """
    weight = LEARNING_WEIGHTS.get(correction.correction_type, 1.0)
    if correction.original_confidence is not None:
        weight *= 1.0 - correction.original_confidence
    return max(weight, min_weight)


def generate_correction_id(correction: Correction, timestamp: datetime) -> str:
    nanos = (timestamp - _EPOCH) // timedelta(microseconds=1) * 1000
    data = (
        f"{correction.deal_id}:{correction.template_id}:{correction.field_name}:"
        f"{correction.user_id}:{nanos}"
    )
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def classify_change(original: Any, corrected: Any) -> str:
    """Classify a before/after change as addition, deletion, refinement or replacement."""
    if original is None:
        return "addition"
    if corrected is None:
        return "deletion"

    original_str = stringify_value(original).lower()
    corrected_str = stringify_value(corrected).lower()
    if original_str in corrected_str or corrected_str in original_str:
        return "refinement"
    return "replacement"


def detect_changes(before: dict[str, Any], after: dict[str, Any]) -> dict[str, tuple[Any, Any]]:
    """Field -> (original, corrected) for every changed, added or removed field."""
    changes: dict[str, tuple[Any, Any]] = {}

    for key, after_value in after.items():
        if key not in before:
            changes[key] = (None, after_value)
        elif stringify_value(before[key]) != stringify_value(after_value):
            changes[key] = (before[key], after_value)

    for key, before_value in before.items():
        if key not in after:
            changes[key] = (before_value, None)

    return changes


def _group_thousands(digits: str) -> str:
    head = len(digits) % 3 or 3
    groups = [digits[:head]] + [digits[i:i + 3] for i in range(head, len(digits), 3)]
    return ",".join(groups)


def _is_number_formatting(pattern: LearningPattern) -> bool:
    return (
        "," in pattern.corrected_pattern
        and pattern.original_pattern.replace(",", "") == pattern.corrected_pattern.replace(",", "")
    )


def apply_pattern(pattern: LearningPattern, data: dict[str, Any]) -> Any | None:
    """
    Apply one pattern to a document's data.

    Returns:
        The enhanced value for the pattern's field, or None if the pattern
        does not change anything
    """
    if not pattern.field_name or pattern.field_name not in data:
        return None

    value = stringify_value(data[pattern.field_name])
    original = pattern.original_pattern
    corrected = pattern.corrected_pattern

    if original and original != corrected and original in value:
        return value.replace(original, corrected)

    if _is_number_formatting(pattern) and value.isascii() and value.isdigit() and len(value) > 3:
        return _group_thousands(value)

    return None


class CorrectionEngine:
    """
    Correction learning engine.

    All engine state is guarded by one reader/writer lock; the pattern
    detector has its own. Background maintenance holds the exclusive lock
    for the whole sweep.

    Usage:
        engine = CorrectionEngine(CorrectionConfig(storage_path=Path("data/corrections")))
        engine.start()
        engine.submit_correction(Correction(deal_id="d1", field_name="revenue", ...))
        engine.shutdown()
    """

    def __init__(
        self,
        config: CorrectionConfig | None = None,
        store: BaseDocumentStore | None = None,
    ):
        self.config = config or CorrectionConfig()
        if store is None and self.config.storage_path is not None:
            store = JsonDocumentStore(self.config.storage_path)
        self._store = store

        self._lock = ReadWriteLock()
        self._corrections: dict[str, Correction] = {}
        self._model = LearningModel()
        self._detector = PatternDetector(self.config.max_pattern_age_days)

        self._scheduler = MaintenanceScheduler(
            self._run_maintenance,
            self.config.maintenance_interval_seconds,
            name="correction-maintenance",
        )

        self.load_state()

    # Lifecycle

    def start(self) -> None:
        """Start background maintenance."""
        self._scheduler.start()

    def shutdown(self) -> bool:
        """
        Stop background maintenance and save state one last time.

        Returns:
            True if the final save succeeded
        """
        logger.info("Shutting down correction engine")
        self._scheduler.stop()
        saved = self.save_state()
        logger.info("Correction engine shutdown complete")
        return saved

    @property
    def is_running(self) -> bool:
        return self._scheduler.is_running

    def __enter__(self) -> "CorrectionEngine":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # Corrections

    def submit_correction(self, correction: Correction) -> Correction:
        """
        Validate, weight and learn from a human correction.

        Args:
            correction: The correction; id and timestamp are filled if empty

        Returns:
            The stored correction

        Raises:
            InvalidCorrectionError: If required fields are missing
        """
        self._validate(correction)

        timestamp = correction.timestamp or _utcnow()
        stored = correction.model_copy(
            update={
                "id": correction.id or generate_correction_id(correction, timestamp),
                "timestamp": timestamp,
                "learning_weight": calculate_learning_weight(correction, self.config.min_learning_weight),
            }
        )

        with self._lock.write_locked():
            # Re-submitting an id replaces the old entry and moves it to the end
            self._corrections.pop(stored.id, None)
            self._corrections[stored.id] = stored

            self._update_learning_model(stored)
            self._detector.observe(stored)
            self._sync_patterns()
            self._evict_old_corrections()

        logger.info(
            f"Correction processed: {stored.id} (type: {stored.correction_type.value}, "
            f"field: {stored.field_name}, weight: {stored.learning_weight:.3f})"
        )
        return stored

    def _validate(self, correction: Correction) -> None:
        if not correction.deal_id:
            raise InvalidCorrectionError("deal_id", "deal ID is required")
        if not correction.field_name and correction.correction_type != CorrectionType.CATEGORY:
            raise InvalidCorrectionError("field_name", "field name is required for most correction types")
        if not correction.user_id:
            raise InvalidCorrectionError("user_id", "user ID is required")

    def _update_learning_model(self, correction: Correction) -> None:
        model = self._model
        now = _utcnow()

        model.total_corrections += 1
        model.last_updated = now

        metrics = model.performance_metrics
        metrics.total_corrections += 1
        type_key = correction.correction_type.value
        metrics.correction_frequency[type_key] = metrics.correction_frequency.get(type_key, 0) + 1
        if correction.field_name:
            accuracy = metrics.field_accuracy.get(correction.field_name, 1.0)
            metrics.field_accuracy[correction.field_name] = accuracy * FIELD_ACCURACY_DECAY
        metrics.last_evaluation_date = now

        if correction.field_name:
            current = model.confidence_adjustments.get(correction.field_name, 0.0)
            model.confidence_adjustments[correction.field_name] = (
                current + correction.learning_weight * ADJUSTMENT_RATE
            )

    def _sync_patterns(self) -> None:
        self._model.active_patterns = self._detector.snapshot()
        self._model.performance_metrics.patterns_learned = len(self._model.active_patterns)

    def _evict_old_corrections(self) -> int:
        excess = len(self._corrections) - self.config.max_correction_history
        if excess <= 0:
            return 0

        oldest = sorted(self._corrections.values(), key=lambda c: c.timestamp)[:excess]
        for correction in oldest:
            del self._corrections[correction.id]

        logger.info(f"Cleaned up {excess} old corrections")
        return excess

    def monitor_template_changes(
        self,
        deal_id: str,
        template_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        user_id: str,
    ) -> list[Correction]:
        """
        Turn a before/after diff of template data into field-value corrections.

        Changes that fail validation are logged and skipped.

        Returns:
            The corrections that were stored
        """
        stored = []
        for field_name, (original, corrected) in detect_changes(before, after).items():
            correction = Correction(
                deal_id=deal_id,
                template_id=template_id,
                field_name=field_name,
                original_value=original,
                corrected_value=corrected,
                correction_type=CorrectionType.FIELD_VALUE,
                user_id=user_id,
                processing_method="user_input",
                context={
                    "data_size": len(stringify_value(corrected)),
                    "change_type": classify_change(original, corrected),
                },
            )
            try:
                stored.append(self.submit_correction(correction))
            except InvalidCorrectionError as e:
                logger.error(f"Failed to process template change for field {field_name}: {e}")

        return stored

    def record_processed_documents(self, count: int = 1) -> None:
        """Count documents processed, the denominator of the correction rate."""
        with self._lock.write_locked():
            self._model.performance_metrics.total_processed_docs += count

    # Maintenance

    def _maintain(self) -> dict[str, Any] | None:
        """Sweep patterns, evaluate effectiveness, evict. Takes the exclusive lock."""
        with self._lock.write_locked():
            deactivated, removed = self._detector.sweep()
            self._sync_patterns()
            self._evaluate_learning_effectiveness()
            evicted = self._evict_old_corrections()
            logger.debug(
                f"Maintenance: {deactivated} patterns deactivated, {removed} removed, "
                f"{evicted} corrections evicted"
            )
            return self._state_document()

    def _run_maintenance(self) -> None:
        document = self._maintain()
        self._write_state(document)

    def _evaluate_learning_effectiveness(self) -> None:
        rates = [
            p.success_rate for p in self._model.active_patterns.values()
            if p.is_active and p.success_rate > 0
        ]
        if rates:
            self._model.performance_metrics.learning_effectiveness = sum(rates) / len(rates)

    def force_learning_update(self) -> bool:
        """
        Run a maintenance cycle now.

        Returns:
            True if state was saved
        """
        document = self._maintain()
        return self._write_state(document)

    # Learning application

    def get_confidence_adjustment(self, field_name: str) -> float:
        """Learned confidence adjustment for a field (0 when never corrected)."""
        with self._lock.read_locked():
            return self._model.confidence_adjustments.get(field_name, 0.0)

    def apply_learning(
        self,
        document_data: dict[str, Any],
        document_category: str = "",
    ) -> LearningApplication:
        """
        Apply learned patterns to extracted document data.

        Only active patterns above low confidence apply; patterns tied to a
        document category apply only to that category.
        """
        result = LearningApplication(enhanced_data=dict(document_data))

        with self._lock.read_locked():
            for pattern_id, pattern in self._model.active_patterns.items():
                if not pattern.is_active or pattern.confidence_level == LearningConfidence.LOW:
                    continue
                if pattern.document_category and pattern.document_category != document_category:
                    continue

                enhanced = apply_pattern(pattern, result.enhanced_data)
                if enhanced is None:
                    continue

                result.enhanced_data[pattern.field_name] = enhanced
                result.applied_patterns.append(pattern_id)
                result.confidence_adjustments[pattern.field_name] = PATTERN_ADJUSTMENTS[pattern.confidence_level]
                result.learning_applied = True

        if result.learning_applied:
            logger.debug(f"Applied {len(result.applied_patterns)} learned patterns")
        return result

    # Queries

    def get_learning_insights(self) -> LearningInsights:
        """Snapshot of learning progress with recommendations."""
        with self._lock.read_locked():
            model = self._model
            metrics = model.performance_metrics

            top_types: dict[str, int] = {}
            for correction in self._corrections.values():
                key = correction.correction_type.value
                top_types[key] = top_types.get(key, 0) + 1

            trends = {
                "overall_accuracy": metrics.learning_effectiveness,
                "correction_rate": metrics.total_corrections / max(metrics.total_processed_docs, 1),
            }

            recommendations = []
            if metrics.learning_effectiveness < MIN_EFFECTIVENESS:
                recommendations.append("Consider increasing training data quality")
            if len(model.active_patterns) < MIN_PATTERNS:
                recommendations.append("More correction data needed for better pattern recognition")
            if metrics.total_corrections > metrics.total_processed_docs * MAX_CORRECTION_RATE:
                recommendations.append("High correction rate indicates need for model retraining")

            return LearningInsights(
                total_corrections=len(self._corrections),
                active_patterns=len(model.active_patterns),
                learning_version=model.version,
                last_update=model.last_updated,
                performance_metrics=metrics.model_copy(deep=True),
                top_corrections_by_type=top_types,
                improvement_trends=trends,
                recommended_actions=recommendations,
            )

    def get_correction_history(self, filters: CorrectionHistoryFilters | None = None) -> list[Correction]:
        """Stored corrections matching the filters, newest first."""
        filters = filters or CorrectionHistoryFilters()

        with self._lock.read_locked():
            results = [
                c for c in self._corrections.values()
                if (not filters.deal_id or c.deal_id == filters.deal_id)
                and (not filters.field_name or c.field_name == filters.field_name)
                and (not filters.user_id or c.user_id == filters.user_id)
                and (filters.correction_type is None or c.correction_type == filters.correction_type)
                and (filters.start_date is None or c.timestamp >= filters.start_date)
                and (filters.end_date is None or c.timestamp <= filters.end_date)
            ]

        results.sort(key=lambda c: c.timestamp, reverse=True)
        return [c.model_copy(deep=True) for c in results]

    def get_learning_patterns(self, active_only: bool = True) -> dict[str, LearningPattern]:
        """Learned patterns keyed by id."""
        with self._lock.read_locked():
            return {
                pattern_id: pattern.model_copy(deep=True)
                for pattern_id, pattern in self._model.active_patterns.items()
                if pattern.is_active or not active_only
            }

    def update_learning_pattern(
        self,
        pattern_id: str,
        is_active: bool | None = None,
        confidence_level: LearningConfidence | None = None,
        success_rate: float | None = None,
    ) -> LearningPattern:
        """
        Manually adjust a learned pattern.

        Raises:
            PatternNotFoundError: If no pattern has this id
        """
        with self._lock.write_locked():
            pattern = self._detector.update_pattern(
                pattern_id,
                is_active=is_active,
                confidence_level=confidence_level,
                success_rate=success_rate,
            )
            self._sync_patterns()
            self._model.last_updated = _utcnow()

        logger.info(f"Learning pattern {pattern_id} updated")
        return pattern

    def get_correction_statistics(self) -> CorrectionStatistics:
        """Counts over stored corrections and pattern effectiveness."""
        with self._lock.read_locked():
            by_type: dict[str, int] = {}
            by_field: dict[str, int] = {}
            by_user: dict[str, int] = {}
            for correction in self._corrections.values():
                type_key = correction.correction_type.value
                by_type[type_key] = by_type.get(type_key, 0) + 1
                if correction.field_name:
                    by_field[correction.field_name] = by_field.get(correction.field_name, 0) + 1
                by_user[correction.user_id] = by_user.get(correction.user_id, 0) + 1

            active = [p for p in self._model.active_patterns.values() if p.is_active]
            effectiveness = sum(p.success_rate for p in active) / len(active) if active else 0.0

            return CorrectionStatistics(
                total_corrections=len(self._corrections),
                total_active_patterns=len(self._model.active_patterns),
                learning_version=self._model.version,
                last_updated=self._model.last_updated,
                corrections_by_type=by_type,
                corrections_by_field=by_field,
                corrections_by_user=by_user,
                learning_effectiveness=effectiveness,
                performance_metrics=self._model.performance_metrics.model_copy(deep=True),
            )

    def get_learning_model(self) -> LearningModel:
        """Copy of the learning model."""
        with self._lock.read_locked():
            return self._model.model_copy(deep=True)

    def reset(self) -> None:
        """Discard all corrections and learning state."""
        with self._lock.write_locked():
            self._corrections.clear()
            self._model = LearningModel()
            self._detector.reset()
        logger.info("Correction engine reset")

    # Persistence

    def _state_document(self) -> dict[str, Any] | None:
        try:
            return {
                "corrections": {
                    correction_id: c.model_dump(mode="json")
                    for correction_id, c in self._corrections.items()
                },
                "learning_model": self._model.model_dump(mode="json"),
                "last_saved": _utcnow().isoformat(),
            }
        except PydanticSerializationError as e:
            logger.error(f"Failed to serialize correction state: {e}")
            return None

    def _write_state(self, document: dict[str, Any] | None) -> bool:
        if self._store is None:
            return True
        if document is None:
            return False
        try:
            self._store.save(STATE_DOCUMENT, document)
        except StorageError as e:
            logger.error(f"Failed to save correction state: {e}")
            return False
        return True

    def save_state(self) -> bool:
        """
        Persist corrections and the learning model atomically.

        Returns:
            True if saved (or nothing to save to), False if the write failed
        """
        with self._lock.read_locked():
            document = self._state_document()
        return self._write_state(document)

    def load_state(self) -> None:
        """Load persisted state. Missing or unreadable state starts fresh."""
        if self._store is None:
            return

        try:
            document = self._store.load(STATE_DOCUMENT)
        except StorageError as e:
            logger.warning(f"Failed to load correction state, starting fresh: {e}")
            return

        if not document:
            logger.info("No existing correction state found, starting fresh")
            return

        try:
            corrections = {
                correction_id: Correction.model_validate(data)
                for correction_id, data in (document.get("corrections") or {}).items()
            }
            model_data = document.get("learning_model")
            model = LearningModel.model_validate(model_data) if model_data else LearningModel()
        except (ValueError, AttributeError) as e:
            logger.warning(f"Failed to parse correction state, starting fresh: {e}")
            return

        with self._lock.write_locked():
            self._corrections = corrections
            self._model = model
            self._detector.load(model.active_patterns.values())
            self._sync_patterns()

        logger.info(
            f"Correction state loaded: {len(corrections)} corrections, "
            f"{len(model.active_patterns)} patterns (last saved: {document.get('last_saved')})"
        )
