"""
Conflict resolution orchestrator.

Coordinates classification and resolution of conflicting field values:
- Classifies the candidate set
- Selects a resolution strategy
- Records resolution history and the audit trail
- Persists history and audit state
"""

import logging
from typing import Any, Callable

from pydantic_core import PydanticSerializationError, to_jsonable_python

from field_arbiter.config import ConflictResolutionConfig
from field_arbiter.concurrency import ReadWriteLock
from field_arbiter.conflict.classifier import ConflictClassifier
from field_arbiter.conflict.strategies import (
    STRATEGIES,
    BaseResolutionStrategy,
    get_strategy,
)
from field_arbiter.exceptions import EmptyCandidateSetError, UnserializableValueError
from field_arbiter.models.base import new_id
from field_arbiter.models.conflict import (
    AuditAction,
    AuditEntry,
    ConflictContext,
    ConflictType,
    ResolutionOutcome,
    ResolutionRecord,
    StrategyKey,
    history_key,
)
from field_arbiter.scheduler import MaintenanceScheduler
from field_arbiter.storage.base import BaseDocumentStore, StorageError
from field_arbiter.storage.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)

HISTORY_DOCUMENT = "conflict_history"
AUDIT_DOCUMENT = "audit_trail"
MANUAL_OVERRIDE_KEY = "manual_override"

# Conflict type -> strategy when no type-specific override applies
_CONFLICT_TYPE_STRATEGIES = {
    ConflictType.NUMERIC: StrategyKey.NUMERIC_AVERAGING,
    ConflictType.CONFIDENCE: StrategyKey.HIGHEST_CONFIDENCE,
    ConflictType.DUPLICATE: StrategyKey.HIGHEST_CONFIDENCE,
    ConflictType.TEXTUAL: StrategyKey.HIGHEST_CONFIDENCE,
}


class ConflictResolver:
    """
    Main conflict resolution orchestrator.

    Every resolve call runs classify -> select -> resolve -> record under one
    exclusive lock; history and audit queries share a read lock and return
    copies.

    Usage:
        resolver = ConflictResolver(ConflictResolutionConfig(persistence_path=Path("data/conflicts")))
        outcome = resolver.resolve(context)
        resolver.close()
    """

    def __init__(
        self,
        config: ConflictResolutionConfig | None = None,
        store: BaseDocumentStore | None = None,
        adjustment_provider: Callable[[str], float] | None = None,
    ):
        self._config = config or ConflictResolutionConfig()
        if store is None and self._config.persistence_path is not None:
            store = JsonDocumentStore(self._config.persistence_path)
        self._store = store

        # Learned per-field confidence adjustments, consulted only when enabled
        self._adjustment_provider = adjustment_provider

        self._lock = ReadWriteLock()
        self._history: dict[str, list[ResolutionRecord]] = {}
        self._audit_trail: list[AuditEntry] = []
        self._autosave: MaintenanceScheduler | None = None

        self.load_state()

    def set_adjustment_provider(self, provider: Callable[[str], float] | None) -> None:
        """Set the callable returning the learned adjustment for a field name."""
        with self._lock.write_locked():
            self._adjustment_provider = provider

    # Resolution

    def resolve(self, context: ConflictContext) -> ResolutionOutcome:
        """
        Resolve a conflict between candidate values for one field.

        Args:
            context: The field and its candidates

        Returns:
            The resolution outcome

        Raises:
            EmptyCandidateSetError: If the context has no candidates
            UnserializableValueError: If a candidate value or the metadata
                cannot be stored as JSON
            NoValidNumericValuesError, ZeroConfidenceWeightError: If numeric
                averaging was selected and cannot compute a mean
        """
        if not context.candidates:
            raise EmptyCandidateSetError(context.field_name)

        # Reject values the history and audit documents cannot hold before any state changes
        try:
            before_state = [c.model_dump(mode="json") for c in context.candidates]
            to_jsonable_python(context.metadata)
        except PydanticSerializationError as e:
            raise UnserializableValueError(context.field_name, str(e)) from e

        with self._lock.write_locked():
            config = self._config
            conflict_id = new_id()
            logger.info(f"Resolving conflict for field: {context.field_name} in deal: {context.deal_id}")

            self._add_audit_entry(
                conflict_id,
                AuditAction.DETECTED,
                details=(
                    f"Conflict detected for field {context.field_name} "
                    f"with {len(context.candidates)} values"
                ),
            )

            conflict_type = ConflictClassifier(config.numeric_averaging_threshold).classify(context.candidates)
            strategy = self._select_strategy(conflict_type, context)
            logger.debug(f"Using resolution strategy: {strategy.display_name} for conflict type: {conflict_type.value}")

            outcome = strategy.resolve(context, config.review_threshold)
            self._apply_learned_adjustment(outcome, context)

            outcome.conflict_id = conflict_id
            outcome.field_name = context.field_name
            outcome.conflict_type = conflict_type
            outcome.candidates = list(context.candidates)

            record = ResolutionRecord(
                id=conflict_id,
                deal_id=context.deal_id,
                template_path=context.template_path,
                field_name=context.field_name,
                conflict_type=conflict_type,
                candidates=list(context.candidates),
                resolved_value=outcome.resolved_value,
                strategy_key=StrategyKey(outcome.strategy_key).value,
                final_confidence=outcome.final_confidence,
                requires_review=outcome.requires_review,
                resolved_by="system",
                notes=outcome.notes,
                context=dict(context.metadata),
            )
            self._append_record(record)

            self._add_audit_entry(
                conflict_id,
                AuditAction.RESOLVED,
                actor="system",
                details=f"Conflict resolved using {strategy.display_name} strategy",
                before_state=before_state,
                after_state=outcome.resolved_value,
                confidence=outcome.final_confidence,
            )

            if config.debug_mode:
                logger.info(
                    f"Resolved {context.history_key} -> {outcome.resolved_value!r} "
                    f"({outcome.strategy_key}, confidence {outcome.final_confidence:.3f}, "
                    f"review={outcome.requires_review}) diagnostics={outcome.diagnostics}"
                )

            return outcome.model_copy(deep=True)

    def _select_strategy(
        self,
        conflict_type: ConflictType,
        context: ConflictContext,
    ) -> BaseResolutionStrategy:
        """Select the strategy for a conflict; first matching rule wins."""
        config = self._config

        if context.requires_review or context.max_confidence < config.review_threshold:
            return STRATEGIES[StrategyKey.MANUAL_REVIEW]

        override = config.type_specific_strategies.get(context.field_type)
        if override is not None:
            strategy = get_strategy(override)
            if strategy is None:
                logger.warning(
                    f"Unknown strategy {override!r} configured for field type "
                    f"{context.field_type!r}, using highest_confidence"
                )
                return STRATEGIES[StrategyKey.HIGHEST_CONFIDENCE]
            return strategy

        key = _CONFLICT_TYPE_STRATEGIES.get(conflict_type, StrategyKey.HIGHEST_CONFIDENCE)
        if key.value not in config.default_strategies:
            key = StrategyKey.HIGHEST_CONFIDENCE
        return STRATEGIES[key]

    def _apply_learned_adjustment(self, outcome: ResolutionOutcome, context: ConflictContext) -> None:
        """Lower final confidence for fields humans correct often."""
        if not self._config.apply_learned_adjustments or self._adjustment_provider is None:
            return
        if outcome.strategy_key == StrategyKey.MANUAL_REVIEW:
            return

        adjustment = self._adjustment_provider(context.field_name)
        if not adjustment:
            return

        adjusted = min(1.0, max(0.0, outcome.final_confidence - adjustment))
        outcome.diagnostics["learned_adjustment"] = adjustment
        outcome.diagnostics["unadjusted_confidence"] = outcome.final_confidence
        outcome.final_confidence = adjusted
        outcome.requires_review = outcome.requires_review or adjusted < self._config.review_threshold

    def _append_record(self, record: ResolutionRecord) -> None:
        records = self._history.setdefault(record.history_key, [])
        records.append(record)

        overflow = len(records) - self._config.max_history_entries
        if overflow > 0:
            del records[:overflow]

    def _add_audit_entry(
        self,
        conflict_id: str,
        action: AuditAction,
        actor: str = "",
        details: str = "",
        before_state: Any = None,
        after_state: Any = None,
        confidence: float = 0.0,
    ) -> AuditEntry | None:
        if not self._config.enable_audit_trail:
            return None

        entry = AuditEntry(
            conflict_id=conflict_id,
            action=action,
            actor=actor,
            details=details,
            before_state=before_state,
            after_state=after_state,
            confidence=confidence,
        )
        self._audit_trail.append(entry)

        limit = self._config.max_history_entries
        if len(self._audit_trail) > limit * 2:
            del self._audit_trail[:-limit]

        return entry

    # Human review

    def record_review(
        self,
        conflict_id: str,
        actor: str,
        details: str = "",
        confidence: float = 0.0,
    ) -> AuditEntry | None:
        """Record that a human reviewed a resolution without changing it."""
        with self._lock.write_locked():
            return self._add_audit_entry(
                conflict_id,
                AuditAction.REVIEWED,
                actor=actor,
                details=details or f"Conflict {conflict_id} reviewed by {actor}",
                confidence=confidence,
            )

    def override_resolution(
        self,
        deal_id: str,
        template_path: str,
        field_name: str,
        value: Any,
        actor: str,
        notes: str = "",
    ) -> ResolutionRecord:
        """
        Replace the current resolution of a field with a human-chosen value.

        Appends a full-confidence record to the field's history and an
        ``overridden`` audit entry referencing the previous resolution.
        """
        with self._lock.write_locked():
            key = history_key(deal_id, template_path, field_name)
            previous = self._history.get(key, [])
            last = previous[-1] if previous else None

            record = ResolutionRecord(
                deal_id=deal_id,
                template_path=template_path,
                field_name=field_name,
                conflict_type=last.conflict_type if last else ConflictType.NONE,
                candidates=list(last.candidates) if last else [],
                resolved_value=value,
                strategy_key=MANUAL_OVERRIDE_KEY,
                final_confidence=1.0,
                requires_review=False,
                resolved_by=actor,
                notes=notes or f"Manually overridden by {actor}",
            )
            self._append_record(record)

            self._add_audit_entry(
                last.id if last else record.id,
                AuditAction.OVERRIDDEN,
                actor=actor,
                details=f"Resolution for field {field_name} overridden by {actor}",
                before_state=last.resolved_value if last else None,
                after_state=value,
                confidence=1.0,
            )
            logger.info(f"Resolution for {key} overridden by {actor}")

            return record.model_copy(deep=True)

    # Queries

    def get_conflict_history(
        self,
        deal_id: str,
        template_path: str = "",
        field_name: str = "",
        limit: int = 0,
    ) -> list[ResolutionRecord]:
        """
        Get resolution history.

        With a field name, returns that field's records oldest first (the
        most recent ``limit`` when given). Without one, returns every record
        matching the deal (and template, if given) newest first.
        """
        with self._lock.read_locked():
            if field_name:
                records = self._history.get(history_key(deal_id, template_path, field_name), [])
                if limit > 0:
                    records = records[-limit:]
                return [r.model_copy(deep=True) for r in records]

            results = [
                record
                for records in self._history.values()
                for record in reversed(records)
                if (not deal_id or record.deal_id == deal_id)
                and (not template_path or record.template_path == template_path)
            ]
            results.sort(key=lambda r: r.resolved_at, reverse=True)
            if limit > 0:
                results = results[:limit]
            return [r.model_copy(deep=True) for r in results]

    def get_audit_trail(self, conflict_id: str = "", limit: int = 0) -> list[AuditEntry]:
        """Get audit entries newest first, optionally for one conflict."""
        with self._lock.read_locked():
            results = [
                entry for entry in reversed(self._audit_trail)
                if not conflict_id or entry.conflict_id == conflict_id
            ]
            if limit > 0:
                results = results[:limit]
            return [e.model_copy(deep=True) for e in results]

    def get_conflict_statistics(self) -> dict[str, Any]:
        """Get conflict resolution statistics."""
        with self._lock.read_locked():
            total = 0
            by_strategy: dict[str, int] = {}
            by_type: dict[str, int] = {}
            confidence_sum = 0.0
            review_required = 0

            for records in self._history.values():
                for record in records:
                    total += 1
                    by_strategy[record.strategy_key] = by_strategy.get(record.strategy_key, 0) + 1
                    ctype = record.conflict_type.value
                    by_type[ctype] = by_type.get(ctype, 0) + 1
                    confidence_sum += record.final_confidence
                    if record.requires_review:
                        review_required += 1

            return {
                "total_conflicts": total,
                "resolution_methods": by_strategy,
                "by_conflict_type": by_type,
                "average_confidence": confidence_sum / total if total else 0.0,
                "review_required": review_required,
                "review_percentage": review_required / total * 100 if total else 0.0,
                "audit_entries": len(self._audit_trail),
            }

    def get_strategies(self) -> list[dict[str, Any]]:
        """List registered strategies by priority."""
        return [s.describe() for s in sorted(STRATEGIES.values(), key=lambda s: s.priority)]

    # Configuration

    def get_configuration(self) -> ConflictResolutionConfig:
        """Get a copy of the current configuration."""
        with self._lock.read_locked():
            return self._config.model_copy(deep=True)

    def update_configuration(self, config: ConflictResolutionConfig) -> None:
        """Replace the configuration wholesale."""
        with self._lock.write_locked():
            self._config = config.model_copy(deep=True)
            if self._autosave is not None:
                self._autosave.interval_seconds = self._config.persistence_interval
        logger.info("Conflict resolver configuration updated")

    # Persistence

    def load_state(self) -> None:
        """Load history and audit trail from the store. Failures are logged."""
        if self._store is None:
            return

        try:
            history_doc = self._store.load(HISTORY_DOCUMENT)
            audit_doc = self._store.load(AUDIT_DOCUMENT)
        except StorageError as e:
            logger.warning(f"Failed to load conflict resolver state: {e}")
            return

        with self._lock.write_locked():
            if history_doc:
                try:
                    self._history = {
                        key: [ResolutionRecord.model_validate(r) for r in records]
                        for key, records in history_doc.items()
                    }
                except (ValueError, TypeError, AttributeError) as e:
                    logger.warning(f"Failed to load conflict history: {e}")
            if audit_doc:
                try:
                    self._audit_trail = [AuditEntry.model_validate(e) for e in audit_doc]
                except (ValueError, TypeError) as e:
                    logger.warning(f"Failed to load audit trail: {e}")

        logger.debug(f"Loaded {sum(len(r) for r in self._history.values())} resolution records")

    def save_state(self) -> bool:
        """
        Persist history and audit trail atomically.

        Returns:
            True if saved (or nothing to save to), False if the write failed
        """
        if self._store is None:
            return True

        try:
            with self._lock.read_locked():
                history_doc = {
                    key: [r.model_dump(mode="json") for r in records]
                    for key, records in self._history.items()
                }
                audit_doc = [e.model_dump(mode="json") for e in self._audit_trail]
        except PydanticSerializationError as e:
            logger.error(f"Failed to serialize conflict resolver state: {e}")
            return False

        try:
            self._store.save(HISTORY_DOCUMENT, history_doc)
            self._store.save(AUDIT_DOCUMENT, audit_doc)
        except StorageError as e:
            logger.error(f"Failed to save conflict resolver state: {e}")
            return False
        return True

    def _autosave_job(self) -> None:
        self.save_state()

    def start_autosave(self) -> None:
        """Flush state every ``persistence_interval`` seconds in the background."""
        if self._store is None:
            logger.warning("Autosave requested without a persistence path; ignoring")
            return
        if self._autosave is None:
            self._autosave = MaintenanceScheduler(
                self._autosave_job,
                self._config.persistence_interval,
                name="conflict-autosave",
            )
        self._autosave.start()

    def close(self) -> None:
        """Stop autosave and flush state one last time."""
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None
        self.save_state()

    def __enter__(self) -> "ConflictResolver":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
