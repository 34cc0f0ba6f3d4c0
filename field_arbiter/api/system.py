"""
Arbiter system orchestrator.

The main entry point for embedding the field arbiter.
Ties the conflict resolver and the correction engine together and closes the
feedback loop between human corrections and future resolutions.
"""

import logging
from pathlib import Path
from typing import Any

from field_arbiter.config import ArbiterConfig
from field_arbiter.conflict.resolver import ConflictResolver
from field_arbiter.learning.corrections import CorrectionEngine
from field_arbiter.logging_config import configure_logging
from field_arbiter.models.conflict import ConflictContext, ResolutionOutcome
from field_arbiter.models.learning import Correction, CorrectionType

logger = logging.getLogger(__name__)


class ArbiterSystem:
    """
    The main field arbiter orchestrator.

    Provides a unified interface for:
    - Resolving conflicting extraction candidates
    - Recording human corrections of resolved values
    - Background maintenance and persistence

    Usage:
        with ArbiterSystem(ArbiterConfig(data_directory=Path("./data"))) as system:
            outcome = system.resolve(context)
            system.correct_field("deal-1", "sheet/A1", "revenue", 1250.0, user_id="analyst")
    """

    def __init__(self, config: ArbiterConfig | None = None):
        self.config = (config or ArbiterConfig()).resolved()
        if self.config.debug:
            configure_logging(debug=True)

        self.corrections = CorrectionEngine(self.config.correction)
        self.resolver = ConflictResolver(
            self.config.conflict,
            adjustment_provider=self.corrections.get_confidence_adjustment,
        )

        self._running = False

    @classmethod
    def from_config_file(cls, path: Path) -> "ArbiterSystem":
        """Create a system from a JSON configuration file."""
        return cls(ArbiterConfig.from_file(path))

    def start(self) -> None:
        """Start background maintenance and autosave."""
        if self._running:
            return

        self.corrections.start()
        if self.config.conflict.persistence_path is not None:
            self.resolver.start_autosave()
        self._running = True
        logger.info("Field arbiter started")

    def close(self) -> None:
        """Stop background tasks and flush all state."""
        try:
            self.resolver.close()
        finally:
            self.corrections.shutdown()
            self._running = False
        logger.info("Field arbiter closed")

    @property
    def is_running(self) -> bool:
        return self._running

    def __enter__(self) -> "ArbiterSystem":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def resolve(self, context: ConflictContext) -> ResolutionOutcome:
        """Resolve conflicting candidates for one field."""
        return self.resolver.resolve(context)

    def submit_correction(self, correction: Correction) -> Correction:
        """Record a human correction."""
        return self.corrections.submit_correction(correction)

    def correct_field(
        self,
        deal_id: str,
        template_path: str,
        field_name: str,
        corrected_value: Any,
        user_id: str,
        reason: str = "",
    ) -> Correction:
        """
        Correct the current resolution of a field.

        Overrides the field's resolution and submits a field-value correction
        whose original value and confidence come from the latest resolution.

        Returns:
            The stored correction

        Raises:
            InvalidCorrectionError: If deal_id, field_name or user_id is empty
        """
        latest = self.resolver.get_conflict_history(deal_id, template_path, field_name, limit=1)
        previous = latest[-1] if latest else None

        correction = self.corrections.submit_correction(
            Correction(
                deal_id=deal_id,
                template_id=template_path,
                field_name=field_name,
                original_value=previous.resolved_value if previous else None,
                corrected_value=corrected_value,
                correction_type=CorrectionType.FIELD_VALUE,
                user_id=user_id,
                original_confidence=previous.final_confidence if previous else None,
                processing_method=previous.strategy_key if previous else "",
                correction_reason=reason,
                context={"conflict_id": previous.id} if previous else {},
            )
        )

        self.resolver.override_resolution(
            deal_id,
            template_path,
            field_name,
            corrected_value,
            actor=user_id,
            notes=reason,
        )
        return correction

    def get_statistics(self) -> dict[str, Any]:
        """Get combined resolver and learning statistics."""
        return {
            "running": self._running,
            "conflicts": self.resolver.get_conflict_statistics(),
            "corrections": self.corrections.get_correction_statistics().model_dump(mode="json"),
        }
