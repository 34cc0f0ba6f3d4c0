"""
Basic usage example for the field arbiter.

This example demonstrates:
1. Resolving conflicting extraction candidates
2. Recording a human correction
3. Learning patterns from repeated corrections
4. Persisting and inspecting state
"""

import tempfile
from pathlib import Path

# Add parent to path for development
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from field_arbiter import (
    ArbiterConfig,
    ArbiterSystem,
    CandidateValue,
    ConflictContext,
    ConflictResolutionConfig,
)
from field_arbiter.logging_config import configure_logging


def demo_resolution(system: ArbiterSystem):
    """Demonstrate strategy selection."""
    print("\n" + "="*60)
    print("CONFLICT RESOLUTION DEMO")
    print("="*60)

    contexts = [
        ConflictContext(
            deal_id="deal_001",
            template_path="model.xlsx/Summary",
            field_name="revenue",
            candidates=[
                CandidateValue(value="120000", confidence=0.6, method="ocr_standard", source="page_3"),
                CandidateValue(value="125000", confidence=0.9, method="manual_entry", source="analyst"),
                CandidateValue(value="125000", confidence=0.55, method="nlp_extraction", source="page_3"),
            ],
        ),
        ConflictContext(
            deal_id="deal_001",
            template_path="model.xlsx/Summary",
            field_name="ebitda",
            field_type="currency",
            candidates=[
                CandidateValue(value=100.0, confidence=0.80, method="ocr_standard"),
                CandidateValue(value=110.0, confidence=0.82, method="nlp_extraction"),
            ],
        ),
        ConflictContext(
            deal_id="deal_001",
            template_path="model.xlsx/Summary",
            field_name="close_date",
            field_type="date",
            candidates=[
                CandidateValue(value="2024-03-31", confidence=0.7, method="ocr_standard"),
                CandidateValue(value="2024-06-30", confidence=0.65, method="nlp_extraction"),
            ],
        ),
    ]

    for context in contexts:
        outcome = system.resolve(context)
        print(f"\n{context.field_name}:")
        print(f"  Conflict type: {outcome.conflict_type.value}")
        print(f"  Strategy: {outcome.strategy_key.value}")
        print(f"  Resolved value: {outcome.resolved_value}")
        print(f"  Confidence: {outcome.final_confidence:.2f}")
        print(f"  Needs review: {outcome.requires_review}")


def demo_corrections(system: ArbiterSystem):
    """Demonstrate correction learning."""
    print("\n" + "="*60)
    print("CORRECTION LEARNING DEMO")
    print("="*60)

    correction = system.correct_field(
        "deal_001", "model.xlsx/Summary", "revenue", "127500",
        user_id="analyst_1", reason="Restated in Q2 filing",
    )
    print(f"\nCorrection {correction.id}: weight {correction.learning_weight:.2f}")

    for i in range(5):
        system.corrections.monitor_template_changes(
            f"deal_{i:03d}", "model.xlsx",
            before={"headcount": "1200"},
            after={"headcount": "1,200"},
            user_id="analyst_1",
        )

    for pattern in system.corrections.get_learning_patterns().values():
        print(f"  Pattern {pattern.field_name}: {pattern.confidence_level.value} "
              f"({pattern.frequency_count} corrections)")

    applied = system.corrections.apply_learning({"headcount": "4800"})
    print(f"\nApplied learning: {applied.enhanced_data}")

    insights = system.corrections.get_learning_insights()
    for action in insights.recommended_actions:
        print(f"  - {action}")


def main():
    """Run all demos."""
    configure_logging()

    with tempfile.TemporaryDirectory() as tmpdir:
        config = ArbiterConfig(
            data_directory=Path(tmpdir),
            conflict=ConflictResolutionConfig(apply_learned_adjustments=True),
        )

        with ArbiterSystem(config) as system:
            demo_resolution(system)
            demo_corrections(system)
            print(f"\nStatistics: {system.get_statistics()['conflicts']}")

    print("\n" + "="*60)
    print("ALL DEMOS COMPLETE!")
    print("="*60 + "\n")


if __name__ == "__main__":
    main()
