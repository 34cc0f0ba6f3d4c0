"""
Tests for the correction learning engine.
"""

import hashlib
import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from field_arbiter.config import CorrectionConfig
from field_arbiter.exceptions import InvalidCorrectionError, PatternNotFoundError
from field_arbiter.learning.corrections import (
    CorrectionEngine,
    apply_pattern,
    calculate_learning_weight,
    classify_change,
    detect_changes,
    generate_correction_id,
)
from field_arbiter.models import (
    Correction,
    CorrectionHistoryFilters,
    CorrectionType,
    LearningConfidence,
    LearningPattern,
)
from field_arbiter.storage.base import BaseDocumentStore, StorageError


BASE_TIME = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)


def make_correction(i: int = 0, **overrides) -> Correction:
    fields = {
        "deal_id": "deal_abc",
        "template_id": "model.xlsx",
        "field_name": "revenue",
        "original_value": "1000",
        "corrected_value": "1,000",
        "correction_type": CorrectionType.FIELD_VALUE,
        "user_id": "analyst",
        "timestamp": BASE_TIME + timedelta(minutes=i),
    }
    fields.update(overrides)
    return Correction(**fields)


class FailingStore(BaseDocumentStore):
    """Store whose writes always fail."""

    def load(self, name):
        return None

    def save(self, name, document):
        raise StorageError("read-only filesystem")

    def exists(self, name):
        return False


class TestLearningWeight:
    """Tests for learning weight calculation."""

    def test_floor_applies(self):
        correction = make_correction(original_confidence=0.9)
        assert calculate_learning_weight(correction, 0.1) == 0.1

    def test_unknown_confidence_uses_base(self):
        assert calculate_learning_weight(make_correction(), 0.1) == 0.8

    @pytest.mark.parametrize(
        "correction_type,expected",
        [
            (CorrectionType.FIELD_VALUE, 0.4),
            (CorrectionType.FIELD_MAPPING, 0.6),
            (CorrectionType.TEMPLATE, 0.75),
            (CorrectionType.FORMULA, 0.65),
            (CorrectionType.VALIDATION, 0.3),
            (CorrectionType.CATEGORY, 0.55),
        ],
    )
    def test_scaled_by_original_confidence(self, correction_type, expected):
        correction = make_correction(correction_type=correction_type, original_confidence=0.5)
        assert calculate_learning_weight(correction, 0.1) == pytest.approx(expected)


class TestValidation:
    """Tests for correction validation."""

    def test_missing_deal_id(self):
        with pytest.raises(InvalidCorrectionError) as exc_info:
            CorrectionEngine().submit_correction(make_correction(deal_id=""))
        assert exc_info.value.field == "deal_id"

    def test_missing_field_name(self):
        with pytest.raises(InvalidCorrectionError) as exc_info:
            CorrectionEngine().submit_correction(make_correction(field_name=""))
        assert exc_info.value.field == "field_name"

    def test_category_correction_needs_no_field(self):
        engine = CorrectionEngine()
        stored = engine.submit_correction(
            make_correction(field_name="", correction_type=CorrectionType.CATEGORY)
        )
        assert stored.id

    def test_missing_user_id(self):
        with pytest.raises(InvalidCorrectionError) as exc_info:
            CorrectionEngine().submit_correction(make_correction(user_id=""))
        assert exc_info.value.field == "user_id"
        assert isinstance(exc_info.value, ValueError)

    def test_invalid_correction_has_no_effect(self):
        engine = CorrectionEngine()
        with pytest.raises(InvalidCorrectionError):
            engine.submit_correction(make_correction(user_id=""))
        assert engine.get_learning_model().total_corrections == 0


class TestSubmission:
    """Tests for submitting corrections."""

    def test_id_and_timestamp_filled(self):
        engine = CorrectionEngine()
        stored = engine.submit_correction(make_correction(timestamp=None))

        assert len(stored.id) == 16
        assert stored.timestamp is not None
        assert stored.timestamp.tzinfo is not None

    def test_generated_id(self):
        correction = make_correction()
        nanos = int(BASE_TIME.timestamp()) * 1_000_000_000
        expected = hashlib.sha256(
            f"deal_abc:model.xlsx:revenue:analyst:{nanos}".encode()
        ).hexdigest()[:16]

        assert generate_correction_id(correction, BASE_TIME) == expected
        assert CorrectionEngine().submit_correction(correction).id == expected

    def test_given_id_kept(self):
        stored = CorrectionEngine().submit_correction(make_correction(id="custom-1"))
        assert stored.id == "custom-1"

    def test_learning_model_updated(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction(0, original_confidence=0.5))
        engine.submit_correction(make_correction(1, original_confidence=0.5))

        model = engine.get_learning_model()
        assert model.total_corrections == 2
        assert model.confidence_adjustments["revenue"] == pytest.approx(0.08)
        assert engine.get_confidence_adjustment("revenue") == pytest.approx(0.08)
        assert engine.get_confidence_adjustment("ebitda") == 0.0

        metrics = model.performance_metrics
        assert metrics.total_corrections == 2
        assert metrics.correction_frequency == {"field_value": 2}
        assert metrics.field_accuracy["revenue"] == pytest.approx(0.95 ** 2)
        assert metrics.patterns_learned == 1

    def test_patterns_synced_into_model(self):
        engine = CorrectionEngine()
        for i in range(3):
            engine.submit_correction(make_correction(i))

        patterns = engine.get_learning_patterns()
        assert len(patterns) == 1
        pattern = next(iter(patterns.values()))
        assert pattern.frequency_count == 3
        assert pattern.confidence_level == LearningConfidence.MEDIUM
        assert len(pattern.supporting_examples) == 3

    def test_eviction_oldest_first(self):
        engine = CorrectionEngine(CorrectionConfig(max_correction_history=3))
        # Submitted out of timestamp order
        for i in (4, 0, 3, 1, 2):
            engine.submit_correction(make_correction(i, id=f"c{i}"))

        remaining = engine.get_correction_history()
        assert [c.id for c in remaining] == ["c4", "c3", "c2"]
        assert engine.get_learning_model().total_corrections == 5

    def test_resubmitted_id_replaces(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction(0, id="same", corrected_value="A"))
        engine.submit_correction(make_correction(1, id="same", corrected_value="B"))

        history = engine.get_correction_history()
        assert len(history) == 1
        assert history[0].corrected_value == "B"


class TestTemplateChanges:
    """Tests for turning template diffs into corrections."""

    def test_detect_changes(self):
        before = {"revenue": 1000, "name": "Acme", "removed": "x", "same": 5}
        after = {"revenue": 1200, "name": "Acme", "added": "y", "same": 5.0}

        assert detect_changes(before, after) == {
            "revenue": (1000, 1200),
            "added": (None, "y"),
            "removed": ("x", None),
        }

    @pytest.mark.parametrize(
        "original,corrected,expected",
        [
            (None, "y", "addition"),
            ("x", None, "deletion"),
            ("Acme", "Acme Corp", "refinement"),
            ("ACME CORPORATION", "acme corp", "refinement"),
            ("Acme", "Globex", "replacement"),
        ],
    )
    def test_classify_change(self, original, corrected, expected):
        assert classify_change(original, corrected) == expected

    def test_monitor_template_changes(self):
        engine = CorrectionEngine()
        stored = engine.monitor_template_changes(
            "deal_abc",
            "model.xlsx",
            before={"revenue": 1000, "name": "Acme"},
            after={"revenue": 1200, "name": "Acme Corp"},
            user_id="analyst",
        )

        assert len(stored) == 2
        by_field = {c.field_name: c for c in stored}
        assert by_field["name"].context["change_type"] == "refinement"
        assert by_field["revenue"].context["change_type"] == "replacement"
        assert by_field["revenue"].context["data_size"] == 4
        assert by_field["revenue"].processing_method == "user_input"
        assert engine.get_learning_model().total_corrections == 2

    def test_invalid_changes_skipped(self):
        engine = CorrectionEngine()
        stored = engine.monitor_template_changes(
            "deal_abc", "model.xlsx", before={"a": 1}, after={"a": 2}, user_id=""
        )
        assert stored == []


class TestApplyLearning:
    """Tests for applying learned patterns to documents."""

    def test_apply_pattern_replacement(self):
        pattern = LearningPattern(
            id="p1",
            pattern_type=CorrectionType.FIELD_VALUE,
            field_name="currency",
            original_pattern="US$",
            corrected_pattern="USD",
        )
        assert apply_pattern(pattern, {"currency": "US$ 1000"}) == "USD 1000"
        assert apply_pattern(pattern, {"currency": "EUR"}) is None
        assert apply_pattern(pattern, {"other": "US$"}) is None

    def test_apply_pattern_number_formatting(self):
        pattern = LearningPattern(
            id="p1",
            pattern_type=CorrectionType.FIELD_VALUE,
            field_name="revenue",
            original_pattern="1000",
            corrected_pattern="1,000",
        )
        assert apply_pattern(pattern, {"revenue": "1234567"}) == "1,234,567"
        assert apply_pattern(pattern, {"revenue": "999"}) is None
        assert apply_pattern(pattern, {"revenue": "12.5"}) is None

    def test_low_confidence_patterns_not_applied(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction())

        result = engine.apply_learning({"revenue": "25000"})
        assert result.learning_applied is False
        assert result.enhanced_data == {"revenue": "25000"}

    def test_applies_escalated_patterns(self):
        engine = CorrectionEngine()
        for i in range(5):
            engine.submit_correction(make_correction(i))

        document = {"revenue": "25000", "name": "Acme"}
        result = engine.apply_learning(document)

        assert result.learning_applied is True
        assert result.enhanced_data == {"revenue": "25,000", "name": "Acme"}
        assert result.confidence_adjustments == {"revenue": 0.10}
        assert len(result.applied_patterns) == 1
        assert document["revenue"] == "25000"

    def test_category_specific_patterns(self):
        engine = CorrectionEngine()
        for i in range(3):
            engine.submit_correction(make_correction(i, context={"document_category": "cim"}))

        assert engine.apply_learning({"revenue": "25000"}, "teaser").learning_applied is False
        assert engine.apply_learning({"revenue": "25000"}, "cim").learning_applied is True


class TestQueries:
    """Tests for history, statistics and insights."""

    def test_history_filters(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction(0, user_id="alice"))
        engine.submit_correction(make_correction(1, user_id="bob", field_name="ebitda"))
        engine.submit_correction(make_correction(2, user_id="alice", deal_id="deal_xyz"))
        engine.submit_correction(make_correction(3, user_id="bob", correction_type=CorrectionType.FORMULA))

        def query(**kwargs):
            return [c.user_id + ":" + c.field_name for c in engine.get_correction_history(CorrectionHistoryFilters(**kwargs))]

        assert len(query()) == 4
        assert query(user_id="alice") == ["alice:revenue", "alice:revenue"]
        assert query(field_name="ebitda") == ["bob:ebitda"]
        assert query(deal_id="deal_xyz") == ["alice:revenue"]
        assert query(correction_type=CorrectionType.FORMULA) == ["bob:revenue"]
        assert len(query(start_date=BASE_TIME + timedelta(minutes=1), end_date=BASE_TIME + timedelta(minutes=2))) == 2

    def test_history_newest_first(self):
        engine = CorrectionEngine()
        for i in (2, 0, 1):
            engine.submit_correction(make_correction(i, id=f"c{i}"))

        assert [c.id for c in engine.get_correction_history()] == ["c2", "c1", "c0"]

    def test_statistics(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction(0, user_id="alice"))
        engine.submit_correction(make_correction(1, user_id="bob", field_name="ebitda"))
        engine.submit_correction(make_correction(2, field_name="", correction_type=CorrectionType.CATEGORY))

        stats = engine.get_correction_statistics()
        assert stats.total_corrections == 3
        assert stats.total_active_patterns == 3
        assert stats.corrections_by_type == {"field_value": 2, "document_category": 1}
        assert stats.corrections_by_field == {"revenue": 1, "ebitda": 1}
        assert stats.corrections_by_user == {"alice": 1, "bob": 1, "analyst": 1}
        assert stats.learning_effectiveness == 0.0
        assert stats.learning_version == "1.0.0"

    def test_insights_recommendations(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction(0))
        engine.submit_correction(make_correction(1, correction_type=CorrectionType.FORMULA))

        insights = engine.get_learning_insights()
        assert insights.total_corrections == 2
        assert insights.active_patterns == 2
        assert insights.top_corrections_by_type == {"field_value": 1, "formula_correction": 1}
        assert insights.improvement_trends == {"overall_accuracy": 0.0, "correction_rate": 2.0}
        assert insights.recommended_actions == [
            "Consider increasing training data quality",
            "More correction data needed for better pattern recognition",
            "High correction rate indicates need for model retraining",
        ]

    def test_insights_correction_rate_uses_processed_docs(self):
        engine = CorrectionEngine()
        engine.record_processed_documents(100)
        engine.submit_correction(make_correction(0))

        insights = engine.get_learning_insights()
        assert insights.improvement_trends["correction_rate"] == pytest.approx(0.01)
        assert "High correction rate indicates need for model retraining" not in insights.recommended_actions

    def test_update_learning_pattern(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction())
        pattern_id = next(iter(engine.get_learning_patterns()))

        updated = engine.update_learning_pattern(pattern_id, is_active=False, success_rate=0.9)

        assert updated.is_active is False
        assert engine.get_learning_patterns() == {}
        assert engine.get_learning_patterns(active_only=False)[pattern_id].success_rate == 0.9

    def test_update_unknown_pattern(self):
        with pytest.raises(PatternNotFoundError):
            CorrectionEngine().update_learning_pattern("nope", is_active=True)

    def test_reset(self):
        engine = CorrectionEngine()
        engine.submit_correction(make_correction())
        engine.reset()

        assert engine.get_correction_history() == []
        assert engine.get_learning_patterns(active_only=False) == {}
        assert engine.get_learning_model().total_corrections == 0


class TestMaintenance:
    """Tests for maintenance and persistence."""

    def test_force_learning_update_evaluates_effectiveness(self, correction_config):
        engine = CorrectionEngine(correction_config)
        engine.submit_correction(make_correction(0))
        engine.submit_correction(make_correction(1, field_name="ebitda"))
        ids = list(engine.get_learning_patterns())
        engine.update_learning_pattern(ids[0], success_rate=0.6)
        engine.update_learning_pattern(ids[1], success_rate=0.8)

        assert engine.force_learning_update() is True
        assert engine.get_learning_model().performance_metrics.learning_effectiveness == pytest.approx(0.7)
        assert (correction_config.storage_path / "correction_state.json").exists()

    def test_round_trip(self, correction_config):
        engine = CorrectionEngine(correction_config)
        for i in range(4):
            engine.submit_correction(make_correction(i, original_confidence=0.3))
        engine.submit_correction(make_correction(5, field_name="", correction_type=CorrectionType.CATEGORY))
        assert engine.save_state() is True

        reloaded = CorrectionEngine(correction_config)
        assert [c.model_dump() for c in reloaded.get_correction_history()] == [
            c.model_dump() for c in engine.get_correction_history()
        ]
        assert reloaded.get_learning_model().model_dump() == engine.get_learning_model().model_dump()

        # Pattern detector is seeded from the loaded model
        reloaded.submit_correction(make_correction(6))
        pattern = next(p for p in reloaded.get_learning_patterns().values() if p.field_name == "revenue")
        assert pattern.frequency_count == 5

    def test_save_load_save_is_fixed_point(self, correction_config):
        engine = CorrectionEngine(correction_config)
        for i in range(3):
            engine.submit_correction(make_correction(i))
        engine.save_state()

        path = correction_config.storage_path / "correction_state.json"
        first = json.loads(path.read_text())

        CorrectionEngine(correction_config).save_state()
        second = json.loads(path.read_text())

        first.pop("last_saved")
        second.pop("last_saved")
        assert first == second

    def test_save_failure_logged(self, caplog):
        engine = CorrectionEngine(store=FailingStore())
        engine.submit_correction(make_correction())

        assert engine.save_state() is False
        assert engine.shutdown() is False
        assert "read-only filesystem" in caplog.text
        assert engine.get_learning_model().total_corrections == 1

    def test_unserializable_value_logged_on_save(self, correction_config, caplog):
        class Opaque:
            pass

        engine = CorrectionEngine(correction_config)
        engine.submit_correction(make_correction(corrected_value=Opaque()))

        assert engine.save_state() is False
        assert engine.shutdown() is False
        assert "Failed to serialize correction state" in caplog.text

    def test_corrupted_state_starts_fresh(self, correction_config):
        correction_config.storage_path.mkdir(parents=True)
        (correction_config.storage_path / "correction_state.json").write_text("[]garbage")

        engine = CorrectionEngine(correction_config)
        assert engine.get_correction_history() == []

    def test_background_maintenance_runs(self, correction_config):
        config = correction_config.model_copy(update={"maintenance_interval_seconds": 0.05})
        engine = CorrectionEngine(config)
        engine.submit_correction(make_correction())
        engine.start()

        path = config.storage_path / "correction_state.json"
        deadline = time.monotonic() + 5
        while not path.exists() and time.monotonic() < deadline:
            time.sleep(0.02)

        assert engine.is_running
        assert engine.shutdown() is True
        assert not engine.is_running
        assert path.exists()

    def test_shutdown_saves(self, correction_config):
        engine = CorrectionEngine(correction_config)
        engine.submit_correction(make_correction())
        engine.start()
        engine.shutdown()

        reloaded = CorrectionEngine(correction_config)
        assert len(reloaded.get_correction_history()) == 1
