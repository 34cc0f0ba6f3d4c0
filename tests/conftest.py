"""
Pytest configuration and shared fixtures.
"""

import pytest
import tempfile
from pathlib import Path

from field_arbiter.config import ConflictResolutionConfig, CorrectionConfig
from field_arbiter.models import CandidateValue, ConflictContext


@pytest.fixture
def temp_directory():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_deal_id():
    """Provide a sample deal ID."""
    return "deal_abc"


@pytest.fixture
def sample_user_id():
    """Provide a sample user ID."""
    return "analyst_123"


@pytest.fixture
def resolver_config(temp_directory):
    """Resolver configuration persisting into the temp directory."""
    return ConflictResolutionConfig(persistence_path=temp_directory / "conflicts")


@pytest.fixture
def correction_config(temp_directory):
    """Correction configuration persisting into the temp directory."""
    return CorrectionConfig(storage_path=temp_directory / "corrections")


@pytest.fixture
def make_context(sample_deal_id):
    """Factory for conflict contexts from (value, confidence, method) tuples."""

    def _make(*candidates, field_name="revenue", field_type="", **kwargs):
        return ConflictContext(
            deal_id=kwargs.pop("deal_id", sample_deal_id),
            template_path=kwargs.pop("template_path", "model.xlsx/Summary"),
            field_name=field_name,
            field_type=field_type,
            candidates=[
                CandidateValue(value=value, confidence=confidence, method=method, source=f"{method}_pass")
                for value, confidence, method in candidates
            ],
            **kwargs,
        )

    return _make
