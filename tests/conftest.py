"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from llm_json_cleaner.main import app
from llm_json_cleaner.middleware.performance import metrics
from llm_json_cleaner.services.cleaner import JsonCleaner
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.validation import validation_stats


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def cleaner():
    """Fresh cleaner with its own orchestrator and engine."""
    return JsonCleaner()


@pytest.fixture
def context():
    """Factory for cleaning contexts."""

    def _make(text: str, **kwargs) -> CleaningContext:
        return CleaningContext(text, source="test", **kwargs)

    return _make


@pytest.fixture
def reset_stats():
    """Clear the process-wide counters before and after a test."""
    validation_stats.reset()
    metrics.reset()
    yield
    validation_stats.reset()
    metrics.reset()
