"""
Symptom Triage - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import os
import sys
from typing import Callable, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from symptom_triage.config import Settings
from symptom_triage.core.models import PatientProfile
from symptom_triage.core.orchestrator import AssessmentOrchestrator
from symptom_triage.core.session_store import InMemorySessionStore
from symptom_triage.services.keyword_classifier import KeywordTriageClassifier
from symptom_triage.services.triage_classifier import SymptomTriageClassifier


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Fake Provider
# =============================================================================

class FakeProvider:
    """
    Scripted text-generation provider.

    Returns replies in order (the last one repeats) or raises the configured
    error. Every prompt it receives is recorded.
    """

    def __init__(
        self,
        replies: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        model: str = "fake-model",
    ):
        self._replies = list(replies or ["{}"])
        self._error = error
        self._model = model
        self.prompts: List[str] = []

    @property
    def provider_id(self) -> str:
        return f"fake:{self._model}"

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self._error is not None:
            raise self._error
        if len(self._replies) > 1:
            return self._replies.pop(0)
        return self._replies[0]


# =============================================================================
# Settings Fixtures
# =============================================================================

def _no_provider_settings(**overrides) -> Settings:
    values = dict(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        anonymize_logs=True,
        openai_api_key="",
        anthropic_api_key="",
        google_api_key="",
        custom_base_url="",
        ollama_base_url="",
        max_active_sessions=100,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings with no provider configured.

    Every credential is set explicitly so that environment variables on the
    test machine cannot select a real provider.
    """
    return _no_provider_settings()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build test settings with overrides."""
    return _no_provider_settings


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def keyword_classifier(test_settings: Settings) -> KeywordTriageClassifier:
    return KeywordTriageClassifier(
        test_settings.emergency_keyword_list,
        test_settings.urgent_keyword_list,
    )


@pytest.fixture
def classifier(test_settings: Settings) -> SymptomTriageClassifier:
    """Keyword-only classifier (no provider)."""
    return SymptomTriageClassifier(provider=None, settings=test_settings)


@pytest.fixture
def make_classifier(test_settings: Settings) -> Callable[..., SymptomTriageClassifier]:
    """Build a classifier around a FakeProvider."""
    def _make(
        replies: Optional[List[str]] = None,
        error: Optional[Exception] = None,
    ) -> SymptomTriageClassifier:
        return SymptomTriageClassifier(
            provider=FakeProvider(replies=replies, error=error),
            settings=test_settings,
        )
    return _make


# =============================================================================
# Session Fixtures
# =============================================================================

@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Create a fresh in-memory session store."""
    return InMemorySessionStore(max_active_sessions=100)


@pytest.fixture
def patient() -> PatientProfile:
    return PatientProfile(age=34, gender="female", medical_history=["asthma"])


@pytest.fixture
def orchestrator(
    classifier: SymptomTriageClassifier,
    session_store: InMemorySessionStore,
    test_settings: Settings,
) -> AssessmentOrchestrator:
    """Orchestrator with the keyword-only classifier."""
    return AssessmentOrchestrator(
        classifier=classifier,
        store=session_store,
        settings=test_settings,
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def emergency_messages() -> list[str]:
    """Messages containing at least one default emergency keyword."""
    return [
        "I have severe chest pain and can't breathe",
        "My father is unconscious on the floor",
        "She has slurred speech and paralysis on one side",
        "I have a fever and chest pain",
    ]


@pytest.fixture
def urgent_messages() -> list[str]:
    """Messages with urgent keywords but no emergency keyword."""
    return [
        "I have had a fever since yesterday",
        "I feel dizzy and lightheaded",
        "I keep vomiting after every meal",
        "The cut on my hand has swelling and is warm to touch",
    ]


@pytest.fixture
def non_urgent_messages() -> list[str]:
    return [
        "I have a mild headache",
        "My nose is a bit runny",
        "I slept badly last night",
    ]


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings):
    """Create a FastAPI app instance with no provider configured."""
    # Import here so the path setup above has run
    from main import create_app

    return create_app(settings=test_settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
