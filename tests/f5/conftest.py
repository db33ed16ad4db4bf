"""Fixtures for F5 tests - Web API and CLI."""

from typing import Any
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient

from speaking.config.app_config import RecordingConfig
from speaking.core.identity import external_to_uuid
from speaking.core.recording import RecordingManager
from speaking.storage.object_store import ObjectStore
from speaking.web import dependencies
from speaking.web.api import create_app

SECRET = "test-session-secret-with-at-least-32-bytes"
EXTERNAL_ID = "user_2abc"
USER_ID = external_to_uuid(EXTERNAL_ID)


def make_token(subject: str = EXTERNAL_ID, secret: str = SECRET, **claims: Any) -> str:
    """Signed session token for a subject."""
    payload = {"sub": subject, "email": f"{subject}@example.com", **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def mock_response_feedback() -> dict[str, Any]:
    """Standard mock response for single-answer scoring."""
    return {
        "fluency_coherence_score": 7.0,
        "lexical_resource_score": 6.5,
        "grammar_accuracy_score": 6.5,
        "pronunciation_score": 7.0,
        "overall_band_score": 7.0,
        "general_feedback": "Fluent answer with good detail.",
        "model_answer": "I come from a small coastal town...",
    }


@pytest.fixture
def mock_complete_test_feedback() -> dict[str, Any]:
    """Standard mock response for complete-test scoring."""
    return {
        "feedback": {
            "overall_band_score": 6.5,
            "fluency_coherence_score": 6.5,
            "lexical_resource_score": 6.5,
            "grammar_accuracy_score": 6.0,
            "pronunciation_score": 7.0,
            "general_feedback": "Consistent performance.",
            "strengths": "- Natural intonation",
            "areas_for_improvement": "- Wider range of tenses",
            "study_advice": "- Practise Part 3 opinion questions",
        },
        "questionFeedback": {
            "cambridge-17-test-1-p1-q1": {"band_score": 6.5, "feedback": "Direct answer."},
        },
    }


@pytest.fixture
def mock_llm_client(mock_response_feedback):
    """Mock LLM client for transcription and scoring."""
    client = MagicMock()
    client.config = MagicMock()
    client.config.provider = "openai"
    client.config.model = "test-model"

    client.transcribe.return_value = "I grew up in a small town by the sea."
    client.simple_json.return_value = mock_response_feedback

    return client


@pytest.fixture
def store(workspace) -> ObjectStore:
    store = ObjectStore(workspace / "storage")
    store.create_bucket()
    return store


@pytest.fixture
def manager(workspace) -> RecordingManager:
    return RecordingManager(settings=RecordingConfig())


@pytest.fixture
def app(workspace, monkeypatch, mock_llm_client, store, manager):
    """App with mocked model clients, a temporary store and a session secret."""
    monkeypatch.setenv("SPEAKING_JWT_SECRET", SECRET)

    app = create_app()
    app.dependency_overrides[dependencies.transcription_client] = lambda: mock_llm_client
    app.dependency_overrides[dependencies.scoring_client] = lambda: mock_llm_client
    app.dependency_overrides[dependencies.object_store] = lambda: store
    app.dependency_overrides[dependencies.recording_manager] = lambda: manager
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def token():
    """Factory for signed session tokens."""
    return make_token


@pytest.fixture
def user_id() -> str:
    """Internal ID of the user in the default token."""
    return USER_ID


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}
