"""Fixtures for F4 tests - Recording, Test Flow and Submission."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from speaking.db.users_repository import ensure_user
from speaking.storage.object_store import ObjectStore

USER_ID = "86f4700f-d313-f14b-8d46-ce3138d4cc8a"


@pytest.fixture
def mock_complete_test_feedback() -> dict[str, Any]:
    """Standard mock response for complete-test scoring."""
    return {
        "feedback": {
            "overall_band_score": 6.0,
            "fluency_coherence_score": 6.0,
            "lexical_resource_score": 6.0,
            "grammar_accuracy_score": 5.5,
            "pronunciation_score": 6.5,
            "general_feedback": "Answers are relevant but short.",
            "strengths": "- Clear pronunciation",
            "areas_for_improvement": "- Develop answers with examples",
            "study_advice": "- Record yourself answering Part 2 cue cards",
        },
        "questionFeedback": {
            "cambridge-17-test-1-p1-q1": {"band_score": 6.0, "feedback": "Short but relevant."},
        },
    }


@pytest.fixture
def mock_llm_client(mock_complete_test_feedback):
    """Mock LLM client for transcription and scoring."""
    client = MagicMock()
    client.config = MagicMock()
    client.config.provider = "openai"
    client.config.model = "test-model"

    client.transcribe.return_value = "I usually read before going to sleep."
    client.simple_json.return_value = mock_complete_test_feedback

    return client


@pytest.fixture
def user(workspace) -> str:
    """ID of a user row in the test database."""
    ensure_user(USER_ID, external_id="user_2abc")
    return USER_ID


@pytest.fixture
def store(workspace) -> ObjectStore:
    store = ObjectStore(workspace / "storage")
    store.create_bucket()
    return store
