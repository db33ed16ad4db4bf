"""Fixtures for F3 tests - Transcription and Scoring."""

from typing import Any
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def mock_response_feedback() -> dict[str, Any]:
    """Standard mock response for single-answer scoring."""
    return {
        "fluency_coherence_score": 6.5,
        "lexical_resource_score": 6.0,
        "grammar_accuracy_score": 6.0,
        "pronunciation_score": 7.0,
        "overall_band_score": 6.5,
        "general_feedback": "A relevant answer with some development.",
        "fluency_coherence_feedback": "Speaks at length with occasional hesitation.",
        "lexical_resource_feedback": "Adequate range; some repetition of 'very'.",
        "grammar_accuracy_feedback": "Mix of simple and complex structures.",
        "pronunciation_feedback": "Generally clear.",
        "model_answer": "My hometown is a coastal city in the north...",
    }


@pytest.fixture
def mock_complete_test_feedback() -> dict[str, Any]:
    """Standard mock response for complete-test scoring."""
    return {
        "feedback": {
            "band_score": 6.5,
            "overall_band_score": 6.5,
            "fluency_coherence_score": 6.5,
            "lexical_resource_score": 6.5,
            "grammar_accuracy_score": 6.0,
            "pronunciation_score": 7.0,
            "general_feedback": "Consistent performance across all three parts.",
            "band_scores": {
                "fluency": 6.5,
                "lexical": 6.5,
                "grammar": 6.0,
                "pronunciation": 7.0,
                "overall": 6.5,
            },
            "strengths": "- Good use of linking words",
            "areas_for_improvement": "- Extend Part 3 answers",
            "study_advice": "- Practise speculating about the future",
        },
        "questionFeedback": {
            "cambridge-17-test-1-p1-q1": {"band_score": 6.5, "feedback": "Direct answer."},
            "cambridge-17-test-1-p2-q1": {"band_score": 6.0, "feedback": "Covered all points."},
        },
    }


@pytest.fixture
def mock_llm_client(mock_response_feedback):
    """Mock LLM client that returns fixed responses without calling real LLM."""
    client = MagicMock()
    client.config = MagicMock()
    client.config.provider = "openai"
    client.config.model = "test-model"

    client.is_available.return_value = True
    client.simple_json.return_value = mock_response_feedback
    client.transcribe.return_value = "I live in a small town near the coast."

    return client
