"""Shared FastAPI dependencies.

Overridden in tests through ``app.dependency_overrides``.
"""

from __future__ import annotations

from speaking.core.recording import RecordingManager, get_recording_manager
from speaking.core.scorer import get_scoring_client
from speaking.core.transcriber import get_transcription_client
from speaking.llm.client import LLMClient
from speaking.storage.object_store import ObjectStore, get_object_store


def transcription_client() -> LLMClient:
    return get_transcription_client()


def scoring_client() -> LLMClient:
    return get_scoring_client()


def object_store() -> ObjectStore:
    return get_object_store()


def recording_manager() -> RecordingManager:
    return get_recording_manager()
