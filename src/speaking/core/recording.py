"""Audio capture sessions for single answers.

A RecordingSession tracks one answer from the first chunk to its
transcript:

    idle -> recording -> stopping -> processing -> completed
    any non-terminal state -> error

completed and error return to idle on reset so the answer can be recorded
again. The RecordingManager keeps the active sessions of the service and
drives the hand-off to storage, transcription and the responses table.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import structlog

from speaking.config.app_config import RecordingConfig, load_app_config
from speaking.core.transcriber import TranscriptionError, transcribe_bytes
from speaking.db import responses_repository
from speaking.llm.client import LLMClient
from speaking.storage.object_store import ObjectStore, get_object_store, store_recording

logger = structlog.get_logger(__name__)

DEFAULT_MIME_TYPE = "audio/webm"

NO_AUDIO_MESSAGE = "No audio data captured"
TIMEOUT_MESSAGE = "Failed to process audio due to timeout."
SAVE_FAILED_MESSAGE = "Failed to save response"

MICROPHONE_ERROR_MESSAGES = {
    "NotAllowedError": "Microphone access was denied. Please allow access in your browser settings.",
    "NotFoundError": "No microphone detected. Please connect a microphone and try again.",
    "NotReadableError": "Your microphone is busy or unavailable. Please check other applications using it.",
}
GENERIC_MICROPHONE_MESSAGE = "Failed to start recording."


class RecordingStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TRANSITIONS: dict[RecordingStatus, frozenset[RecordingStatus]] = {
    RecordingStatus.IDLE: frozenset({RecordingStatus.RECORDING, RecordingStatus.ERROR}),
    RecordingStatus.RECORDING: frozenset({RecordingStatus.STOPPING, RecordingStatus.ERROR}),
    RecordingStatus.STOPPING: frozenset({RecordingStatus.PROCESSING, RecordingStatus.ERROR}),
    RecordingStatus.PROCESSING: frozenset({RecordingStatus.COMPLETED, RecordingStatus.ERROR}),
    RecordingStatus.COMPLETED: frozenset({RecordingStatus.IDLE}),
    RecordingStatus.ERROR: frozenset({RecordingStatus.IDLE}),
}


def can_transition(current: RecordingStatus, target: RecordingStatus) -> bool:
    return target in TRANSITIONS[current]


class RecordingError(Exception):
    """Recording could not proceed."""


class RecordingStateError(RecordingError):
    """Operation not allowed in the current recording state."""


class RecordingNotFoundError(RecordingError):
    """No recording session with the given ID."""


class RecordingLimitError(RecordingError):
    """Captured audio exceeds the size limit."""


class MicrophoneError(RecordingError):
    """Microphone could not be opened by the client."""

    def __init__(self, error_name: str | None):
        self.error_name = error_name or ""
        super().__init__(microphone_error_message(error_name))


def microphone_error_message(error_name: str | None) -> str:
    """Human-readable message for a browser media error name."""
    return MICROPHONE_ERROR_MESSAGES.get(error_name or "", GENERIC_MICROPHONE_MESSAGE)


def negotiate_mime_type(
    accepted: Iterable[str] | None = None,
    preferred: Iterable[str] | None = None,
) -> str:
    """Pick the recording format.

    Returns the first preferred MIME type the client accepts. With no
    client list, the first preferred type wins. Falls back to audio/webm.

    Args:
        accepted: MIME types the client can record
        preferred: Ordered preference list (configured list by default)
    """
    if preferred is None:
        preferred = load_app_config().recording.supported_mime_types
    preferred = list(preferred)

    if accepted is None:
        return preferred[0] if preferred else DEFAULT_MIME_TYPE

    normalized = {m.replace(" ", "").lower() for m in accepted}
    for mime_type in preferred:
        if mime_type.replace(" ", "").lower() in normalized:
            return mime_type

    logger.warning("no_preferred_mime_type_supported", accepted=sorted(normalized))
    return DEFAULT_MIME_TYPE


def _now(now: float | None) -> float:
    return time.time() if now is None else now


@dataclass
class RecordingSession:
    """Capture state of one answer."""

    recording_id: str
    user_id: str
    question_id: str
    mime_type: str = DEFAULT_MIME_TYPE
    settings: RecordingConfig = field(default_factory=RecordingConfig)
    max_duration_seconds: float | None = None
    status: RecordingStatus = RecordingStatus.IDLE
    chunks: list[bytes] = field(default_factory=list)
    chunk_count: int = 0
    size_bytes: int = 0
    started_at: float | None = None
    stopped_at: float | None = None
    processing_started_at: float | None = None
    duration_ms: int = 0
    transcript: str | None = None
    audio_url: str | None = None
    response_id: str | None = None
    error: str | None = None
    last_submission_at: float | None = None
    finished_at: float | None = None

    def __post_init__(self):
        if self.max_duration_seconds is None:
            self.max_duration_seconds = self.settings.max_duration_seconds

    @property
    def is_terminal(self) -> bool:
        return self.status in (RecordingStatus.COMPLETED, RecordingStatus.ERROR)

    def _transition(self, target: RecordingStatus) -> None:
        if not can_transition(self.status, target):
            raise RecordingStateError(
                f"Cannot change recording from {self.status.value} to {target.value}"
            )
        logger.debug(
            "recording_transition",
            recording_id=self.recording_id,
            from_status=self.status.value,
            to_status=target.value,
        )
        self.status = target

    def elapsed_ms(self, now: float | None = None) -> int:
        """Milliseconds since start (frozen once stopped)."""
        if self.started_at is None:
            return 0
        end = self.stopped_at if self.stopped_at is not None else _now(now)
        return max(0, int((end - self.started_at) * 1000))

    def start(self, now: float | None = None) -> None:
        """Begin capturing; previous audio and results are discarded."""
        self._transition(RecordingStatus.RECORDING)
        self.chunks = []
        self.chunk_count = 0
        self.size_bytes = 0
        self.finished_at = None
        self.transcript = None
        self.audio_url = None
        self.error = None
        self.duration_ms = 0
        self.started_at = _now(now)
        self.stopped_at = None
        self.processing_started_at = None
        logger.info("recording_started", recording_id=self.recording_id, mime_type=self.mime_type)

    def add_chunk(self, data: bytes, now: float | None = None) -> bool:
        """Buffer a chunk of encoded audio.

        Returns:
            False if the chunk was empty or arrived after the maximum
            duration (which stops the recording)

        Raises:
            RecordingStateError: If the session is not recording
            RecordingLimitError: If the chunk would exceed the audio size limit
        """
        if self.status != RecordingStatus.RECORDING:
            raise RecordingStateError(
                f"Chunks are only accepted while recording (status: {self.status.value})"
            )

        if self.check_timeouts(now):
            return False

        if not data:
            logger.warning("empty_audio_chunk", recording_id=self.recording_id)
            return False

        if self.size_bytes + len(data) > self.settings.max_audio_bytes:
            logger.warning(
                "recording_size_limit_reached",
                recording_id=self.recording_id,
                size_bytes=self.size_bytes,
                chunk_bytes=len(data),
            )
            raise RecordingLimitError(
                f"Recording exceeds the {self.settings.max_audio_bytes} byte limit"
            )

        self.chunks.append(bytes(data))
        self.chunk_count += 1
        self.size_bytes += len(data)
        return True

    def stop(self, now: float | None = None) -> int:
        """Stop capturing and freeze the duration.

        Recordings shorter than the minimum duration are counted as the
        minimum; longer than the maximum as the maximum.

        Returns:
            Recording duration in milliseconds

        Raises:
            RecordingStateError: If the session is not recording
            RecordingError: If no audio was captured (the session moves to error)
        """
        self._transition(RecordingStatus.STOPPING)
        now = _now(now)
        self.stopped_at = now

        elapsed = self.elapsed_ms()
        if elapsed < self.settings.min_duration_ms:
            logger.warning(
                "recording_too_short",
                recording_id=self.recording_id,
                elapsed_ms=elapsed,
                min_duration_ms=self.settings.min_duration_ms,
            )
        max_ms = int(self.max_duration_seconds * 1000)
        self.duration_ms = min(max(elapsed, self.settings.min_duration_ms), max_ms)

        if self.size_bytes == 0:
            self.fail(NO_AUDIO_MESSAGE, now)
            raise RecordingError(NO_AUDIO_MESSAGE)

        logger.info(
            "recording_stopped",
            recording_id=self.recording_id,
            duration_ms=self.duration_ms,
            chunks=self.chunk_count,
            size_kb=round(self.size_bytes / 1024),
        )
        return self.duration_ms

    def begin_processing(self, now: float | None = None) -> None:
        self._transition(RecordingStatus.PROCESSING)
        self.processing_started_at = _now(now)

    def complete(
        self,
        transcript: str,
        audio_url: str | None = None,
        response_id: str | None = None,
        now: float | None = None,
    ) -> None:
        self._transition(RecordingStatus.COMPLETED)
        self.transcript = transcript
        self.finished_at = _now(now)
        if audio_url is not None:
            self.audio_url = audio_url
        if response_id is not None:
            self.response_id = response_id
        logger.info("recording_completed", recording_id=self.recording_id, chars=len(transcript))

    def fail(self, message: str, now: float | None = None) -> None:
        """Move to error with a message; repeated failures replace it.

        Raises:
            RecordingStateError: If the session already completed
        """
        if self.status != RecordingStatus.ERROR:
            self._transition(RecordingStatus.ERROR)
        self.error = message
        self.finished_at = _now(now)
        logger.warning("recording_failed", recording_id=self.recording_id, error=message)

    def reset(self) -> None:
        """Return to idle so the answer can be recorded again."""
        if self.status == RecordingStatus.IDLE:
            return
        self._transition(RecordingStatus.IDLE)
        self.chunks = []
        self.chunk_count = 0
        self.size_bytes = 0
        self.finished_at = None
        self.started_at = None
        self.stopped_at = None
        self.processing_started_at = None
        self.duration_ms = 0
        self.transcript = None
        self.error = None
        self.last_submission_at = None

    def check_timeouts(self, now: float | None = None) -> bool:
        """Apply the maximum recording and processing durations.

        A recording past its maximum duration is stopped. Processing that
        takes longer than the processing timeout fails.

        Returns:
            True if the state changed
        """
        now = _now(now)

        if self.status == RecordingStatus.RECORDING:
            if self.elapsed_ms(now) >= self.max_duration_seconds * 1000:
                logger.info("recording_max_duration_reached", recording_id=self.recording_id)
                try:
                    self.stop(now)
                except RecordingError as e:
                    logger.warning("recording_auto_stop_failed", recording_id=self.recording_id, error=str(e))
                return True

        if self.status == RecordingStatus.PROCESSING and self.processing_started_at is not None:
            if now - self.processing_started_at > self.settings.processing_timeout_seconds:
                self.fail(TIMEOUT_MESSAGE, now)
                return True

        return False

    def audio_blob(self) -> bytes:
        """All buffered chunks joined in arrival order."""
        return b"".join(self.chunks)

    def release_audio(self) -> None:
        """Drop the buffered chunks once the blob has been handed off.

        chunk_count and size_bytes keep describing the captured audio.
        """
        self.chunks = []

    def accept_submission(self, now: float | None = None) -> bool:
        """Duplicate-submission guard.

        Returns:
            False if another submission happened within the duplicate window
        """
        now = _now(now)
        if self.last_submission_at is not None:
            since_ms = (now - self.last_submission_at) * 1000
            if since_ms < self.settings.duplicate_window_ms:
                logger.warning(
                    "duplicate_submission_ignored",
                    recording_id=self.recording_id,
                    since_ms=int(since_ms),
                )
                return False
        self.last_submission_at = now
        return True

    def to_dict(self, now: float | None = None) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "recording_id": self.recording_id,
            "question_id": self.question_id,
            "status": self.status.value,
            "mime_type": self.mime_type,
            "elapsed_ms": self.elapsed_ms(now),
            "duration_ms": self.duration_ms,
            "max_duration_seconds": self.max_duration_seconds,
            "chunks": self.chunk_count,
            "size_bytes": self.size_bytes,
            "transcript": self.transcript,
            "audio_url": self.audio_url,
            "response_id": self.response_id,
            "error": self.error,
        }


class RecordingManager:
    """Registry of active recording sessions.

    Session state changes happen under a lock; storage and transcription
    run outside it.
    """

    def __init__(self, settings: RecordingConfig | None = None):
        self._sessions: dict[str, RecordingSession] = {}
        self._lock = asyncio.Lock()
        self._settings = settings

    @property
    def settings(self) -> RecordingConfig:
        if self._settings is None:
            self._settings = load_app_config().recording
        return self._settings

    def _require(self, recording_id: str, user_id: str | None = None) -> RecordingSession:
        session = self._sessions.get(recording_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise RecordingNotFoundError(f"Recording '{recording_id}' not found")
        return session

    async def create(
        self,
        user_id: str,
        question_id: str,
        accepted_mime_types: Iterable[str] | None = None,
        max_duration_seconds: float | None = None,
        now: float | None = None,
    ) -> RecordingSession:
        """Open a session for an answer and start recording."""
        session = RecordingSession(
            recording_id=str(uuid.uuid4()),
            user_id=user_id,
            question_id=question_id,
            mime_type=negotiate_mime_type(accepted_mime_types, self.settings.supported_mime_types),
            settings=self.settings,
            max_duration_seconds=max_duration_seconds,
        )
        session.start(now)

        async with self._lock:
            self._sweep_locked(now)
            self._sessions[session.recording_id] = session

        return session

    async def get(
        self,
        recording_id: str,
        user_id: str | None = None,
        now: float | None = None,
    ) -> RecordingSession | None:
        """Get a session, applying timeouts first."""
        async with self._lock:
            session = self._sessions.get(recording_id)
            if session is None or (user_id is not None and session.user_id != user_id):
                return None
            session.check_timeouts(now)
            return session

    async def append_chunk(
        self,
        recording_id: str,
        data: bytes,
        user_id: str | None = None,
        now: float | None = None,
    ) -> RecordingSession:
        """Buffer a chunk for a recording.

        Raises:
            RecordingNotFoundError: If the session does not exist
            RecordingStateError: If the session is not recording
        """
        async with self._lock:
            session = self._require(recording_id, user_id)
            session.add_chunk(data, now)
            return session

    async def stop_and_transcribe(
        self,
        recording_id: str,
        user_id: str | None = None,
        client: LLMClient | None = None,
        store: ObjectStore | None = None,
        now: float | None = None,
    ) -> RecordingSession:
        """Stop a recording and turn it into a stored, transcribed response.

        A second submission within the duplicate window returns the session
        unchanged.

        Raises:
            RecordingNotFoundError: If the session does not exist
            RecordingStateError: If the session is not recording
            RecordingError: If no audio was captured
        """
        async with self._lock:
            session = self._require(recording_id, user_id)
            if not session.accept_submission(now):
                return session
            if session.status == RecordingStatus.RECORDING:
                session.stop(now)
            elif session.status != RecordingStatus.STOPPING:
                raise RecordingStateError(
                    f"Recording is not active (status: {session.status.value})"
                )
            session.begin_processing(now)
            audio = session.audio_blob()
            session.release_audio()

        if store is None:
            store = get_object_store()

        audio_url = await asyncio.to_thread(
            store_recording, store, session.user_id, session.question_id, audio, session.mime_type
        )

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(
                    transcribe_bytes, audio, None, session.mime_type, client
                ),
                timeout=self.settings.processing_timeout_seconds,
            )
        except asyncio.TimeoutError:
            async with self._lock:
                if session.status == RecordingStatus.PROCESSING:
                    session.audio_url = audio_url
                    session.fail(TIMEOUT_MESSAGE)
            return session
        except TranscriptionError as e:
            async with self._lock:
                if session.status == RecordingStatus.PROCESSING:
                    session.audio_url = audio_url
                    session.fail(f"Transcription failed: {e}")
            return session

        try:
            response = await asyncio.to_thread(
                responses_repository.upsert_response,
                session.user_id,
                session.question_id,
                audio_url,
                result.text,
                "completed",
            )
        except sqlite3.Error as e:
            logger.error("recording_save_failed", recording_id=session.recording_id, error=str(e))
            async with self._lock:
                if session.status == RecordingStatus.PROCESSING:
                    session.audio_url = audio_url
                    session.transcript = result.text
                    session.fail(SAVE_FAILED_MESSAGE)
            return session

        async with self._lock:
            if session.status == RecordingStatus.PROCESSING:
                session.complete(result.text, audio_url=audio_url, response_id=response.id)

        return session

    async def report_microphone_error(
        self,
        recording_id: str,
        error_name: str | None,
        user_id: str | None = None,
    ) -> RecordingSession:
        """Fail a session because the client could not open its microphone.

        Raises:
            RecordingNotFoundError: If the session does not exist
            RecordingStateError: If the session already completed
        """
        async with self._lock:
            session = self._require(recording_id, user_id)
            session.fail(microphone_error_message(error_name))
            return session

    async def reset(self, recording_id: str, user_id: str | None = None, now: float | None = None) -> RecordingSession:
        """Discard the captured audio and start recording again.

        Raises:
            RecordingNotFoundError: If the session does not exist
            RecordingStateError: If the session is still in flight
        """
        async with self._lock:
            session = self._require(recording_id, user_id)
            if not session.is_terminal and session.status != RecordingStatus.IDLE:
                raise RecordingStateError(
                    f"Cannot re-record while {session.status.value}"
                )
            session.reset()
            session.start(now)
            return session

    async def discard(self, recording_id: str, user_id: str | None = None) -> bool:
        """Forget a session."""
        async with self._lock:
            session = self._sessions.get(recording_id)
            if session is None or (user_id is not None and session.user_id != user_id):
                return False
            del self._sessions[recording_id]

        logger.info("recording_discarded", recording_id=recording_id)
        return True

    def _sweep_locked(self, now: float | None = None) -> int:
        now = _now(now)
        changed = sum(1 for s in self._sessions.values() if s.check_timeouts(now))

        retention = self.settings.retention_seconds
        expired = [
            recording_id
            for recording_id, s in self._sessions.items()
            if s.is_terminal and s.finished_at is not None and now - s.finished_at > retention
        ]
        for recording_id in expired:
            del self._sessions[recording_id]
        if expired:
            logger.info("recording_sessions_evicted", count=len(expired))

        return changed + len(expired)

    async def sweep(self, now: float | None = None) -> int:
        """Apply timeouts and evict finished sessions past retention.

        Returns:
            Number of sessions that changed state or were evicted
        """
        async with self._lock:
            return self._sweep_locked(now)

    async def list_sessions(self, user_id: str | None = None) -> list[RecordingSession]:
        async with self._lock:
            return [
                s for s in self._sessions.values() if user_id is None or s.user_id == user_id
            ]


# Global recording manager instance
_recording_manager: RecordingManager | None = None


def get_recording_manager() -> RecordingManager:
    """Get the global recording manager instance."""
    global _recording_manager
    if _recording_manager is None:
        _recording_manager = RecordingManager()
    return _recording_manager


def reset_recording_manager() -> None:
    """Reset the recording manager (for testing)."""
    global _recording_manager
    _recording_manager = None
