"""Whole-test submission pipeline.

Steps, with the progress reported after each one:

    10  collect completed answers that have audio
    30  upload audio that is not stored yet
    60  transcribe answers without a transcript
    80  score the complete test
    100 save the response rows
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import structlog

from speaking.core.scorer import (
    CompleteTestScore,
    ScoringError,
    TranscriptItem,
    score_complete_test,
)
from speaking.core.transcriber import (
    TRANSCRIPTION_FAILED,
    TranscriptionError,
    decode_data_url,
    data_url_content_type,
    fetch_remote_audio,
    transcribe_bytes,
)
from speaking.db import responses_repository, tests_repository
from speaking.db.responses_repository import ResponseRecord
from speaking.llm.client import LLMClient
from speaking.storage.object_store import (
    ObjectStore,
    StorageError,
    get_object_store,
    store_recording,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]


class SubmissionError(Exception):
    """Test could not be submitted."""


class ScoringFailedError(SubmissionError):
    """The answers were processed but scoring the test failed."""


@dataclass
class SubmittedAnswer:
    """An answer as held by the client at submission time."""

    question_id: str
    status: str = "completed"
    audio: bytes | None = None
    audio_url: str | None = None
    transcript: str | None = None
    content_type: str = "audio/webm"

    @classmethod
    def from_response(cls, record: ResponseRecord) -> SubmittedAnswer:
        return cls(
            question_id=record.test_question_id,
            status=record.status,
            audio_url=record.audio_url,
            transcript=record.transcript,
        )

    @property
    def has_audio(self) -> bool:
        return bool(self.audio) or bool(self.audio_url)


@dataclass
class SubmissionResult:
    """Outcome of a submitted test."""

    test_id: str
    score: CompleteTestScore
    responses: list[ResponseRecord] = field(default_factory=list)
    failed_transcriptions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = self.score.to_dict()
        result["test_id"] = self.test_id
        result["responses"] = [r.to_dict() for r in self.responses]
        result["failed_transcriptions"] = self.failed_transcriptions
        return result


def _load_audio(answer: SubmittedAnswer, store: ObjectStore) -> tuple[bytes, str]:
    """Bytes and MIME type of an answer's audio, wherever it lives."""
    if answer.audio:
        return answer.audio, answer.content_type

    url = answer.audio_url or ""
    if url.startswith("data:"):
        return decode_data_url(url), data_url_content_type(url)

    path = store.path_from_url(url)
    if path is not None:
        return store.read(path), answer.content_type

    if url.startswith(("http://", "https://")):
        return fetch_remote_audio(url), answer.content_type

    raise TranscriptionError("No audio data available")


def _transcribe_answer(
    answer: SubmittedAnswer,
    store: ObjectStore,
    client: LLMClient | None,
) -> str:
    try:
        audio, content_type = _load_audio(answer, store)
        result = transcribe_bytes(audio, content_type=content_type, client=client)
    except (TranscriptionError, StorageError) as e:
        logger.warning("submission_transcription_failed", question_id=answer.question_id, error=str(e))
        return TRANSCRIPTION_FAILED

    return result.text or TRANSCRIPTION_FAILED


def submit_test(
    user_id: str,
    test_id: str,
    answers: Iterable[SubmittedAnswer],
    client: LLMClient | None = None,
    store: ObjectStore | None = None,
    transcription_client: LLMClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> SubmissionResult:
    """Upload, transcribe, score and save every answer of a test.

    Answers that fail to transcribe are scored with a placeholder
    transcript instead of aborting the submission.

    Args:
        user_id: Internal user UUID
        test_id: ID of the test being submitted
        answers: Answers held by the client, one per question
        client: LLM client for scoring, and for transcription unless
            transcription_client is given
        store: Object store for audio (global store if not provided)
        transcription_client: LLM client for speech-to-text
        on_progress: Called with 10, 30, 60, 80 and 100

    Raises:
        SubmissionError: If there are no completed answers, the test does
            not exist, or scoring fails
    """

    def report(progress: int) -> None:
        logger.debug("submission_progress", test_id=test_id, progress=progress)
        if on_progress is not None:
            on_progress(progress)

    questions = tests_repository.get_questions(test_id)
    if not questions:
        raise SubmissionError(f"No questions found for test '{test_id}'")
    questions_by_id = {q.id: q for q in questions}

    completed = [
        a
        for a in answers
        if a.status == "completed" and a.has_audio and a.question_id in questions_by_id
    ]
    if not completed:
        raise SubmissionError("No completed responses found")

    logger.info("submission_started", test_id=test_id, answers=len(completed))
    report(10)

    if store is None:
        store = get_object_store()

    for answer in completed:
        if answer.audio and not answer.audio_url:
            answer.audio_url = store_recording(
                store, user_id, answer.question_id, answer.audio, answer.content_type
            )
    report(30)

    failed: list[str] = []
    for answer in completed:
        if answer.transcript:
            continue
        answer.transcript = _transcribe_answer(answer, store, transcription_client or client)
        if answer.transcript == TRANSCRIPTION_FAILED:
            failed.append(answer.question_id)
    report(60)

    transcripts = [
        TranscriptItem(
            question_id=answer.question_id,
            question_text=questions_by_id[answer.question_id].question_text,
            transcript=answer.transcript or TRANSCRIPTION_FAILED,
            part_number=questions_by_id[answer.question_id].part_number,
        )
        for answer in completed
    ]

    try:
        score = score_complete_test(
            user_id,
            test_id,
            transcripts,
            skipped_questions=len(questions) - len(completed),
            total_questions=len(questions),
            client=client,
        )
    except ScoringError as e:
        raise ScoringFailedError(f"Scoring failed: {e}") from e
    report(80)

    saved = [
        responses_repository.upsert_response(
            user_id,
            answer.question_id,
            audio_url=answer.audio_url,
            transcript=answer.transcript,
            status="completed",
        )
        for answer in completed
    ]
    report(100)

    logger.info(
        "submission_completed",
        test_id=test_id,
        saved=len(saved),
        failed_transcriptions=len(failed),
    )
    return SubmissionResult(
        test_id=test_id,
        score=score,
        responses=saved,
        failed_transcriptions=failed,
    )
