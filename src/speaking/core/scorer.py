"""Band-score evaluation of transcribed answers.

Two entry points:
- score_response: one answer, persisted to the feedback table
- score_complete_test: every answer of a test at once, persisted to
  test_feedback and question_feedback
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any

import structlog

from speaking.config.app_config import load_app_config
from speaking.core.band import (
    BandScoreError,
    FeedbackResult,
    QuestionFeedback,
    TestFeedback,
    default_test_feedback,
)
from speaking.db import feedback_repository, responses_repository
from speaking.llm.client import LLMClient, LLMError
from speaking.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)

PART_PROMPTS = {
    1: "scoring/part1",
    2: "scoring/part2",
    3: "scoring/part3",
}


class ScoringError(Exception):
    """Scoring could not be completed."""


@dataclass
class TranscriptItem:
    """One answered question sent for complete-test scoring."""

    question_id: str
    question_text: str
    transcript: str
    part_number: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptItem:
        """Build from the camelCase payload sent by clients."""
        return cls(
            question_id=str(data.get("questionId") or data.get("question_id") or ""),
            question_text=str(data.get("questionText") or data.get("question_text") or ""),
            transcript=str(data.get("transcript") or ""),
            part_number=int(data.get("partNumber") or data.get("part_number") or 0),
        )


@dataclass
class CompleteTestScore:
    """Result of scoring a whole test."""

    test_id: str
    feedback: TestFeedback
    question_feedback: dict[str, QuestionFeedback] = field(default_factory=dict)
    skipped_questions: int = 0
    total_questions: int = 0
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Shape returned by the complete-test endpoint."""
        return {
            "feedback": self.feedback.to_dict(),
            "questionFeedback": {
                question_id: qf.to_dict() for question_id, qf in self.question_feedback.items()
            },
        }


def get_scoring_client() -> LLMClient:
    """Build an LLM client for the configured scoring provider."""
    settings = load_app_config().scoring
    return LLMClient(provider=settings.provider, model=settings.model)


def build_response_prompt(question_text: str, transcript: str, part_number: int) -> str:
    """Build the evaluation prompt for one answer.

    Unknown part numbers get no part-specific instructions.
    """
    part_key = PART_PROMPTS.get(part_number)
    part_instructions = get_prompt(part_key) if part_key else ""

    return get_prompt(
        "scoring/response",
        part_instructions=part_instructions,
        question_text=question_text,
        transcript=transcript,
    )


def score_response(
    response_id: str,
    question_text: str,
    transcript: str,
    part_number: int,
    client: LLMClient | None = None,
    persist: bool = True,
) -> FeedbackResult:
    """Score one transcribed answer.

    Args:
        response_id: ID of the user response being scored
        question_text: Question the candidate answered
        transcript: Transcribed answer
        part_number: Test part (1-3) of the question
        client: LLM client (built from config if not provided)
        persist: Save the feedback row and mirror the band on the response

    Returns:
        Normalized FeedbackResult

    Raises:
        ScoringError: If the model call, its answer or the save fails
    """
    if not transcript or not transcript.strip():
        raise ScoringError("Transcript is empty")

    settings = load_app_config().scoring
    if client is None:
        client = get_scoring_client()

    prompt = build_response_prompt(question_text, transcript, part_number)

    try:
        data = client.simple_json(
            system_prompt=get_prompt("scoring/system"),
            user_message=prompt,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    except LLMError as e:
        logger.error("response_scoring_failed", response_id=response_id, error=str(e))
        raise ScoringError(f"Failed to score response: {e}") from e

    try:
        result = FeedbackResult.from_llm(data)
    except BandScoreError as e:
        logger.error("response_scoring_invalid", response_id=response_id, error=str(e))
        raise ScoringError(f"Invalid scoring result: {e}") from e

    if persist:
        try:
            feedback_repository.insert_feedback(response_id, result.to_dict())
            responses_repository.set_band_score(response_id, result.overall_band_score)
        except sqlite3.Error as e:
            logger.error("response_feedback_save_failed", response_id=response_id, error=str(e))
            raise ScoringError(f"Failed to save feedback: {e}") from e

    logger.info(
        "response_scored",
        response_id=response_id,
        part=part_number,
        overall=result.overall_band_score,
    )
    return result


def format_transcripts(transcripts: list[TranscriptItem]) -> str:
    """Render answers as labelled blocks separated by blank lines."""
    blocks = []
    for item in transcripts:
        blocks.append(
            f"Question ID: {item.question_id}\n"
            f"Question (Part {item.part_number}): {item.question_text}\n"
            f"Student Response: {item.transcript}"
        )
    return "\n\n".join(blocks)


def build_complete_test_prompt(
    transcripts: list[TranscriptItem],
    skipped_questions: int = 0,
    total_questions: int | None = None,
) -> str:
    """Build the evaluation prompt for a whole test."""
    if total_questions is None:
        total_questions = len(transcripts) + skipped_questions

    skipped_info = ""
    if skipped_questions > 0:
        skipped_info = (
            f"\nNOTE: The student skipped {skipped_questions} out of {total_questions} questions."
        )

    first_question_id = transcripts[0].question_id if transcripts else "question_id"

    return get_prompt(
        "scoring/complete_test",
        formatted_transcripts=format_transcripts(transcripts),
        skipped_info=skipped_info,
        first_question_id=first_question_id,
    )


def _parse_question_feedback(raw: Any) -> dict[str, QuestionFeedback]:
    if not isinstance(raw, dict):
        return {}

    parsed: dict[str, QuestionFeedback] = {}
    for question_id, entry in raw.items():
        try:
            parsed[str(question_id)] = QuestionFeedback.from_llm(entry)
        except BandScoreError as e:
            logger.warning("question_feedback_invalid", question_id=question_id, error=str(e))
    return parsed


def _save_complete_test(user_id: str, score: CompleteTestScore) -> None:
    if not score.used_fallback:
        try:
            feedback_repository.insert_test_feedback(user_id, score.test_id, score.feedback.to_dict())
        except sqlite3.Error as e:
            logger.error("test_feedback_save_failed", test_id=score.test_id, error=str(e))

    for question_id, qf in score.question_feedback.items():
        try:
            feedback_repository.insert_question_feedback(user_id, question_id, qf.to_dict())
        except sqlite3.Error as e:
            logger.error("question_feedback_save_failed", question_id=question_id, error=str(e))


def score_complete_test(
    user_id: str,
    test_id: str,
    transcripts: list[TranscriptItem],
    skipped_questions: int = 0,
    total_questions: int | None = None,
    client: LLMClient | None = None,
    persist: bool = True,
) -> CompleteTestScore:
    """Score every answer of a test in one model call.

    A missing or malformed feedback block falls back to neutral feedback.
    Save failures are logged and never fail the call.

    Raises:
        ScoringError: If there is nothing to score or the model call fails
    """
    if not transcripts:
        raise ScoringError("No transcripts to score")

    if total_questions is None:
        total_questions = len(transcripts) + skipped_questions

    settings = load_app_config().scoring
    if client is None:
        client = get_scoring_client()

    prompt = build_complete_test_prompt(transcripts, skipped_questions, total_questions)

    logger.info(
        "complete_test_scoring_started",
        test_id=test_id,
        answered=len(transcripts),
        skipped=skipped_questions,
    )

    try:
        data = client.simple_json(
            system_prompt=get_prompt("scoring/complete_test_system"),
            user_message=prompt,
            temperature=settings.complete_test_temperature,
            max_tokens=settings.max_tokens,
        )
    except LLMError as e:
        logger.error("complete_test_scoring_failed", test_id=test_id, error=str(e))
        raise ScoringError(f"Failed to score test: {e}") from e

    used_fallback = False
    raw_feedback = data.get("feedback")
    try:
        if not isinstance(raw_feedback, dict):
            raise BandScoreError("Missing feedback block")
        test_feedback = TestFeedback.from_llm(raw_feedback)
    except BandScoreError as e:
        logger.warning("complete_test_feedback_fallback", test_id=test_id, error=str(e))
        test_feedback = default_test_feedback()
        used_fallback = True

    score = CompleteTestScore(
        test_id=test_id,
        feedback=test_feedback,
        question_feedback=_parse_question_feedback(data.get("questionFeedback")),
        skipped_questions=skipped_questions,
        total_questions=total_questions,
        used_fallback=used_fallback,
    )

    if persist:
        _save_complete_test(user_id, score)

    logger.info(
        "complete_test_scored",
        test_id=test_id,
        overall=test_feedback.feedback.overall_band_score,
        questions=len(score.question_feedback),
    )
    return score
