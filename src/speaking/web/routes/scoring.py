"""Band-score endpoints for single answers and complete tests."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from speaking.core.identity import external_to_uuid
from speaking.core.scorer import (
    ScoringError,
    TranscriptItem,
    score_complete_test,
    score_response,
)
from speaking.db import responses_repository, tests_repository
from speaking.llm.client import LLMClient
from speaking.web.auth import CurrentUser, get_current_user
from speaking.web.dependencies import scoring_client
from speaking.web.schemas import (
    CompleteTestRequest,
    CompleteTestResponse,
    FeedbackResponse,
    ScoreRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["scoring"])


@router.post("/score", response_model=FeedbackResponse)
def score(
    body: ScoreRequest,
    user: CurrentUser = Depends(get_current_user),
    client: LLMClient = Depends(scoring_client),
) -> FeedbackResponse:
    """Score one answer and save the feedback."""
    if not body.responseId or not body.questionText or not body.transcript:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields",
        )

    response = responses_repository.get_response(body.responseId)
    if response is None or response.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Response '{body.responseId}' not found",
        )

    try:
        result = score_response(
            body.responseId,
            body.questionText,
            body.transcript,
            body.partNumber or 0,
            client=client,
        )
    except ScoringError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or "Failed to score response",
        ) from e

    return FeedbackResponse(**result.to_dict())


def _skipped_count(skipped: list | int | None) -> int:
    if isinstance(skipped, list):
        return len(skipped)
    return skipped or 0


@router.post("/score-complete-test", response_model=CompleteTestResponse)
def score_test(
    body: CompleteTestRequest,
    user: CurrentUser = Depends(get_current_user),
    client: LLMClient = Depends(scoring_client),
) -> CompleteTestResponse:
    """Score every answer of a test and save the feedback."""
    if not body.testId or body.transcriptData is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: userId, testId, or transcriptData",
        )
    if body.userId and external_to_uuid(body.userId) != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="userId does not match the session",
        )
    if not body.transcriptData:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="transcriptData must not be empty",
        )

    transcripts = []
    for entry in body.transcriptData:
        item = TranscriptItem.from_dict(entry.model_dump())
        if not item.question_text or not item.part_number:
            question = tests_repository.get_question(item.question_id)
            if question is not None:
                item.question_text = item.question_text or question.question_text
                item.part_number = item.part_number or question.part_number
        transcripts.append(item)

    skipped = _skipped_count(body.skippedQuestions)

    try:
        result = score_complete_test(
            user.id,
            body.testId,
            transcripts,
            skipped_questions=skipped,
            total_questions=body.totalQuestions,
            client=client,
        )
    except ScoringError as e:
        logger.error("score_complete_test_failed", test_id=body.testId, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {e}",
        ) from e

    return CompleteTestResponse(**result.to_dict())
