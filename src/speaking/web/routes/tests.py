"""Speaking test catalogue, progress, results and submission endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from speaking.core import test_flow
from speaking.core.submission import (
    ScoringFailedError,
    SubmissionError,
    SubmittedAnswer,
    submit_test,
)
from speaking.db import feedback_repository, responses_repository, tests_repository
from speaking.db.tests_repository import QuestionRecord, SpeakingTestRecord
from speaking.llm.client import LLMClient
from speaking.storage.object_store import ObjectStore
from speaking.web.auth import CurrentUser, get_current_user
from speaking.web.dependencies import object_store, scoring_client, transcription_client
from speaking.web.schemas import (
    PartInfo,
    PositionResponse,
    ProgressResponse,
    QuestionResponse,
    ResponseItem,
    ResultsResponse,
    SpeakingTestDetailResponse,
    SpeakingTestListResponse,
    SpeakingTestSummary,
    SubmissionResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tests", tags=["tests"])


def _require_test(test_id: str) -> SpeakingTestRecord:
    test = tests_repository.get_test(test_id)
    if test is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Test '{test_id}' not found",
        )
    return test


def _question_to_response(question: QuestionRecord, test: SpeakingTestRecord) -> QuestionResponse:
    preparation = 0
    if question.part_number == 2:
        preparation = test_flow.preparation_seconds(test)
    return QuestionResponse(
        id=question.id,
        part_number=question.part_number,
        sequence_number=question.sequence_number,
        question_text=question.question_text,
        question_type=question.question_type,
        topic=question.topic,
        speaking_time_seconds=test_flow.speaking_seconds(question, test),
        preparation_time_seconds=preparation,
    )


@router.get("", response_model=SpeakingTestListResponse)
def list_tests() -> SpeakingTestListResponse:
    """List available tests."""
    tests = tests_repository.list_tests()
    return SpeakingTestListResponse(
        tests=[
            SpeakingTestSummary(
                id=t.id,
                title=t.title,
                description=t.description,
                book_number=t.book_number,
                test_number=t.test_number,
            )
            for t in tests
        ],
        count=len(tests),
    )


@router.get("/{test_id}", response_model=SpeakingTestDetailResponse)
def get_test(test_id: str) -> SpeakingTestDetailResponse:
    """Get a test with its questions and timing."""
    test = _require_test(test_id)
    questions = tests_repository.get_questions(test_id)
    if not questions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No questions found for this test",
        )

    parts = []
    for part_index in range(test_flow.PART_COUNT):
        in_part = test_flow.part_questions(questions, part_index)
        part_number = part_index + 1
        parts.append(
            PartInfo(
                part_number=part_number,
                name=test_flow.PART_NAMES[part_number],
                question_count=len(in_part),
                speaking_seconds=test_flow.speaking_seconds(in_part[0], test) if in_part
                else test_flow.DEFAULT_SPEAKING_SECONDS[part_number],
            )
        )

    return SpeakingTestDetailResponse(
        id=test.id,
        title=test.title,
        description=test.description,
        part1_duration_seconds=test.part1_duration_seconds,
        part2_duration_seconds=test.part2_duration_seconds,
        part2_preparation_seconds=test.part2_preparation_seconds,
        part3_duration_seconds=test.part3_duration_seconds,
        parts=parts,
        questions=[_question_to_response(q, test) for q in questions],
    )


@router.get("/{test_id}/progress", response_model=ProgressResponse)
def get_progress(
    test_id: str,
    user: CurrentUser = Depends(get_current_user),
) -> ProgressResponse:
    """Resume position of the current user in a test."""
    test = _require_test(test_id)
    questions = tests_repository.get_questions(test_id)
    responses = {
        r.test_question_id: r
        for r in responses_repository.list_responses_for_test(user.id, test_id)
    }

    position = test_flow.determine_position(questions, responses)
    question = test_flow.current_question(questions, position)
    preparing = test_flow.needs_preparation(question, position.question_index, test, responses)

    return ProgressResponse(
        test_id=test_id,
        position=PositionResponse(**position.to_dict()),
        current_question=_question_to_response(question, test) if question else None,
        needs_preparation=preparing,
        preparation_seconds=test_flow.preparation_seconds(test) if preparing else 0,
        progress=test_flow.calculate_progress(questions, position),
        answered=len(responses),
        total=len(questions),
    )


@router.get("/{test_id}/results", response_model=ResultsResponse)
def get_results(
    test_id: str,
    user: CurrentUser = Depends(get_current_user),
) -> ResultsResponse:
    """Latest feedback of the current user for a test."""
    _require_test(test_id)
    question_ids = [q.id for q in tests_repository.get_questions(test_id)]
    responses = responses_repository.list_responses_for_test(user.id, test_id)

    return ResultsResponse(
        test_id=test_id,
        feedback=feedback_repository.get_latest_test_feedback(user.id, test_id),
        question_feedback=feedback_repository.get_question_feedback(user.id, question_ids),
        responses=[ResponseItem(**r.to_dict()) for r in responses],
    )


@router.post("/{test_id}/submit", response_model=SubmissionResponse)
def submit(
    test_id: str,
    user: CurrentUser = Depends(get_current_user),
    client: LLMClient = Depends(scoring_client),
    stt_client: LLMClient = Depends(transcription_client),
    store: ObjectStore = Depends(object_store),
) -> SubmissionResponse:
    """Transcribe and score every recorded answer of the current user."""
    _require_test(test_id)
    answers = [
        SubmittedAnswer.from_response(r)
        for r in responses_repository.list_responses_for_test(user.id, test_id)
    ]

    try:
        result = submit_test(
            user.id,
            test_id,
            answers,
            client=client,
            store=store,
            transcription_client=stt_client,
        )
    except ScoringFailedError as e:
        logger.error("test_submission_scoring_failed", test_id=test_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)) from e
    except SubmissionError as e:
        logger.warning("test_submission_failed", test_id=test_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return SubmissionResponse(**result.to_dict())
