"""Pydantic schemas for the Web API.

Request bodies keep the camelCase field names clients already send.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    timestamp: str


# =============================================================================
# TEST SCHEMAS
# =============================================================================


class SpeakingTestSummary(BaseModel):
    """A test in the catalogue."""

    id: str
    title: str
    description: str | None = None
    book_number: int | None = None
    test_number: int | None = None


class SpeakingTestListResponse(BaseModel):
    """Response for list of tests."""

    tests: list[SpeakingTestSummary]
    count: int


class QuestionResponse(BaseModel):
    """A question with its timing."""

    id: str
    part_number: int
    sequence_number: int
    question_text: str
    question_type: str
    topic: str | None = None
    speaking_time_seconds: int
    preparation_time_seconds: int = 0


class PartInfo(BaseModel):
    """Summary of one test part."""

    part_number: int
    name: str
    question_count: int
    speaking_seconds: int


class SpeakingTestDetailResponse(BaseModel):
    """A test with its parts and questions."""

    id: str
    title: str
    description: str | None = None
    part1_duration_seconds: int | None = None
    part2_duration_seconds: int | None = None
    part2_preparation_seconds: int | None = None
    part3_duration_seconds: int | None = None
    parts: list[PartInfo]
    questions: list[QuestionResponse]


class PositionResponse(BaseModel):
    """Resume position within a test."""

    part_index: int
    question_index: int
    part_number: int
    finished: bool = False


class ProgressResponse(BaseModel):
    """Where a user is in a test and what comes next."""

    test_id: str
    position: PositionResponse
    current_question: QuestionResponse | None = None
    needs_preparation: bool = False
    preparation_seconds: int = 0
    progress: dict[str, Any]
    answered: int
    total: int


class ResponseItem(BaseModel):
    """A stored answer."""

    id: str
    test_question_id: str
    audio_url: str | None = None
    transcript: str | None = None
    status: str
    band_score: float | None = None


class ResultsResponse(BaseModel):
    """Feedback of a user for a test."""

    test_id: str
    feedback: dict[str, Any] | None = None
    question_feedback: dict[str, dict[str, Any]] = Field(default_factory=dict)
    responses: list[ResponseItem] = Field(default_factory=list)


# =============================================================================
# TRANSCRIPTION AND SCORING SCHEMAS
# =============================================================================


class TranscribeUrlRequest(BaseModel):
    """JSON body of a transcription request by URL."""

    audioUrl: str | None = None
    isDataUrl: bool = False
    userId: str | None = None
    questionId: str | None = None


class TranscribeResponse(BaseModel):
    """Transcript of an audio file."""

    text: str


class ScoreRequest(BaseModel):
    """Request to score one answer."""

    responseId: str | None = None
    questionText: str | None = None
    transcript: str | None = None
    partNumber: int | None = None


class FeedbackResponse(BaseModel):
    """Scores and feedback for one answer."""

    fluency_coherence_score: float
    lexical_resource_score: float
    grammar_accuracy_score: float
    pronunciation_score: float
    overall_band_score: float
    general_feedback: str = ""
    fluency_coherence_feedback: str = ""
    lexical_resource_feedback: str = ""
    grammar_accuracy_feedback: str = ""
    pronunciation_feedback: str = ""
    model_answer: str = ""


class TranscriptEntry(BaseModel):
    """One answered question of a complete test."""

    questionId: str
    questionText: str = ""
    transcript: str = ""
    partNumber: int = 0


class CompleteTestRequest(BaseModel):
    """Request to score a whole test."""

    userId: str | None = None
    testId: str | None = None
    transcriptData: list[TranscriptEntry] | None = None
    skippedQuestions: list[Any] | int | None = None
    totalQuestions: int | None = None


# =============================================================================
# RECORDING SCHEMAS
# =============================================================================


class RecordingCreate(BaseModel):
    """Request to start recording an answer."""

    questionId: str = Field(..., min_length=1)
    acceptedMimeTypes: list[str] | None = None


class RecordingErrorRequest(BaseModel):
    """Client-side failure while opening the microphone."""

    errorName: str | None = None


class RecordingResponse(BaseModel):
    """State of a recording session."""

    recording_id: str
    question_id: str
    status: str
    mime_type: str
    elapsed_ms: int
    duration_ms: int
    max_duration_seconds: float
    chunks: int
    size_bytes: int
    transcript: str | None = None
    audio_url: str | None = None
    response_id: str | None = None
    error: str | None = None


class SubmissionResponse(BaseModel):
    """Result of submitting a whole test."""

    test_id: str
    feedback: dict[str, Any]
    questionFeedback: dict[str, dict[str, Any]] = Field(default_factory=dict)
    responses: list[ResponseItem] = Field(default_factory=list)
    failed_transcriptions: list[str] = Field(default_factory=list)


class CompleteTestResponse(BaseModel):
    """Overall and per-question feedback of a whole test."""

    feedback: dict[str, Any]
    questionFeedback: dict[str, dict[str, Any]] = Field(default_factory=dict)
