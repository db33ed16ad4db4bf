"""Tests for whole-test submission (F4)."""

import base64

import pytest

from speaking.core.submission import (
    ScoringFailedError,
    SubmissionError,
    SubmittedAnswer,
    submit_test,
)
from speaking.core.transcriber import TRANSCRIPTION_FAILED
from speaking.db import feedback_repository, responses_repository
from speaking.db.seed import sample_test_id
from speaking.llm.client import LLMError

TEST_ID = sample_test_id(17, 1)


def qid(suffix: str) -> str:
    return f"{TEST_ID}-{suffix}"


@pytest.fixture
def answers():
    return [
        SubmittedAnswer(question_id=qid("p1-q1"), audio=b"answer-one"),
        SubmittedAnswer(question_id=qid("p2-q1"), audio=b"answer-two", content_type="audio/mp4"),
    ]


class TestSubmitTest:
    """Tests for submit_test."""

    def test_scores_and_saves(self, user, store, mock_llm_client, answers):
        result = submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store)

        assert result.score.feedback.feedback.overall_band_score == 6.0
        assert result.failed_transcriptions == []
        assert [r.test_question_id for r in result.responses] == [qid("p1-q1"), qid("p2-q1")]
        assert all(r.transcript == "I usually read before going to sleep." for r in result.responses)

        saved = responses_repository.list_responses_for_test(user, TEST_ID)
        assert len(saved) == 2
        assert saved[1].audio_url.endswith(".mp4")
        assert store.read(store.path_from_url(saved[0].audio_url)) == b"answer-one"
        assert feedback_repository.get_latest_test_feedback(user, TEST_ID)["band_score"] == 6.0

    def test_reports_progress(self, user, store, mock_llm_client, answers):
        progress = []
        submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store, on_progress=progress.append)
        assert progress == [10, 30, 60, 80, 100]

    def test_skipped_questions_in_prompt(self, user, store, mock_llm_client, answers):
        submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store)
        prompt = mock_llm_client.simple_json.call_args.kwargs["user_message"]
        assert "skipped 4 out of 6 questions" in prompt
        assert "Question (Part 2):" in prompt

    def test_existing_transcript_not_retranscribed(self, user, store, mock_llm_client):
        answer = SubmittedAnswer(
            question_id=qid("p1-q1"),
            audio_url="data:audio/webm;base64," + base64.b64encode(b"x").decode(),
            transcript="Already transcribed.",
        )

        result = submit_test(user, TEST_ID, [answer], client=mock_llm_client, store=store)

        mock_llm_client.transcribe.assert_not_called()
        assert result.responses[0].transcript == "Already transcribed."

    def test_audio_read_from_store(self, user, store, mock_llm_client):
        url = store.upload(f"{user}/stored.webm", b"stored-audio")
        answer = SubmittedAnswer(question_id=qid("p3-q1"), audio_url=url)

        submit_test(user, TEST_ID, [answer], client=mock_llm_client, store=store)

        assert mock_llm_client.transcribe.call_args[0][0] == b"stored-audio"

    def test_separate_transcription_client(self, user, store, mock_llm_client, answers):
        from unittest.mock import MagicMock

        stt = MagicMock()
        stt.transcribe.return_value = "From the speech client."

        result = submit_test(
            user, TEST_ID, answers, client=mock_llm_client, store=store, transcription_client=stt
        )

        mock_llm_client.transcribe.assert_not_called()
        assert result.responses[0].transcript == "From the speech client."

    def test_failed_transcription_uses_placeholder(self, user, store, mock_llm_client, answers):
        """Answers that cannot be transcribed are still scored."""
        mock_llm_client.transcribe.side_effect = LLMError("Transcription call failed")

        result = submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store)

        assert result.failed_transcriptions == [qid("p1-q1"), qid("p2-q1")]
        assert result.responses[0].transcript == TRANSCRIPTION_FAILED
        assert TRANSCRIPTION_FAILED in mock_llm_client.simple_json.call_args.kwargs["user_message"]

    def test_only_completed_answers_with_audio(self, user, store, mock_llm_client):
        answers = [
            SubmittedAnswer(question_id=qid("p1-q1"), audio=b"a"),
            SubmittedAnswer(question_id=qid("p1-q2"), status="skipped", audio=b"b"),
            SubmittedAnswer(question_id=qid("p1-q3")),
            SubmittedAnswer(question_id=f"{sample_test_id(17, 2)}-p1-q1", audio=b"c"),
        ]

        result = submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store)

        assert [r.test_question_id for r in result.responses] == [qid("p1-q1")]

    def test_no_completed_answers(self, user, store, mock_llm_client):
        answers = [SubmittedAnswer(question_id=qid("p1-q1"), status="skipped")]
        with pytest.raises(SubmissionError, match="No completed responses found"):
            submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store)

    def test_unknown_test(self, user, store, mock_llm_client, answers):
        with pytest.raises(SubmissionError, match="No questions found"):
            submit_test(user, "missing-test", answers, client=mock_llm_client, store=store)

    def test_scoring_failure(self, user, store, mock_llm_client, answers):
        mock_llm_client.simple_json.side_effect = LLMError("Connection refused")
        progress = []

        with pytest.raises(ScoringFailedError, match="Scoring failed"):
            submit_test(
                user, TEST_ID, answers, client=mock_llm_client, store=store, on_progress=progress.append
            )

        assert progress == [10, 30, 60]
        assert responses_repository.list_responses_for_test(user, TEST_ID) == []

    def test_to_dict(self, user, store, mock_llm_client, answers):
        data = submit_test(user, TEST_ID, answers, client=mock_llm_client, store=store).to_dict()
        assert data["test_id"] == TEST_ID
        assert data["feedback"]["band_score"] == 6.0
        assert qid("p1-q1") in data["questionFeedback"]
        assert len(data["responses"]) == 2


class TestSubmittedAnswer:
    def test_from_response(self, user):
        record = responses_repository.upsert_response(
            user, qid("p1-q1"), audio_url="/storage/recordings/a.webm", transcript="Hi"
        )
        answer = SubmittedAnswer.from_response(record)
        assert answer.question_id == qid("p1-q1")
        assert answer.audio_url == "/storage/recordings/a.webm"
        assert answer.has_audio is True

    def test_has_audio(self):
        assert SubmittedAnswer(question_id="q").has_audio is False
        assert SubmittedAnswer(question_id="q", audio=b"x").has_audio is True
