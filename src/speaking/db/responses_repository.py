"""Repository functions for user responses.

A user has at most one response per question; saving again overwrites the
audio, transcript and status of the existing row.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, asdict
from typing import Any

import structlog

from speaking.db.database import get_db

logger = structlog.get_logger(__name__)

RESPONSE_STATUSES = ("idle", "in_progress", "completed", "skipped", "error")


@dataclass
class ResponseRecord:
    """A recorded answer to one question."""

    id: str
    user_id: str
    test_question_id: str
    audio_url: str | None
    transcript: str | None
    status: str
    band_score: float | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_record(row: sqlite3.Row) -> ResponseRecord:
    return ResponseRecord(**dict(row))


def upsert_response(
    user_id: str,
    question_id: str,
    audio_url: str | None = None,
    transcript: str | None = None,
    status: str = "completed",
) -> ResponseRecord:
    """Create or update the response of a user to a question.

    Fields passed as None keep their stored value.

    Args:
        user_id: Internal user UUID
        question_id: ID of the answered question
        audio_url: Public URL (or data URL) of the recording
        transcript: Transcribed text
        status: One of RESPONSE_STATUSES

    Returns:
        The stored ResponseRecord

    Raises:
        ValueError: If status is not a known response status
    """
    if status not in RESPONSE_STATUSES:
        raise ValueError(f"Unknown response status: {status}")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO user_responses (id, user_id, test_question_id, audio_url, transcript, status)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, test_question_id) DO UPDATE SET
                audio_url = COALESCE(excluded.audio_url, user_responses.audio_url),
                transcript = COALESCE(excluded.transcript, user_responses.transcript),
                status = excluded.status,
                updated_at = datetime('now')
            """,
            (str(uuid.uuid4()), user_id, question_id, audio_url, transcript, status),
        )
        row = conn.execute(
            "SELECT * FROM user_responses WHERE user_id = ? AND test_question_id = ?",
            (user_id, question_id),
        ).fetchone()

    logger.debug("responses.saved", response_id=row["id"], question_id=question_id, status=status)
    return _row_to_record(row)


def get_response(response_id: str) -> ResponseRecord | None:
    """Get a response by ID."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM user_responses WHERE id = ?", (response_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_record(row)


def list_responses_for_test(user_id: str, test_id: str) -> list[ResponseRecord]:
    """Get the responses of a user to the questions of one test.

    Ordered by the question sequence number.
    """
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT r.* FROM user_responses r
            JOIN test_questions q ON q.id = r.test_question_id
            WHERE r.user_id = ? AND q.cambridge_test_id = ?
            ORDER BY q.sequence_number ASC
            """,
            (user_id, test_id),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def set_band_score(response_id: str, band_score: float) -> bool:
    """Store the overall band of a scored response.

    Returns:
        True if the response exists and was updated
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE user_responses SET band_score = ?, updated_at = datetime('now')
            WHERE id = ?
            """,
            (band_score, response_id),
        )
        return cursor.rowcount > 0


def delete_responses_for_test(user_id: str, test_id: str) -> int:
    """Delete the responses of a user to one test, with their feedback.

    Returns:
        Number of responses deleted
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            DELETE FROM user_responses
            WHERE user_id = ? AND test_question_id IN (
                SELECT id FROM test_questions WHERE cambridge_test_id = ?
            )
            """,
            (user_id, test_id),
        )
        deleted = cursor.rowcount

    if deleted:
        logger.info("responses.deleted", test_id=test_id, count=deleted)
    return deleted
