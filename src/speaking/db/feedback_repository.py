"""Repository functions for per-response and whole-test feedback.

Feedback rows are append-only; readers take the most recent row.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog

from speaking.db.database import get_db

logger = structlog.get_logger(__name__)

FEEDBACK_COLUMNS = (
    "fluency_coherence_score",
    "lexical_resource_score",
    "grammar_accuracy_score",
    "pronunciation_score",
    "overall_band_score",
    "general_feedback",
    "fluency_coherence_feedback",
    "lexical_resource_feedback",
    "grammar_accuracy_feedback",
    "pronunciation_feedback",
    "model_answer",
)


def insert_feedback(response_id: str, feedback: dict[str, Any]) -> str:
    """Save the scoring result of one response.

    Args:
        response_id: ID of the scored response
        feedback: Mapping with the FEEDBACK_COLUMNS keys

    Returns:
        ID of the new feedback row
    """
    feedback_id = str(uuid.uuid4())
    values = [feedback.get(column) for column in FEEDBACK_COLUMNS]
    placeholders = ", ".join("?" for _ in range(len(FEEDBACK_COLUMNS) + 2))

    with get_db() as conn:
        conn.execute(
            f"INSERT INTO feedback (id, response_id, {', '.join(FEEDBACK_COLUMNS)}) "
            f"VALUES ({placeholders})",
            (feedback_id, response_id, *values),
        )

    logger.debug("feedback.inserted", feedback_id=feedback_id, response_id=response_id)
    return feedback_id


def get_latest_feedback(response_id: str) -> dict[str, Any] | None:
    """Get the most recent feedback row of a response."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT * FROM feedback WHERE response_id = ?
            ORDER BY created_at DESC, rowid DESC LIMIT 1
            """,
            (response_id,),
        ).fetchone()

    if row is None:
        return None
    return dict(row)


def insert_test_feedback(user_id: str, test_id: str, feedback: dict[str, Any]) -> str:
    """Save overall feedback for a completed test."""
    feedback_id = str(uuid.uuid4())
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO test_feedback (id, user_id, cambridge_test_id, feedback)
            VALUES (?, ?, ?, ?)
            """,
            (feedback_id, user_id, test_id, json.dumps(feedback)),
        )

    logger.debug("feedback.test_inserted", feedback_id=feedback_id, test_id=test_id)
    return feedback_id


def get_latest_test_feedback(user_id: str, test_id: str) -> dict[str, Any] | None:
    """Get the most recent overall feedback of a user for a test."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT feedback FROM test_feedback
            WHERE user_id = ? AND cambridge_test_id = ?
            ORDER BY created_at DESC, rowid DESC LIMIT 1
            """,
            (user_id, test_id),
        ).fetchone()

    if row is None:
        return None
    return json.loads(row["feedback"])


def insert_question_feedback(user_id: str, question_id: str, feedback: dict[str, Any]) -> str:
    """Save feedback for one question of a completed test."""
    feedback_id = str(uuid.uuid4())
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO question_feedback (id, user_id, test_question_id, feedback)
            VALUES (?, ?, ?, ?)
            """,
            (feedback_id, user_id, question_id, json.dumps(feedback)),
        )
    return feedback_id


def get_question_feedback(user_id: str, question_ids: list[str]) -> dict[str, dict[str, Any]]:
    """Get the latest feedback per question for the given question IDs."""
    if not question_ids:
        return {}

    placeholders = ", ".join("?" for _ in question_ids)
    with get_db() as conn:
        rows = conn.execute(
            f"""
            SELECT test_question_id, feedback FROM question_feedback
            WHERE user_id = ? AND test_question_id IN ({placeholders})
            ORDER BY created_at ASC, rowid ASC
            """,
            (user_id, *question_ids),
        ).fetchall()

    # Later rows overwrite earlier ones
    return {row["test_question_id"]: json.loads(row["feedback"]) for row in rows}
