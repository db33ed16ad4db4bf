"""Repository functions for speaking tests and their questions."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, asdict
from typing import Any

import structlog

from speaking.db.database import get_db

logger = structlog.get_logger(__name__)


@dataclass
class SpeakingTestRecord:
    """A speaking test with its part timings."""

    id: str
    title: str
    description: str | None
    book_number: int | None
    test_number: int | None
    part1_duration_seconds: int | None
    part2_duration_seconds: int | None
    part2_preparation_seconds: int | None
    part3_duration_seconds: int | None
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QuestionRecord:
    """A question belonging to one part of a test."""

    id: str
    cambridge_test_id: str
    part_number: int
    sequence_number: int
    question_text: str
    question_type: str
    topic: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_test(row: sqlite3.Row) -> SpeakingTestRecord:
    return SpeakingTestRecord(**dict(row))


def _row_to_question(row: sqlite3.Row) -> QuestionRecord:
    return QuestionRecord(**dict(row))


def list_tests() -> list[SpeakingTestRecord]:
    """Get all tests ordered by book and test number."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM cambridge_tests ORDER BY book_number, test_number, title"
        ).fetchall()

    return [_row_to_test(row) for row in rows]


def get_test(test_id: str) -> SpeakingTestRecord | None:
    """Get a test by ID, or None if it does not exist."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM cambridge_tests WHERE id = ?", (test_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_test(row)


def get_questions(test_id: str) -> list[QuestionRecord]:
    """Get the questions of a test in sequence order."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM test_questions
            WHERE cambridge_test_id = ?
            ORDER BY sequence_number ASC
            """,
            (test_id,),
        ).fetchall()

    return [_row_to_question(row) for row in rows]


def get_question(question_id: str) -> QuestionRecord | None:
    """Get a single question by ID."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM test_questions WHERE id = ?", (question_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_question(row)


def insert_test(
    test_id: str,
    title: str,
    description: str | None = None,
    part1_duration_seconds: int | None = None,
    part2_duration_seconds: int | None = None,
    part2_preparation_seconds: int | None = None,
    part3_duration_seconds: int | None = None,
) -> None:
    """Insert a new test.

    Raises:
        sqlite3.IntegrityError: If test_id already exists
    """
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO cambridge_tests (
                id, title, description, part1_duration_seconds,
                part2_duration_seconds, part2_preparation_seconds,
                part3_duration_seconds
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                test_id,
                title,
                description,
                part1_duration_seconds,
                part2_duration_seconds,
                part2_preparation_seconds,
                part3_duration_seconds,
            ),
        )

    logger.debug("tests.inserted", test_id=test_id)


def insert_question(
    question_id: str,
    test_id: str,
    part_number: int,
    sequence_number: int,
    question_text: str,
    question_type: str = "standard",
    topic: str | None = None,
) -> None:
    """Insert a question into a test.

    Raises:
        sqlite3.IntegrityError: If the id exists or part/type are invalid
    """
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO test_questions (
                id, cambridge_test_id, part_number, sequence_number,
                question_text, question_type, topic
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (question_id, test_id, part_number, sequence_number, question_text, question_type, topic),
        )
