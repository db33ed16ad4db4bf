"""SQLite database connection and schema management.

Provides connection management and schema initialization for the speaking
service: users, tests, questions, responses and feedback.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

from speaking.config.app_config import load_app_config

logger = structlog.get_logger(__name__)

# Current database path (set by init_db, falls back to config)
_db_path: Path | None = None


def get_db_path() -> Path:
    """Return the active database path."""
    return _db_path or load_app_config().db_path


def init_db(db_path: Path | None = None, seed: bool = True) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist,
    then inserts the sample tests.

    Args:
        db_path: Path to database file. Defaults to the configured db_path
        seed: Insert sample tests and questions (idempotent)
    """
    global _db_path
    _db_path = db_path or load_app_config().db_path

    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)
        if seed:
            from speaking.db.seed import seed_sample_tests

            seed_sample_tests(conn)

    logger.info("database.initialized", path=str(_db_path))


def reset_db_path() -> None:
    """Forget the active database path (for testing)."""
    global _db_path
    _db_path = None


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM cambridge_tests").fetchall()
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            external_id TEXT,
            email TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS cambridge_tests (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            book_number INTEGER,
            test_number INTEGER,
            part1_duration_seconds INTEGER,
            part2_duration_seconds INTEGER,
            part2_preparation_seconds INTEGER,
            part3_duration_seconds INTEGER,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS test_questions (
            id TEXT PRIMARY KEY,
            cambridge_test_id TEXT NOT NULL REFERENCES cambridge_tests(id) ON DELETE CASCADE,
            part_number INTEGER NOT NULL CHECK(part_number IN (1, 2, 3)),
            sequence_number INTEGER NOT NULL,
            question_text TEXT NOT NULL,
            question_type TEXT NOT NULL DEFAULT 'standard' CHECK(question_type IN ('standard', 'cue_card')),
            topic TEXT
        );

        -- One response per user and question; re-recording overwrites
        CREATE TABLE IF NOT EXISTS user_responses (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id),
            test_question_id TEXT NOT NULL REFERENCES test_questions(id),
            audio_url TEXT,
            transcript TEXT,
            status TEXT NOT NULL DEFAULT 'in_progress' CHECK(status IN ('idle', 'in_progress', 'completed', 'skipped', 'error')),
            band_score REAL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE(user_id, test_question_id)
        );

        CREATE TABLE IF NOT EXISTS feedback (
            id TEXT PRIMARY KEY,
            response_id TEXT NOT NULL REFERENCES user_responses(id) ON DELETE CASCADE,
            fluency_coherence_score REAL NOT NULL,
            lexical_resource_score REAL NOT NULL,
            grammar_accuracy_score REAL NOT NULL,
            pronunciation_score REAL NOT NULL,
            overall_band_score REAL NOT NULL,
            general_feedback TEXT,
            fluency_coherence_feedback TEXT,
            lexical_resource_feedback TEXT,
            grammar_accuracy_feedback TEXT,
            pronunciation_feedback TEXT,
            model_answer TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS test_feedback (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            cambridge_test_id TEXT NOT NULL,
            feedback TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS question_feedback (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            test_question_id TEXT NOT NULL,
            feedback TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_questions_test ON test_questions(cambridge_test_id, sequence_number);
        CREATE INDEX IF NOT EXISTS idx_responses_user ON user_responses(user_id);
        CREATE INDEX IF NOT EXISTS idx_feedback_response ON feedback(response_id);
        CREATE INDEX IF NOT EXISTS idx_test_feedback_user_test ON test_feedback(user_id, cambridge_test_id);
        """
    )
