"""Sample tests inserted on database initialization."""

from __future__ import annotations

import sqlite3

import structlog

logger = structlog.get_logger(__name__)

SAMPLE_TESTS = [
    ("Cambridge 17 - Test 1", 17, 1),
    ("Cambridge 17 - Test 2", 17, 2),
    ("Cambridge 17 - Test 3", 17, 3),
    ("Cambridge 18 - Test 1", 18, 1),
    ("Cambridge 18 - Test 2", 18, 2),
    ("Cambridge 18 - Test 3", 18, 3),
]

# (part 1 topic, part 1 questions, cue card topic, cue card, part 3 questions)
QUESTION_BUNDLES = [
    (
        "Hometown",
        [
            "Where is your hometown?",
            "What do you like most about living there?",
            "Has your hometown changed much since you were a child?",
        ],
        "A memorable journey",
        "Describe a journey you remember well. You should say: where you went, "
        "how you travelled, who you went with, and explain why you remember this journey.",
        [
            "Why do some people prefer to travel alone?",
            "How has tourism changed the places people visit?",
        ],
    ),
    (
        "Reading",
        [
            "Do you enjoy reading?",
            "What kind of books did you read as a child?",
            "Do you prefer paper books or e-books?",
        ],
        "A useful skill",
        "Describe a skill you learned that you think is useful. You should say: what the skill is, "
        "how you learned it, how long it took, and explain why it is useful to you.",
        [
            "Which skills should schools teach that they do not teach now?",
            "Is it better to learn skills from a teacher or on your own?",
        ],
    ),
    (
        "Weather",
        [
            "What is the weather usually like where you live?",
            "Does the weather affect your mood?",
            "What do you like to do on rainy days?",
        ],
        "A person who helped you",
        "Describe a person who once helped you. You should say: who the person is, "
        "what they did, why they helped you, and explain how you felt about it.",
        [
            "Do people help their neighbours less than in the past?",
            "Should governments encourage volunteering?",
        ],
    ),
]


def sample_test_id(book_number: int, test_number: int) -> str:
    """Deterministic id for a sample test."""
    return f"cambridge-{book_number}-test-{test_number}"


def seed_sample_tests(conn: sqlite3.Connection) -> int:
    """Insert the sample tests and their questions if missing.

    Returns:
        Number of tests inserted
    """
    inserted = 0
    for index, (title, book_number, test_number) in enumerate(SAMPLE_TESTS):
        test_id = sample_test_id(book_number, test_number)
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO cambridge_tests (
                id, title, description, book_number, test_number,
                part1_duration_seconds, part2_duration_seconds,
                part2_preparation_seconds, part3_duration_seconds
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                test_id,
                title,
                f"Speaking practice test from Cambridge IELTS {book_number}",
                book_number,
                test_number,
                60,
                120,
                60,
                60,
            ),
        )
        if cursor.rowcount == 0:
            continue
        inserted += 1

        topic1, part1, topic2, cue_card, part3 = QUESTION_BUNDLES[index % len(QUESTION_BUNDLES)]
        rows: list[tuple] = []
        sequence = 1
        for number, text in enumerate(part1, start=1):
            rows.append((f"{test_id}-p1-q{number}", test_id, 1, sequence, text, "standard", topic1))
            sequence += 1
        rows.append((f"{test_id}-p2-q1", test_id, 2, sequence, cue_card, "cue_card", topic2))
        sequence += 1
        for number, text in enumerate(part3, start=1):
            rows.append((f"{test_id}-p3-q{number}", test_id, 3, sequence, text, "standard", topic2))
            sequence += 1

        conn.executemany(
            """
            INSERT OR IGNORE INTO test_questions (
                id, cambridge_test_id, part_number, sequence_number,
                question_text, question_type, topic
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    if inserted:
        logger.info("database.seeded", tests=inserted)
    return inserted
