"""Repository functions for the users table."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from speaking.db.database import get_db

logger = structlog.get_logger(__name__)


@dataclass
class UserRecord:
    """User record from database."""

    id: str
    external_id: str | None
    email: str
    created_at: str
    updated_at: str


def get_user(user_id: str) -> UserRecord | None:
    """Get user by ID."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    if row is None:
        return None
    return UserRecord(**dict(row))


def ensure_user(
    user_id: str,
    external_id: str | None = None,
    email: str = "",
) -> UserRecord:
    """Make sure a user row exists, creating it if needed.

    Existing rows keep their data; a non-empty email fills an empty one.

    Args:
        user_id: Internal UUID of the user
        external_id: Identity-provider user ID the UUID was derived from
        email: Primary email address, if known

    Returns:
        The stored UserRecord
    """
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO users (id, external_id, email) VALUES (?, ?, ?)",
            (user_id, external_id, email or ""),
        )
        if cursor.rowcount:
            logger.info("users.created", user_id=user_id[:8])
        elif email:
            conn.execute(
                """
                UPDATE users SET email = ?, updated_at = datetime('now')
                WHERE id = ? AND email = ''
                """,
                (email, user_id),
            )
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    return UserRecord(**dict(row))
