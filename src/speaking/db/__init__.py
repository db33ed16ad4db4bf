"""Database package: SQLite connection, schema and repositories."""

from speaking.db.database import get_db, get_db_path, init_db, reset_db_path

__all__ = ["get_db", "get_db_path", "init_db", "reset_db_path"]
