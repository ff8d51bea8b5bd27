import sqlite3
from datetime import datetime, timezone
from typing import Optional

from core.config import get_settings
from core.logger import setup_logger

logger = setup_logger(__name__)


class Database:
    """Small SQLite key/value store for locally persisted documents."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_settings().database_path
        self.init_db()

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize database tables."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
            logger.debug(f"Database initialized at {self.db_path}")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise
        finally:
            conn.close()

    def get_value(self, key: str) -> Optional[str]:
        """Return the stored document for key, or None."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_value(self, key: str, value: str) -> None:
        """Replace the whole document stored under key."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            now = datetime.now(timezone.utc).isoformat()
            cursor.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, now)
            )
            conn.commit()
        except Exception as e:
            logger.error(f"Failed to store key {key}: {e}")
            raise
        finally:
            conn.close()

    def delete_value(self, key: str) -> None:
        """Remove key if present."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


# Global DB instance
_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        _db = Database()
    return _db


def reset_db() -> None:
    """Drop the cached instance (useful for testing)."""
    global _db
    _db = None
