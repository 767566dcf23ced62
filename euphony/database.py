"""
Database module for euphony.

Handles SQLite database initialization, schema creation, and connection management,
plus the repositories built on top of it.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Optional

from .models import ConfigEntry


class PersistenceError(Exception):
    """Raised when a snapshot cannot be serialized or written to storage."""

    pass


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses ~/.euphony/euphony.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            home = Path.home()
            euphony_dir = home / ".euphony"
            euphony_dir.mkdir(exist_ok=True)
            db_path = str(euphony_dir / "euphony.db")

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info("Database initialized at %s", self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        cursor = conn.cursor()

        # Configuration table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Durable key-value snapshots (liked songs, playlists, history, ...)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()
        self.logger.debug("Database schema created/verified")

    def get_connection(self):
        """
        Get a new database connection (thread-safe).

        Each thread should get its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def close(self):
        """Close database connection (no-op since we use per-thread connections)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class ConfigRepository:
    """Reads and writes rows of the config table."""

    def __init__(self, database: Database):
        self.database = database

    def initialize_defaults(self, defaults: dict):
        """Insert defaults for keys that have no stored value yet."""
        conn = self.database.get_connection()
        try:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
                    (key, str(value)),
                )
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT key, value, updated_at FROM config WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            return ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])
        finally:
            conn.close()

    def set(self, key: str, value: str) -> bool:
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    def get_all(self) -> List[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT key, value, updated_at FROM config ORDER BY key").fetchall()
            return [
                ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])
                for row in rows
            ]
        finally:
            conn.close()


class StorageRepository:
    """
    Durable key-value storage holding JSON snapshots.

    Keys are fixed collection names such as ``likedSongs`` or ``listening_history``.
    """

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def load(self, key: str, default: Any = None) -> Any:
        """
        Load and decode a snapshot.

        Args:
            key: Storage key
            default: Returned when the key is missing or the stored JSON is corrupt

        Returns:
            Decoded JSON value, or default
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            self.logger.error("Failed to read %s from storage: %s", key, e)
            return default
        finally:
            conn.close()

        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            self.logger.warning("Failed to decode stored JSON for %s", key)
            return default

    def save(self, key: str, value: Any):
        """
        Encode and write a snapshot, replacing any previous value.

        Raises:
            PersistenceError: If the value cannot be serialized or written
        """
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize {key}: {e}") from e

        try:
            conn = self.database.get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(f"Storage unavailable for {key}: {e}") from e
        try:
            conn.execute(
                """
                INSERT INTO storage (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
                """,
                (key, encoded),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write {key}: {e}") from e
        finally:
            conn.close()
