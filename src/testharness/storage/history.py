"""SQLite store of the last outcome of each test, used by priority mode."""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from testharness.core.models import TestStatus


class OutcomeHistory:
    """Remembers the most recent status of every test that ran."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Workers record outcomes concurrently.
        self._lock = threading.Lock()
        self._init_schema()

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)
            cursor.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS test_outcomes (
                    test_key TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    recorded_at TIMESTAMP
                )
            """)

    def record(self, test_key: str, status: TestStatus) -> None:
        """Store the latest status of a test, replacing any previous one."""
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO test_outcomes (test_key, status, recorded_at)
                VALUES (?, ?, ?)
                ON CONFLICT(test_key) DO UPDATE SET
                    status = excluded.status,
                    recorded_at = excluded.recorded_at
                """,
                (test_key, TestStatus(status).value, datetime.now().isoformat()),
            )

    def last_status(self, test_key: str) -> Optional[TestStatus]:
        """Get the most recent status of a test, if it ever ran."""
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT status FROM test_outcomes WHERE test_key = ?",
                (test_key,),
            ).fetchone()

        if row is None:
            return None
        try:
            return TestStatus(row[0])
        except ValueError:
            return TestStatus.ERROR

    def count(self) -> int:
        with self._lock, self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM test_outcomes").fetchone()[0]
