"""
SQLite persistence manager for job orders.

Single-file SQLite database.
Explicit save/load only - no auto-persistence.

Jobs are stored as their wire-format JSON document (camelCase field names,
upper-case enum values) plus a few summary columns for listing. Every
history entry, job-level and batch-level, is also written to an
append-only audit table that is never updated.
"""

import sqlite3
import json
from pathlib import Path
from typing import List, Dict, Optional
from datetime import datetime
from contextlib import contextmanager

from .errors import PersistenceError, SchemaError, LoadError, SaveError


# Database schema version for migrations
SCHEMA_VERSION = 1


class PersistenceManager:
    """
    Manages SQLite persistence for job orders.

    Stores:
    - Job documents (batches, stage records and history included)
    - Append-only audit trail of every history entry

    Does NOT store:
    - Drawings / uploaded files
    - Registry subscribers or locks
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize persistence manager.

        Args:
            db_path: Path to SQLite database file (defaults to ./fabtrack.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "fabtrack.db")

        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connect(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Access columns by name
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except PersistenceError:
            conn.rollback()
            raise
        except Exception as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TEXT NOT NULL
                    )
                """)

                cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
                row = cursor.fetchone()
                current_version = row[0] if row else 0

                if current_version > SCHEMA_VERSION:
                    raise SchemaError(
                        f"Database schema v{current_version} is newer than supported v{SCHEMA_VERSION}",
                        found_version=current_version,
                        supported_version=SCHEMA_VERSION,
                    )
                if current_version < SCHEMA_VERSION:
                    self._migrate_schema(conn, current_version)
        except SchemaError:
            raise
        except PersistenceError as e:
            raise SchemaError(str(e)) from e

    def _migrate_schema(self, conn, from_version: int):
        """Apply schema migrations."""
        cursor = conn.cursor()

        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    code_no TEXT NOT NULL,
                    customer TEXT NOT NULL,
                    current_stage TEXT NOT NULL,
                    is_completed INTEGER NOT NULL,
                    last_updated INTEGER NOT NULL,
                    document TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS job_history (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    batch_id TEXT,
                    action TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    user TEXT NOT NULL,
                    details TEXT,
                    FOREIGN KEY (job_id) REFERENCES jobs (id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_job_history_job_id
                ON job_history (job_id, timestamp)
            """)

            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now().isoformat())
            )

    # Job persistence

    def save_job(self, job_data: Dict):
        """
        Save or update a job document.

        History entries not seen before are appended to the audit table;
        existing audit rows are left untouched.

        Args:
            job_data: Wire-format job dict (Job.to_wire())

        Raises:
            SaveError: If the document is malformed or the write fails
        """
        try:
            job_id = job_data["id"]
            row = (
                job_id,
                job_data.get("codeNo", ""),
                job_data.get("customer", ""),
                job_data["currentStage"],
                1 if job_data.get("isCompleted") else 0,
                int(job_data.get("lastUpdated") or 0),
                json.dumps(job_data),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SaveError(f"Malformed job document: {e}", job_id=job_data.get("id")) from e

        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    INSERT INTO jobs (id, code_no, customer, current_stage, is_completed, last_updated, document)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        code_no = excluded.code_no,
                        customer = excluded.customer,
                        current_stage = excluded.current_stage,
                        is_completed = excluded.is_completed,
                        last_updated = excluded.last_updated,
                        document = excluded.document
                """, row)

                entries = [(None, entry) for entry in job_data.get("history", [])]
                for batch in job_data.get("batches", []):
                    entries.extend((batch["id"], entry) for entry in batch.get("history", []))

                for batch_id, entry in entries:
                    cursor.execute("""
                        INSERT OR IGNORE INTO job_history (
                            id, job_id, batch_id, action, stage, timestamp, user, details
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        entry["id"],
                        job_id,
                        batch_id,
                        entry["action"],
                        entry["stage"],
                        entry["timestamp"],
                        entry["user"],
                        entry.get("details"),
                    ))
        except PersistenceError as e:
            raise SaveError(f"Failed to save job {job_id}: {e}", job_id=job_id) from e

    def load_job(self, job_id: str) -> Optional[Dict]:
        """
        Load a job document.

        Args:
            job_id: Job ID

        Returns:
            Wire-format job dict or None if not found

        Raises:
            LoadError: If the stored document cannot be decoded
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT document FROM jobs WHERE id = ?", (job_id,))
            row = cursor.fetchone()

        if not row:
            return None
        try:
            return json.loads(row["document"])
        except json.JSONDecodeError as e:
            raise LoadError(f"Corrupt document for job {job_id}: {e}", job_id=job_id) from e

    def load_all_jobs(self) -> List[Dict]:
        """
        Load all persisted jobs.

        Returns:
            List of job dicts, most recently updated first
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM jobs ORDER BY last_updated DESC")
            job_ids = [row["id"] for row in cursor.fetchall()]

        return [self.load_job(job_id) for job_id in job_ids]

    def delete_job(self, job_id: str):
        """Delete a job and its audit trail."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM jobs WHERE id = ?", (job_id,))

    # Audit trail

    def load_history(self, job_id: str, batch_id: Optional[str] = None) -> List[Dict]:
        """
        Load audit entries for a job, newest first.

        Args:
            job_id: Job ID
            batch_id: Restrict to one batch's entries when given
        """
        query = "SELECT * FROM job_history WHERE job_id = ?"
        params = [job_id]
        if batch_id is not None:
            query += " AND batch_id = ?"
            params.append(batch_id)
        query += " ORDER BY timestamp DESC, rowid DESC"

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [
                {
                    "id": row["id"],
                    "jobId": row["job_id"],
                    "batchId": row["batch_id"],
                    "action": row["action"],
                    "stage": row["stage"],
                    "timestamp": row["timestamp"],
                    "user": row["user"],
                    "details": row["details"],
                }
                for row in cursor.fetchall()
            ]

    def count_jobs(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM jobs")
            return cursor.fetchone()[0]
