"""
Job queue interface and SQLite implementation.

The deferred strategy enqueues one job per qualifying mutation. Jobs are
claimed by workers with at-least-once semantics; duplicate jobs for the
same record are not coalesced.
"""

import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.exceptions import StorageError
from ..jobs.models import Job, JobStatus


logger = logging.getLogger(__name__)


class JobQueue(ABC):
    """Abstract job queue used by the deferred strategy and the worker."""

    @abstractmethod
    def enqueue(
        self,
        job_type: str,
        input_data: Dict[str, Any],
        priority: int = 100,
        max_attempts: int = 3,
    ) -> str:
        """Enqueue a job and return its job_id."""
        pass

    @abstractmethod
    def claim_next_job(self, worker_id: str) -> Optional[Job]:
        """Atomically claim the next available job, or None."""
        pass

    @abstractmethod
    def mark_succeeded(self, job_id: str) -> None:
        """Mark a claimed job as succeeded."""
        pass

    @abstractmethod
    def mark_failed(self, job_id: str, error: str, backoff_seconds: float = 60) -> str:
        """
        Mark a claimed job as failed.

        Returns:
            NEW if the job will be retried after the backoff, DEADLETTER
            once its attempts are exhausted
        """
        pass

    @abstractmethod
    def get_queue_stats(self) -> Dict[str, int]:
        """Job counts by status."""
        pass

    def close(self) -> None:
        pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: datetime) -> str:
    # Fixed width so timestamps compare correctly as text
    return value.isoformat(timespec="microseconds")


class SqliteJobQueue(JobQueue):
    """
    SQLite-backed job queue for local runs and tests.

    Claims run inside ``BEGIN IMMEDIATE`` so concurrent workers on the same
    database file never claim the same job twice.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", auto_init: bool = True):
        """
        Initialize the queue.

        Args:
            db_path: SQLite database path (``:memory:`` for a private queue)
            auto_init: Whether to create tables automatically
        """
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite job queue: {self.db_path}")

        if auto_init:
            self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                job_id TEXT PRIMARY KEY,
                job_type TEXT NOT NULL,
                input_json TEXT NOT NULL,
                status TEXT NOT NULL,
                priority INTEGER NOT NULL DEFAULT 100,
                attempt_count INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL DEFAULT 3,
                available_utc TEXT NOT NULL,
                locked_by TEXT,
                locked_utc TEXT,
                last_error TEXT,
                created_utc TEXT NOT NULL,
                updated_utc TEXT NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_jobs_claim
            ON jobs (status, available_utc, priority)
        """)

    def enqueue(
        self,
        job_type: str,
        input_data: Dict[str, Any],
        priority: int = 100,
        max_attempts: int = 3,
    ) -> str:
        job_id = str(uuid.uuid4())
        now = _timestamp(_utc_now())
        try:
            with self._lock:
                self.conn.execute(
                    """
                    INSERT INTO jobs (job_id, job_type, input_json, status, priority,
                                      attempt_count, max_attempts, available_utc,
                                      created_utc, updated_utc)
                    VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                    """,
                    (job_id, job_type, json.dumps(input_data, default=str), JobStatus.NEW.value,
                     priority, max_attempts, now, now, now),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to enqueue job: {e}")
            raise StorageError(f"Failed to enqueue job: {e}")

        logger.info(f"Enqueued job {job_id} for {job_type}")
        return job_id

    def claim_next_job(self, worker_id: str) -> Optional[Job]:
        now = _timestamp(_utc_now())
        try:
            with self._lock:
                self.conn.execute("BEGIN IMMEDIATE")
                try:
                    row = self.conn.execute(
                        """
                        SELECT * FROM jobs
                        WHERE status = ? AND available_utc <= ?
                        ORDER BY priority DESC, created_utc ASC, rowid ASC
                        LIMIT 1
                        """,
                        (JobStatus.NEW.value, now),
                    ).fetchone()

                    if row is None:
                        self.conn.execute("COMMIT")
                        return None

                    self.conn.execute(
                        """
                        UPDATE jobs
                        SET status = ?, attempt_count = attempt_count + 1,
                            locked_by = ?, locked_utc = ?, updated_utc = ?
                        WHERE job_id = ?
                        """,
                        (JobStatus.RUNNING.value, worker_id, now, now, row["job_id"]),
                    )
                    claimed = self.conn.execute(
                        "SELECT * FROM jobs WHERE job_id = ?", (row["job_id"],)
                    ).fetchone()
                    self.conn.execute("COMMIT")
                except sqlite3.Error:
                    self.conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            logger.error(f"Failed to claim job: {e}")
            raise StorageError(f"Failed to claim job: {e}")

        job = Job.from_row(dict(claimed))
        logger.info(f"Claimed job {job.job_id} (attempt {job.attempt_count})")
        return job

    def mark_succeeded(self, job_id: str) -> None:
        now = _timestamp(_utc_now())
        with self._lock:
            self.conn.execute(
                "UPDATE jobs SET status = ?, locked_by = NULL, updated_utc = ? WHERE job_id = ?",
                (JobStatus.SUCCEEDED.value, now, job_id),
            )
        logger.info(f"Job {job_id} marked as SUCCEEDED")

    def mark_failed(self, job_id: str, error: str, backoff_seconds: float = 60) -> str:
        now = _utc_now()
        with self._lock:
            row = self.conn.execute(
                "SELECT attempt_count, max_attempts FROM jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
            if row is None:
                raise StorageError(f"Unknown job: {job_id}")

            if row["attempt_count"] >= row["max_attempts"]:
                final_status = JobStatus.DEADLETTER
            else:
                final_status = JobStatus.NEW

            available = now + timedelta(seconds=backoff_seconds)
            self.conn.execute(
                """
                UPDATE jobs
                SET status = ?, last_error = ?, available_utc = ?,
                    locked_by = NULL, locked_utc = NULL, updated_utc = ?
                WHERE job_id = ?
                """,
                (final_status.value, error, _timestamp(available), _timestamp(now), job_id),
            )

        logger.info(f"Job {job_id} marked as {final_status.value}: {error[:100]}")
        return final_status.value

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self.conn.execute("SELECT * FROM jobs WHERE job_id = ?", (job_id,)).fetchone()
        return Job.from_row(dict(row)) if row else None

    def get_queue_stats(self) -> Dict[str, int]:
        rows = self.conn.execute(
            "SELECT status, COUNT(*) AS cnt FROM jobs GROUP BY status"
        ).fetchall()
        return {row["status"]: row["cnt"] for row in rows}

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
