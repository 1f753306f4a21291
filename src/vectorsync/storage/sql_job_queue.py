"""
SQL Job Queue - SQL Server queue for deferred embedding refresh jobs.

Production implementation of the job queue. Claiming uses an
``UPDLOCK, READPAST`` CTE so concurrent workers never claim the same job.
"""

import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

try:
    import pyodbc
except ImportError:
    pyodbc = None  # Defer error to runtime when connection is attempted

from ..core.exceptions import StorageError
from ..jobs.models import Job, JobStatus
from .job_queue import JobQueue


logger = logging.getLogger(__name__)


def _first_non_empty_env(*keys: str) -> Optional[str]:
    """Return the first non-empty env var value for the given keys."""
    for key in keys:
        value = os.environ.get(key)
        if value is not None and value.strip() != "":
            return value
    return None


@dataclass
class QueueConfig:
    """Configuration for the SQL job queue."""
    host: str = "localhost"
    port: int = 1433
    database: str = "VectorSync"
    username: str = "sa"
    password: str = ""
    driver: str = "ODBC Driver 18 for SQL Server"
    schema: str = "vectorsync"
    connection_string: Optional[str] = None

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Create config from environment variables."""
        conn_str = _first_non_empty_env("VECTORSYNC_SQLSERVER_CONN_STR")
        if conn_str:
            return cls(
                connection_string=conn_str,
                schema=_first_non_empty_env("VECTORSYNC_SQLSERVER_SCHEMA") or "vectorsync",
            )

        return cls(
            host=_first_non_empty_env("VECTORSYNC_SQLSERVER_HOST") or "localhost",
            port=int(_first_non_empty_env("VECTORSYNC_SQLSERVER_PORT") or "1433"),
            database=_first_non_empty_env("VECTORSYNC_SQLSERVER_DATABASE", "MSSQL_DATABASE") or "VectorSync",
            username=_first_non_empty_env("VECTORSYNC_SQLSERVER_USER") or "sa",
            password=_first_non_empty_env("VECTORSYNC_SQLSERVER_PASSWORD", "MSSQL_SA_PASSWORD") or "",
            driver=_first_non_empty_env("VECTORSYNC_SQLSERVER_DRIVER") or "ODBC Driver 18 for SQL Server",
            schema=_first_non_empty_env("VECTORSYNC_SQLSERVER_SCHEMA") or "vectorsync",
        )

    def get_connection_string(self) -> str:
        """Build the ODBC connection string."""
        if self.connection_string:
            return self.connection_string

        return (
            f"Driver={{{self.driver}}};"
            f"Server={self.host},{self.port};"
            f"Database={self.database};"
            f"UID={self.username};"
            f"PWD={self.password};"
            f"Encrypt=no;"
            f"TrustServerCertificate=yes"
        )


JOB_COLUMNS = [
    "job_id", "job_type", "input_json", "status", "priority",
    "attempt_count", "max_attempts", "last_error", "created_utc",
]
OUTPUT_COLUMNS = ", ".join(f"inserted.{column}" for column in JOB_COLUMNS)


class SqlJobQueue(JobQueue):
    """
    SQL Server-based job queue.

    Example:
        >>> queue = SqlJobQueue(QueueConfig.from_env())
        >>> queue.ensure_schema()
        >>> job = queue.claim_next_job("worker-1")
        >>> if job:
        ...     queue.mark_succeeded(job.job_id)
    """

    def __init__(self, config: Optional[QueueConfig] = None, connection=None):
        """
        Initialize the SQL job queue.

        Args:
            config: Queue configuration. If None, loads from environment.
            connection: Existing DB-API connection (mainly for tests)
        """
        self.config = config or QueueConfig.from_env()
        self._conn = connection

        logger.debug(f"SqlJobQueue initialized for {self.config.host}:{self.config.port}/{self.config.database}")

    def _get_connection(self):
        """Get or create a database connection."""
        if self._conn is None:
            if pyodbc is None:
                raise StorageError(
                    "pyodbc is not installed. Install it with: pip install pyodbc"
                )
            try:
                self._conn = pyodbc.connect(
                    self.config.get_connection_string(),
                    autocommit=True
                )
                logger.debug("Database connection established")
            except Exception as e:
                logger.error(f"Failed to connect to database: {e}")
                raise StorageError(f"Failed to connect to database: {e}")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            try:
                self._conn.close()
            except Exception as e:
                logger.warning(f"Error closing queue connection: {e}")
            self._conn = None

    def ensure_schema(self) -> None:
        """Create the schema and job table if they do not exist."""
        schema = self.config.schema
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(
                f"IF SCHEMA_ID(?) IS NULL EXEC('CREATE SCHEMA [{schema}]')",
                (schema,),
            )
            cursor.execute(f"""
                IF OBJECT_ID('[{schema}].[job]', 'U') IS NULL
                CREATE TABLE [{schema}].[job] (
                    job_id UNIQUEIDENTIFIER NOT NULL PRIMARY KEY,
                    job_type NVARCHAR(100) NOT NULL,
                    input_json NVARCHAR(MAX) NOT NULL,
                    status NVARCHAR(20) NOT NULL,
                    priority INT NOT NULL DEFAULT 100,
                    attempt_count INT NOT NULL DEFAULT 0,
                    max_attempts INT NOT NULL DEFAULT 3,
                    available_utc DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME(),
                    locked_by NVARCHAR(200) NULL,
                    locked_utc DATETIME2 NULL,
                    last_error NVARCHAR(MAX) NULL,
                    created_utc DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME(),
                    updated_utc DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME()
                )
            """)
            logger.debug(f"Ensured job table [{schema}].[job]")
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to create job table: {e}")
            raise StorageError(f"Failed to create job table: {e}")

    def enqueue(
        self,
        job_type: str,
        input_data: Dict[str, Any],
        priority: int = 100,
        max_attempts: int = 3,
    ) -> str:
        job_id = str(uuid.uuid4())
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(
                f"INSERT INTO [{self.config.schema}].[job] "
                f"(job_id, job_type, input_json, status, priority, max_attempts) "
                f"VALUES (?, ?, ?, ?, ?, ?)",
                (job_id, job_type, json.dumps(input_data, default=str),
                 JobStatus.NEW.value, priority, max_attempts),
            )
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to enqueue job: {e}")
            raise StorageError(f"Failed to enqueue job: {e}")

        logger.info(f"Enqueued job {job_id} for {job_type}")
        return job_id

    def claim_next_job(self, worker_id: str) -> Optional[Job]:
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(
                f"""
                WITH next_job AS (
                    SELECT TOP (1) *
                    FROM [{self.config.schema}].[job] WITH (ROWLOCK, READPAST, UPDLOCK)
                    WHERE status = 'NEW' AND available_utc <= SYSUTCDATETIME()
                    ORDER BY priority DESC, created_utc ASC
                )
                UPDATE next_job
                SET status = 'RUNNING',
                    attempt_count = attempt_count + 1,
                    locked_by = ?,
                    locked_utc = SYSUTCDATETIME(),
                    updated_utc = SYSUTCDATETIME()
                OUTPUT {OUTPUT_COLUMNS}
                """,
                (worker_id,),
            )

            row = cursor.fetchone()
            if row is None:
                return None

            columns = [column[0] for column in cursor.description]
            job = Job.from_row(dict(zip(columns, row)))
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to claim job: {e}")
            raise StorageError(f"Failed to claim job: {e}")

        logger.info(f"Claimed job {job.job_id} (attempt {job.attempt_count})")
        return job

    def mark_succeeded(self, job_id: str) -> None:
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(
                f"UPDATE [{self.config.schema}].[job] "
                f"SET status = ?, locked_by = NULL, updated_utc = SYSUTCDATETIME() "
                f"WHERE job_id = ?",
                (JobStatus.SUCCEEDED.value, job_id),
            )
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to mark job succeeded: {e}")
            raise StorageError(f"Failed to mark job succeeded: {e}")

        logger.info(f"Job {job_id} marked as SUCCEEDED")

    def mark_failed(self, job_id: str, error: str, backoff_seconds: float = 60) -> str:
        """
        Mark a job as failed.

        If more attempts remain, the job is reset to NEW with a backoff delay.
        Otherwise, it is moved to DEADLETTER.
        """
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(
                f"""
                UPDATE [{self.config.schema}].[job]
                SET status = CASE WHEN attempt_count >= max_attempts
                                  THEN 'DEADLETTER' ELSE 'NEW' END,
                    last_error = ?,
                    available_utc = DATEADD(SECOND, ?, SYSUTCDATETIME()),
                    locked_by = NULL,
                    locked_utc = NULL,
                    updated_utc = SYSUTCDATETIME()
                OUTPUT inserted.status
                WHERE job_id = ?
                """,
                (error, int(backoff_seconds), job_id),
            )
            row = cursor.fetchone()
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to mark job failed: {e}")
            raise StorageError(f"Failed to mark job failed: {e}")

        final_status = row[0] if row else JobStatus.FAILED.value
        logger.info(f"Job {job_id} marked as {final_status}: {error[:100]}")
        return final_status

    def get_queue_stats(self) -> Dict[str, int]:
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(f"""
                SELECT status, COUNT(*) as cnt
                FROM [{self.config.schema}].[job]
                GROUP BY status
            """)
            return {row[0]: row[1] for row in cursor.fetchall()}
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to get queue stats: {e}")
            raise StorageError(f"Failed to get queue stats: {e}")
