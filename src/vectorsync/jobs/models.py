"""
Job queue data models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import json


class JobStatus(str, Enum):
    """Status of a job in the queue."""
    NEW = "NEW"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DEADLETTER = "DEADLETTER"


@dataclass
class Job:
    """
    A queued refresh job.

    Attributes:
        job_id: Unique job identifier
        job_type: Registered job type (e.g. 'update_embeddings')
        input_json: Job input as JSON string
        status: Current job status
        priority: Job priority (higher = processed sooner)
        attempt_count: Attempts made so far (incremented on claim)
        max_attempts: Attempts allowed before deadletter
        last_error: Error from the last failed attempt
        created_utc: When the job was enqueued
    """
    job_id: str
    job_type: str
    input_json: str
    status: JobStatus = JobStatus.NEW
    priority: int = 100
    attempt_count: int = 0
    max_attempts: int = 3
    last_error: Optional[str] = None
    created_utc: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_input(self) -> Dict[str, Any]:
        """Parse the job input."""
        return json.loads(self.input_json) if self.input_json else {}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Job":
        """Create from a database row dictionary."""
        created = row.get("created_utc")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        elif created is None:
            created = datetime.now(timezone.utc)

        return cls(
            job_id=str(row["job_id"]),
            job_type=row["job_type"],
            input_json=row.get("input_json") or "{}",
            status=JobStatus(row.get("status", "NEW")),
            priority=int(row.get("priority", 100)),
            attempt_count=int(row.get("attempt_count", 0)),
            max_attempts=int(row.get("max_attempts", 3)),
            last_error=row.get("last_error"),
            created_utc=created,
        )
