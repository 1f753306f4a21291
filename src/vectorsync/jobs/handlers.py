"""
Job Handlers - Base types and the embedding refresh handler.

- RunContext: Execution context passed to handlers
- HandlerResult: Structured result returned by handlers
- handle_update_embeddings: Deferred-strategy refresh of one record
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.exceptions import RecordNotFoundError, VectorSyncError
from .models import Job


logger = logging.getLogger(__name__)


class HandlerStatus(str, Enum):
    """Status of handler execution."""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class RunContext:
    """
    Execution context for a job handler.

    Attributes:
        job_id: The job identifier
        run_id: The run identifier (unique per execution attempt)
        correlation_id: Correlation ID for tracing across logs
        worker_id: Identifier of the worker executing the job
        started_at: When this run started
        job_type: The job type being executed
        attempt_number: Current attempt number (1-indexed)
        max_attempts: Maximum attempts allowed
    """
    job_id: str
    run_id: str
    correlation_id: str
    worker_id: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    job_type: Optional[str] = None
    attempt_number: int = 1
    max_attempts: int = 3

    @classmethod
    def create(cls, job: Job, worker_id: str) -> "RunContext":
        """Create a new run context with generated identifiers."""
        run_id = str(uuid.uuid4())
        return cls(
            job_id=job.job_id,
            run_id=run_id,
            correlation_id=f"{job.job_id}-{run_id[:8]}",
            worker_id=worker_id,
            job_type=job.job_type,
            attempt_number=job.attempt_count,
            max_attempts=job.max_attempts,
        )

    def get_log_context(self) -> Dict[str, Any]:
        """Context fields for structured logging."""
        return {
            "job_id": self.job_id,
            "run_id": self.run_id,
            "correlation_id": self.correlation_id,
            "worker_id": self.worker_id,
            "job_type": self.job_type,
            "attempt": self.attempt_number,
        }


@dataclass
class HandlerResult:
    """
    Result returned by a job handler.

    Attributes:
        status: Final status of the handler execution
        output: Handler output (if successful)
        error_message: Error message (if failed)
        error_fields: Vector fields named by the error (if failed)
        skipped_reason: Reason for skipping (if status is SKIPPED)
    """
    status: HandlerStatus
    output: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_fields: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @classmethod
    def success(cls, output: Dict[str, Any]) -> "HandlerResult":
        return cls(status=HandlerStatus.SUCCEEDED, output=output)

    @classmethod
    def failure(cls, error_message: str, error_fields: Optional[List[str]] = None) -> "HandlerResult":
        return cls(
            status=HandlerStatus.FAILED,
            error_message=error_message,
            error_fields=list(error_fields or []),
        )

    @classmethod
    def skipped(cls, reason: str) -> "HandlerResult":
        return cls(status=HandlerStatus.SKIPPED, skipped_reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.status == HandlerStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == HandlerStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {"status": self.status.value}
        if self.output:
            result["output"] = self.output
        if self.error_message:
            result["error_message"] = self.error_message
        if self.error_fields:
            result["error_fields"] = self.error_fields
        if self.skipped_reason:
            result["skipped_reason"] = self.skipped_reason
        return result


def handle_update_embeddings(job: Job, ctx: RunContext, pipeline) -> HandlerResult:
    """
    Re-read the job's record and commit refreshed vectors.

    Job input: ``{"resource": ..., "record_id": ..., "fields": [...]}``.
    ``fields`` is optional; without it every vector field is refreshed.
    """
    job_input = job.get_input()
    resource = job_input.get("resource")
    record_id = job_input.get("record_id")
    if not resource or record_id is None:
        return HandlerResult.failure(f"Job {job.job_id} input lacks resource/record_id")

    fields = job_input.get("fields")

    try:
        record = pipeline.refresh_record(resource, str(record_id), fields=fields)
    except RecordNotFoundError as e:
        logger.info(f"{e}; nothing to refresh", extra=ctx.get_log_context())
        return HandlerResult.skipped(str(e))
    except VectorSyncError as e:
        return HandlerResult.failure(str(e), error_fields=e.fields)

    return HandlerResult.success(
        output={
            "resource": resource,
            "record_id": record.record_id,
            "fields": fields or pipeline.registry.get(resource).dest_fields,
        }
    )
