"""
Embedding Worker - Claims deferred refresh jobs and runs their handlers.

The worker:
1. Claims jobs from the queue
2. Resolves job type → definition via registry
3. Constructs execution context (job_id, run_id, correlation_id)
4. Invokes the handler with the shared pipeline
5. Marks the job succeeded, or failed with exponential backoff
"""

import argparse
import logging
import os
import signal
import sys
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional

from ..config.loader import load_registry
from ..core.exceptions import ConfigurationError
from ..core.logging import CorrelationContext, configure_logging
from ..jobs.handlers import HandlerResult, HandlerStatus, RunContext
from ..jobs.models import Job
from ..jobs.registry import JobTypeDefinition, ensure_job_type, get_job_type, get_job_type_registry
from ..pipeline.sync import EmbeddingPipeline
from ..providers import import_object
from ..storage.job_queue import JobQueue, SqliteJobQueue
from ..storage.record_store import SqliteRecordStore
from ..storage.sql_job_queue import QueueConfig, SqlJobQueue
from ..utils.retry import RetryConfig, calculate_delay


logger = logging.getLogger(__name__)


class WorkerConfig:
    """Configuration for the embedding worker."""

    def __init__(
        self,
        worker_id: str,
        poll_seconds: int = 10,
        retry: Optional[RetryConfig] = None,
    ):
        self.worker_id = worker_id
        self.poll_seconds = poll_seconds
        self.retry = retry or RetryConfig()

    @classmethod
    def from_env(cls, worker_id: Optional[str] = None) -> "WorkerConfig":
        """Create config from environment variables."""
        return cls(
            worker_id=worker_id or os.environ.get("WORKER_ID", f"embed-worker-{uuid.uuid4().hex[:8]}"),
            poll_seconds=int(os.environ.get("POLL_SECONDS", "10")),
            retry=RetryConfig(
                initial_delay_ms=float(os.environ.get("VECTORSYNC_RETRY_INITIAL_MS", "30000")),
                max_delay_ms=float(os.environ.get("VECTORSYNC_RETRY_MAX_MS", "900000")),
            ),
        )


class EmbeddingWorker:
    """
    Worker that executes deferred embedding refresh jobs.

    Example:
        >>> worker = EmbeddingWorker(WorkerConfig.from_env(), pipeline, queue)
        >>> processed = worker.dispatch_once()
    """

    def __init__(self, config: WorkerConfig, pipeline: EmbeddingPipeline, queue: JobQueue):
        self.config = config
        self.pipeline = pipeline
        self.queue = queue
        self._shutdown_requested = False
        self._handlers: Dict[str, Callable] = {}

        logger.info(f"EmbeddingWorker initialized: worker_id={config.worker_id}")

    def register_handler(self, job_type: str, handler: Callable) -> None:
        """Register a handler callable for a job type, bypassing handler_ref."""
        self._handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")

    def _resolve_handler(self, job_type_def: JobTypeDefinition) -> Callable:
        job_type = job_type_def.job_type
        if job_type not in self._handlers:
            self._handlers[job_type] = import_object(job_type_def.handler_ref, "job handler")
        return self._handlers[job_type]

    def dispatch_once(self) -> bool:
        """
        Claim and dispatch a single job.

        Returns:
            True if a job was processed, False if no jobs available
        """
        job = self.queue.claim_next_job(self.config.worker_id)
        if job is None:
            logger.debug("No jobs available")
            return False

        logger.info(
            f"Claimed job {job.job_id} (type: {job.job_type}, attempt: {job.attempt_count})"
        )

        try:
            self._dispatch_job(job)
        except Exception as e:
            logger.exception(f"Unexpected error dispatching job {job.job_id}")
            self._fail(job, str(e))
        return True

    def dispatch_loop(self, poll_seconds: Optional[int] = None) -> None:
        """
        Run continuously, claiming and dispatching jobs until signalled.

        Args:
            poll_seconds: Seconds to wait when the queue is empty
        """
        poll_interval = poll_seconds or self.config.poll_seconds
        logger.info(f"Starting dispatch loop (poll={poll_interval}s)")

        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

        while not self._shutdown_requested:
            try:
                processed = self.dispatch_once()
                if not processed:
                    time.sleep(poll_interval)
            except Exception as e:
                logger.error(f"Error in dispatch loop: {e}")
                time.sleep(poll_interval)

        logger.info("Dispatch loop shutdown complete")

    def _handle_shutdown(self, signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self._shutdown_requested = True

    def _dispatch_job(self, job: Job) -> None:
        job_type_def = get_job_type(job.job_type)
        if job_type_def is None:
            error = f"Unknown job type: {job.job_type}"
            logger.error(error)
            self._fail(job, error)
            return

        handler = self._resolve_handler(job_type_def)
        ctx = RunContext.create(job, self.config.worker_id)
        log_ctx = ctx.get_log_context()

        with CorrelationContext(job_id=job.job_id, worker_id=self.config.worker_id):
            try:
                result = handler(job, ctx, self.pipeline)
            except Exception as e:
                logger.exception(f"Handler execution failed for job {job.job_id}")
                result = HandlerResult.failure(str(e))

        if result.succeeded:
            self.queue.mark_succeeded(job.job_id)
            logger.info(f"Job {job.job_id} completed successfully", extra=log_ctx)
        elif result.status == HandlerStatus.SKIPPED:
            # Skipped counts as handled
            self.queue.mark_succeeded(job.job_id)
            logger.info(f"Job {job.job_id} skipped: {result.skipped_reason}", extra=log_ctx)
        else:
            self._fail(job, result.error_message or "Unknown error")

    def _fail(self, job: Job, error: str) -> str:
        backoff = calculate_delay(max(job.attempt_count - 1, 0), self.config.retry)
        status = self.queue.mark_failed(job.job_id, error, backoff_seconds=backoff)
        if status == "DEADLETTER":
            logger.error(
                f"Job {job.job_id} deadlettered after {job.attempt_count} attempts: {error}"
            )
        else:
            logger.warning(
                f"Job {job.job_id} failed (attempt {job.attempt_count}/{job.max_attempts}), "
                f"retrying in {backoff:.1f}s: {error}"
            )
        return status


def build_queue(queue_db: Optional[str] = None) -> JobQueue:
    """
    Build the job queue named by ``VECTORSYNC_QUEUE_BACKEND``.

    ``sqlite`` (default) uses ``queue_db`` or ``VECTORSYNC_QUEUE_DB``;
    ``sqlserver`` uses QueueConfig.from_env().
    """
    backend = os.environ.get("VECTORSYNC_QUEUE_BACKEND", "sqlite").lower()
    if backend == "sqlserver":
        return SqlJobQueue(QueueConfig.from_env())
    if backend != "sqlite":
        raise ConfigurationError(f"Unknown queue backend: {backend}")

    path = queue_db or os.environ.get("VECTORSYNC_QUEUE_DB", "data/vectorsync_jobs.db")
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return SqliteJobQueue(path)


def build_record_store(records_db: Optional[str] = None) -> SqliteRecordStore:
    path = records_db or os.environ.get("VECTORSYNC_RECORDS_DB", "data/vectorsync_records.db")
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return SqliteRecordStore(path)


def main():
    """CLI entry point for the embedding worker."""
    parser = argparse.ArgumentParser(
        description="Embedding Worker - Execute deferred embedding refresh jobs",
    )

    mode_group = parser.add_mutually_exclusive_group(required=False)
    mode_group.add_argument("--once", action="store_true", help="Dispatch a single job and exit")
    mode_group.add_argument("--loop", action="store_true", help="Run continuously, dispatching jobs")
    mode_group.add_argument("--list-types", action="store_true", help="List registered job types and exit")

    parser.add_argument("--config", type=str, default=None, help="Path to vectorize.yaml")
    parser.add_argument("--queue-db", type=str, default=None, help="SQLite job queue path")
    parser.add_argument("--records-db", type=str, default=None, help="SQLite record store path")
    parser.add_argument("--worker-id", type=str, default=None, help="Worker identifier (default: auto-generated)")
    parser.add_argument("--poll-seconds", type=int, default=None, help="Seconds between polls in loop mode")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else None)

    if args.list_types:
        try:
            for config in load_registry(args.config).configs():
                ensure_job_type(config.job_type)
        except ConfigurationError as e:
            logger.warning(f"Listing built-in job types only: {e}")
        print("Registered job types:")
        for job_type_def in get_job_type_registry().list_definitions():
            print(f"  {job_type_def.job_type}: {job_type_def.display_name}")
            print(f"    handler: {job_type_def.handler_ref}")
            print(f"    max_attempts: {job_type_def.max_attempts}, priority: {job_type_def.default_priority}")
        sys.exit(0)

    if not args.once and not args.loop:
        parser.error("one of --once, --loop, or --list-types is required")

    try:
        registry = load_registry(args.config)
        queue = build_queue(args.queue_db)
        store = build_record_store(args.records_db)
        pipeline = EmbeddingPipeline(registry, store, queue)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    worker = EmbeddingWorker(WorkerConfig.from_env(args.worker_id), pipeline, queue)

    try:
        if args.once:
            processed = worker.dispatch_once()
            sys.exit(0 if processed else 1)
        worker.dispatch_loop(args.poll_seconds)
    finally:
        queue.close()
        store.close()


if __name__ == "__main__":
    main()
