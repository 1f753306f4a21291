"""
Backfill CLI - Manual embedding refresh for existing records.

Runs the manual trigger (``update_embeddings``) over a resource in batches,
or enqueues one deferred refresh job per record instead.

Safety rails include:
- Maximum records per run
- Queue depth threshold (enqueue mode)
- Delay between batches
"""

import argparse
import json
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional, Sequence

from ..config.loader import load_registry
from ..core.exceptions import ConfigurationError, VectorSyncError
from ..core.logging import configure_logging
from ..jobs.registry import ensure_job_type
from ..pipeline.sync import EmbeddingPipeline
from ..runners.worker import build_queue, build_record_store


logger = logging.getLogger(__name__)


# Default safety configuration
DEFAULT_MAX_RECORDS = 1000
DEFAULT_MAX_QUEUE_DEPTH = 500
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_SECONDS = 0.0
DEFAULT_BACKFILL_PRIORITY = 50  # Lower than live work (default 100)


class BackfillConfig:
    """Configuration for backfill operations."""

    def __init__(
        self,
        max_records: int = DEFAULT_MAX_RECORDS,
        max_queue_depth: int = DEFAULT_MAX_QUEUE_DEPTH,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        backfill_priority: int = DEFAULT_BACKFILL_PRIORITY,
        dry_run: bool = False,
    ):
        self.max_records = max_records
        self.max_queue_depth = max_queue_depth
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.backfill_priority = backfill_priority
        self.dry_run = dry_run

    @classmethod
    def from_env(cls) -> "BackfillConfig":
        """Create config from environment variables."""
        return cls(
            max_records=int(os.environ.get("BACKFILL_MAX_RECORDS", str(DEFAULT_MAX_RECORDS))),
            max_queue_depth=int(os.environ.get("BACKFILL_MAX_QUEUE_DEPTH", str(DEFAULT_MAX_QUEUE_DEPTH))),
            batch_size=int(os.environ.get("BACKFILL_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
            batch_delay_seconds=float(os.environ.get("BACKFILL_BATCH_DELAY_SECONDS", str(DEFAULT_BATCH_DELAY_SECONDS))),
            backfill_priority=int(os.environ.get("BACKFILL_PRIORITY", str(DEFAULT_BACKFILL_PRIORITY))),
        )


class BackfillService:
    """
    Bulk manual refresh of vector fields.

    Example:
        >>> service = BackfillService(pipeline, config=BackfillConfig(batch_size=50))
        >>> service.refresh("author")
        {'status': 'completed', 'refreshed': 120, 'failed': 0, 'errors': []}
    """

    def __init__(self, pipeline: EmbeddingPipeline, queue=None, config: Optional[BackfillConfig] = None):
        self.pipeline = pipeline
        self.queue = queue if queue is not None else pipeline.job_queue
        self.config = config or BackfillConfig.from_env()

    def select_ids(self, resource: str, record_ids: Optional[Sequence[str]] = None) -> List[str]:
        """Resolve the candidate ids, capped at ``max_records``."""
        self.pipeline.registry.get(resource)
        if record_ids is None:
            record_ids = self.pipeline.record_store.list_ids(resource)
        ids = [str(record_id) for record_id in record_ids]
        if len(ids) > self.config.max_records:
            logger.warning(
                f"Limiting backfill of {resource} to {self.config.max_records} of {len(ids)} records"
            )
            ids = ids[:self.config.max_records]
        return ids

    def _batches(self, ids: List[str]):
        size = max(self.config.batch_size, 1)
        for start in range(0, len(ids), size):
            if start > 0 and self.config.batch_delay_seconds > 0:
                time.sleep(self.config.batch_delay_seconds)
            yield ids[start:start + size]

    def refresh(self, resource: str, record_ids: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Run the manual trigger in batches.

        Each record is refreshed once; a failing record is reported and the
        run continues with the next one.

        Returns:
            Dict with refreshed count, failed count, and errors
        """
        ids = self.select_ids(resource, record_ids)
        if self.config.dry_run:
            logger.info(f"DRY-RUN: Would refresh {len(ids)} {resource} records")
            return {"status": "dry_run", "would_refresh": len(ids), "refreshed": 0, "failed": 0, "errors": []}

        logger.info(f"Starting backfill of {len(ids)} {resource} records")
        refreshed = 0
        errors = []

        for batch in self._batches(ids):
            for record_id in batch:
                try:
                    self.pipeline.update_embeddings(resource, [record_id])
                    refreshed += 1
                except VectorSyncError as e:
                    error_msg = f"Failed to refresh {resource}/{record_id}: {e}"
                    logger.warning(error_msg)
                    errors.append(error_msg)

        return {
            "status": "completed",
            "refreshed": refreshed,
            "failed": len(errors),
            "errors": errors,
        }

    def get_queue_depth(self) -> int:
        """Current queue depth (NEW + RUNNING jobs)."""
        stats = self.queue.get_queue_stats()
        return stats.get("NEW", 0) + stats.get("RUNNING", 0)

    def check_queue_safety(self) -> bool:
        """False when queue depth has reached the threshold."""
        depth = self.get_queue_depth()
        if depth >= self.config.max_queue_depth:
            logger.warning(
                f"Queue depth ({depth}) exceeds threshold ({self.config.max_queue_depth}). "
                f"Backfill operation blocked."
            )
            return False
        return True

    def enqueue(self, resource: str, record_ids: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Enqueue one refresh job per record for the worker to process.

        Returns:
            Dict with enqueued count, skipped count, and errors
        """
        if self.queue is None:
            raise ConfigurationError("Enqueue mode requires a job queue")

        config = self.pipeline.registry.get(resource)
        definition = ensure_job_type(config.job_type)
        ids = self.select_ids(resource, record_ids)

        if self.config.dry_run:
            logger.info(f"DRY-RUN: Would enqueue {len(ids)} {config.job_type} jobs")
            return {"status": "dry_run", "would_enqueue": len(ids), "enqueued": 0, "skipped": 0, "errors": []}

        if not self.check_queue_safety():
            return {
                "status": "blocked",
                "reason": "queue_depth_exceeded",
                "enqueued": 0,
                "skipped": 0,
                "errors": [],
            }

        enqueued = 0
        errors = []
        for batch_number, batch in enumerate(self._batches(ids)):
            if batch_number > 0 and not self.check_queue_safety():
                logger.warning(f"Stopping backfill: queue depth exceeded after {enqueued} jobs")
                break
            for record_id in batch:
                try:
                    self.queue.enqueue(
                        definition.job_type,
                        {"resource": resource, "record_id": record_id, "fields": None},
                        priority=self.config.backfill_priority,
                        max_attempts=definition.max_attempts,
                    )
                    enqueued += 1
                except VectorSyncError as e:
                    error_msg = f"Failed to enqueue job for {resource}/{record_id}: {e}"
                    logger.warning(error_msg)
                    errors.append(error_msg)

        return {
            "status": "completed",
            "enqueued": enqueued,
            "skipped": len(errors),
            "errors": errors,
        }


def main(argv: Optional[Sequence[str]] = None):
    """CLI entry point for backfill operations."""
    parser = argparse.ArgumentParser(
        description="Embedding Backfill - Refresh vector fields of existing records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh every author inline
  python -m vectorsync.cli.backfill --resource author --all

  # Enqueue refresh jobs for two records
  python -m vectorsync.cli.backfill --resource author --ids 1 2 --enqueue
        """,
    )
    parser.add_argument("--resource", required=True, help="Resource to refresh")
    selection = parser.add_mutually_exclusive_group(required=True)
    selection.add_argument("--ids", nargs="+", help="Record ids to refresh")
    selection.add_argument("--all", action="store_true", help="Refresh every record of the resource")
    parser.add_argument("--enqueue", action="store_true", help="Enqueue jobs instead of refreshing inline")
    parser.add_argument("--batch-size", type=int, default=None, help=f"Records per batch (default: {DEFAULT_BATCH_SIZE})")
    parser.add_argument("--max-records", type=int, default=None, help=f"Maximum records per run (default: {DEFAULT_MAX_RECORDS})")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without doing it")
    parser.add_argument("--config", type=str, default=None, help="Path to vectorize.yaml")
    parser.add_argument("--queue-db", type=str, default=None, help="SQLite job queue path")
    parser.add_argument("--records-db", type=str, default=None, help="SQLite record store path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.verbose else None)

    config = BackfillConfig.from_env()
    config.dry_run = args.dry_run
    if args.batch_size:
        config.batch_size = args.batch_size
    if args.max_records:
        config.max_records = args.max_records

    try:
        registry = load_registry(args.config)
        store = build_record_store(args.records_db)
        queue = build_queue(args.queue_db)
        pipeline = EmbeddingPipeline(registry, store, queue)
        service = BackfillService(pipeline, queue=queue, config=config)

        record_ids = None if args.all else args.ids
        if args.enqueue:
            result = service.enqueue(args.resource, record_ids)
        else:
            result = service.refresh(args.resource, record_ids)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    print(json.dumps(result, indent=2))

    if result.get("status") == "blocked":
        sys.exit(2)
    elif result.get("errors"):
        sys.exit(1)
    else:
        sys.exit(0)


if __name__ == "__main__":
    main()
