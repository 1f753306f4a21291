"""
Integration tests for SqlJobQueue against a live SQL Server.

Skipped automatically unless SQL Server is reachable (see conftest).
"""

import uuid

import pytest

from vectorsync.jobs.models import JobStatus
from vectorsync.storage.sql_job_queue import QueueConfig, SqlJobQueue


@pytest.fixture
def sql_queue():
    config = QueueConfig.from_env()
    config.schema = f"test_{uuid.uuid4().hex[:8]}"
    queue = SqlJobQueue(config)
    queue.ensure_schema()
    yield queue

    cursor = queue._get_connection().cursor()
    cursor.execute(f"DROP TABLE IF EXISTS [{config.schema}].[job]")
    cursor.execute(f"DROP SCHEMA IF EXISTS [{config.schema}]")
    queue.close()


@pytest.mark.integration
class TestSqlJobQueueLifecycle:
    """Claim, retry and deadletter against SQL Server."""

    def test_claim_and_succeed(self, sql_queue):
        job_id = sql_queue.enqueue("update_embeddings", {"resource": "author", "record_id": "1"})

        job = sql_queue.claim_next_job("worker-1")

        assert job.job_id.lower() == job_id.lower()
        assert job.status == JobStatus.RUNNING
        assert job.get_input()["record_id"] == "1"
        assert sql_queue.claim_next_job("worker-2") is None

        sql_queue.mark_succeeded(job.job_id)
        assert sql_queue.get_queue_stats() == {"SUCCEEDED": 1}

    def test_deadletter(self, sql_queue):
        sql_queue.enqueue("update_embeddings", {}, max_attempts=1)
        job = sql_queue.claim_next_job("worker-1")

        assert sql_queue.mark_failed(job.job_id, "adapter down", backoff_seconds=0) == "DEADLETTER"
