"""
Unit tests for the embedding worker.

Tests for:
- WorkerConfig creation
- Handler registration and resolution
- Success, skip, retry and deadletter transitions
"""

import signal
from dataclasses import replace
from unittest.mock import Mock, patch

import pytest

from vectorsync.config.loader import ResourceRegistry
from vectorsync.core.exceptions import ConfigurationError
from vectorsync.core.types import EmbeddingResult, SyncStrategy
from vectorsync.jobs.handlers import HandlerResult
from vectorsync.jobs.models import Job, JobStatus
from vectorsync.jobs.registry import JobTypeDefinition, get_job_type, register_job_type
from vectorsync.pipeline.sync import EmbeddingPipeline
from vectorsync.runners.worker import EmbeddingWorker, WorkerConfig, build_queue
from vectorsync.storage.job_queue import SqliteJobQueue
from vectorsync.storage.record_store import SqliteRecordStore
from vectorsync.utils.retry import RetryConfig


@pytest.fixture
def worker_config():
    return WorkerConfig(
        worker_id="test-worker",
        poll_seconds=0,
        retry=RetryConfig(initial_delay_ms=0, max_delay_ms=0, jitter=False),
    )


@pytest.fixture
def deferred_setup(author_config_factory, recording_model, worker_config):
    store = SqliteRecordStore()
    queue = SqliteJobQueue()
    config = author_config_factory(recording_model, strategy=SyncStrategy.DEFERRED)
    pipeline = EmbeddingPipeline(ResourceRegistry([config]), store, queue)
    pipeline.attach(store)
    worker = EmbeddingWorker(worker_config, pipeline, queue)
    yield store, queue, worker
    store.close()
    queue.close()


class TestWorkerConfig:
    """Tests for WorkerConfig."""

    def test_defaults(self):
        config = WorkerConfig(worker_id="w1")

        assert config.poll_seconds == 10
        assert config.retry.initial_delay_ms == 30000.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WORKER_ID", "env-worker")
        monkeypatch.setenv("POLL_SECONDS", "3")
        monkeypatch.setenv("VECTORSYNC_RETRY_INITIAL_MS", "1000")

        config = WorkerConfig.from_env()

        assert config.worker_id == "env-worker"
        assert config.poll_seconds == 3
        assert config.retry.initial_delay_ms == 1000.0

    def test_generated_worker_id(self, monkeypatch):
        monkeypatch.delenv("WORKER_ID", raising=False)

        assert WorkerConfig.from_env().worker_id.startswith("embed-worker-")


class TestEmbeddingWorker:
    """Tests for EmbeddingWorker dispatch."""

    def test_empty_queue(self, deferred_setup):
        _, _, worker = deferred_setup

        assert worker.dispatch_once() is False

    def test_refreshes_record(self, deferred_setup, recording_model):
        store, queue, worker = deferred_setup
        store.mutate("author", "create", {"name": "Alice", "biography": "poet"}, record_id="1")

        assert worker.dispatch_once() is True

        attributes = store.get("author", "1").attributes
        assert attributes["vectorized_name"] == [5.0, 0.0]
        assert "vectorized_bio" in attributes
        assert queue.get_queue_stats() == {"SUCCEEDED": 1}

    def test_deleted_record_is_skipped(self, deferred_setup):
        store, queue, worker = deferred_setup
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")
        store.delete("author", "1")

        worker.dispatch_once()

        assert queue.get_queue_stats() == {"SUCCEEDED": 1}

    def test_adapter_failure_retries_then_deadletters(self, deferred_setup, recording_model):
        store, queue, worker = deferred_setup
        recording_model.result = EmbeddingResult.failure("model not loaded")
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")

        for _ in range(3):
            assert worker.dispatch_once() is True

        assert queue.get_queue_stats() == {"DEADLETTER": 1}
        assert worker.dispatch_once() is False
        assert "vectorized_name" not in store.get("author", "1").attributes

    def test_failure_records_error(self, deferred_setup, recording_model):
        store, queue, worker = deferred_setup
        recording_model.result = EmbeddingResult.failure("rate limited", status_code=429)
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")

        worker.dispatch_once()

        job = queue.claim_next_job("other")
        assert job.attempt_count == 2
        assert "rate limited" in job.last_error

    def test_registered_handler_overrides_ref(self, deferred_setup):
        store, queue, worker = deferred_setup
        handler = Mock(return_value=HandlerResult.success({"ok": True}))
        worker.register_handler("update_embeddings", handler)
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")

        worker.dispatch_once()

        job, ctx, pipeline = handler.call_args[0]
        assert job.job_type == "update_embeddings"
        assert ctx.worker_id == "test-worker"
        assert pipeline is worker.pipeline

    def test_handler_exception_marks_failed(self, deferred_setup):
        store, queue, worker = deferred_setup
        worker.register_handler("update_embeddings", Mock(side_effect=RuntimeError("kaboom")))
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")

        worker.dispatch_once()

        assert queue.get_queue_stats() == {"NEW": 1}

    def test_unknown_job_type(self, deferred_setup):
        _, queue, worker = deferred_setup
        job_id = queue.enqueue("reindex_everything", {}, max_attempts=1)

        worker.dispatch_once()

        assert queue.get_job(job_id).status == JobStatus.DEADLETTER

    def test_resource_job_type(self, author_config_factory, recording_model, worker_config):
        store = SqliteRecordStore()
        queue = SqliteJobQueue()
        config = replace(
            author_config_factory(recording_model, strategy=SyncStrategy.DEFERRED),
            job_type="refresh_authors",
        )
        pipeline = EmbeddingPipeline(ResourceRegistry([config]), store, queue)
        pipeline.attach(store)
        worker = EmbeddingWorker(worker_config, pipeline, queue)
        try:
            store.mutate("author", "create", {"name": "Alice"}, record_id="1")

            assert worker.dispatch_once() is True

            assert get_job_type("refresh_authors").handler_ref == (
                "vectorsync.jobs.handlers:handle_update_embeddings"
            )
            assert queue.get_queue_stats() == {"SUCCEEDED": 1}
            assert store.get("author", "1").attributes["vectorized_name"] == [5.0, 0.0]
        finally:
            store.close()
            queue.close()

    def test_job_type_limits_apply_to_enqueued_jobs(self, author_config_factory, recording_model, worker_config):
        register_job_type(JobTypeDefinition(
            job_type="update_embeddings",
            display_name="Update Embeddings",
            handler_ref="vectorsync.jobs.handlers:handle_update_embeddings",
            max_attempts=1,
        ))
        store = SqliteRecordStore()
        queue = SqliteJobQueue()
        config = author_config_factory(recording_model, strategy=SyncStrategy.DEFERRED)
        pipeline = EmbeddingPipeline(ResourceRegistry([config]), store, queue)
        pipeline.attach(store)
        worker = EmbeddingWorker(worker_config, pipeline, queue)
        recording_model.result = EmbeddingResult.failure("model not loaded")
        try:
            store.mutate("author", "create", {"name": "Alice"}, record_id="1")

            worker.dispatch_once()

            assert queue.get_queue_stats() == {"DEADLETTER": 1}
        finally:
            store.close()
            queue.close()

    def test_backoff_uses_retry_config(self, worker_config):
        queue = Mock()
        queue.claim_next_job.return_value = Job(
            job_id="j1", job_type="unknown", input_json="{}", attempt_count=2,
        )
        queue.mark_failed.return_value = "NEW"
        worker_config.retry = RetryConfig(initial_delay_ms=1000, max_delay_ms=60000, jitter=False)
        worker = EmbeddingWorker(worker_config, pipeline=Mock(), queue=queue)

        worker.dispatch_once()

        assert queue.mark_failed.call_args[1]["backoff_seconds"] == 2.0

    def test_shutdown_signal_stops_loop(self, deferred_setup):
        _, _, worker = deferred_setup
        worker._handle_shutdown(signal.SIGTERM, None)

        with patch("vectorsync.runners.worker.signal.signal"):
            worker.dispatch_loop(poll_seconds=0)

        assert worker._shutdown_requested is True


class TestBuildQueue:
    """Tests for build_queue."""

    def test_sqlite_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("VECTORSYNC_QUEUE_BACKEND", raising=False)

        queue = build_queue(str(tmp_path / "q" / "jobs.db"))

        assert isinstance(queue, SqliteJobQueue)
        queue.close()

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("VECTORSYNC_QUEUE_BACKEND", "redis")

        with pytest.raises(ConfigurationError):
            build_queue()
