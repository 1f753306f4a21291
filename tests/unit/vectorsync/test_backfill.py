"""
Unit tests for the backfill CLI.
"""

import json
import textwrap

import pytest

from vectorsync.cli.backfill import BackfillConfig, BackfillService, main
from vectorsync.config.loader import ResourceRegistry
from vectorsync.core.types import EmbeddingResult, SyncStrategy
from vectorsync.jobs.registry import JobTypeDefinition, register_job_type
from vectorsync.pipeline.sync import EmbeddingPipeline
from vectorsync.storage.job_queue import SqliteJobQueue
from vectorsync.storage.record_store import SqliteRecordStore


@pytest.fixture
def manual_setup(author_config_factory, recording_model):
    store = SqliteRecordStore()
    queue = SqliteJobQueue()
    config = author_config_factory(recording_model, strategy=SyncStrategy.MANUAL)
    pipeline = EmbeddingPipeline(ResourceRegistry([config]), store, queue)
    pipeline.attach(store)
    for record_id, name in [("1", "Alice"), ("2", "Bob"), ("3", "Carol")]:
        store.mutate("author", "create", {"name": name}, record_id=record_id)
    yield pipeline, store, queue
    store.close()
    queue.close()


class TestBackfillService:
    """Tests for BackfillService."""

    def test_refresh_all_in_batches(self, manual_setup, recording_model):
        pipeline, store, _ = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig(batch_size=2))

        result = service.refresh("author")

        assert result == {"status": "completed", "refreshed": 3, "failed": 0, "errors": []}
        assert len(recording_model.calls) == 3
        assert store.get("author", "3").attributes["vectorized_name"] == [5.0, 0.0]

    def test_refresh_selected_ids(self, manual_setup, recording_model):
        pipeline, store, _ = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig())

        result = service.refresh("author", ["2"])

        assert result["refreshed"] == 1
        assert "vectorized_name" not in store.get("author", "1").attributes

    def test_failures_are_reported_per_record(self, manual_setup, recording_model):
        pipeline, _, _ = manual_setup
        recording_model.result = EmbeddingResult.failure("unauthorized")
        service = BackfillService(pipeline, config=BackfillConfig(batch_size=10))

        result = service.refresh("author")

        assert result["refreshed"] == 0
        assert result["failed"] == 3
        assert "author/1" in result["errors"][0]
        assert len(recording_model.calls) == 3

    def test_each_record_embedded_once(self, manual_setup, recording_model, monkeypatch):
        pipeline, store, _ = manual_setup
        generate = recording_model.generate

        def reject_bob(texts, options):
            result = generate(texts, options)
            return EmbeddingResult.failure("content filtered") if "Bob" in texts else result

        monkeypatch.setattr(recording_model, "generate", reject_bob)
        service = BackfillService(pipeline, config=BackfillConfig(batch_size=10))

        result = service.refresh("author")

        assert result["refreshed"] == 2
        assert result["failed"] == 1
        assert "author/2" in result["errors"][0]
        assert [texts[0] for texts in recording_model.calls] == ["Alice", "Bob", "Carol"]
        assert "vectorized_name" in store.get("author", "3").attributes

    def test_missing_id_is_reported(self, manual_setup):
        pipeline, _, _ = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig())

        result = service.refresh("author", ["1", "missing"])

        assert result["refreshed"] == 1
        assert result["failed"] == 1

    def test_max_records(self, manual_setup):
        pipeline, _, _ = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig(max_records=2))

        assert service.select_ids("author") == ["1", "2"]

    def test_dry_run(self, manual_setup, recording_model):
        pipeline, _, queue = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig(dry_run=True))

        assert service.refresh("author")["would_refresh"] == 3
        assert service.enqueue("author")["would_enqueue"] == 3
        assert recording_model.calls == []
        assert queue.get_queue_stats() == {}

    def test_enqueue(self, manual_setup):
        pipeline, _, queue = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig())

        result = service.enqueue("author", ["1", "2"])

        assert result["enqueued"] == 2
        job = queue.claim_next_job("w")
        assert job.priority == 50
        assert job.get_input() == {"resource": "author", "record_id": "1", "fields": None}

    def test_enqueue_uses_job_type_max_attempts(self, manual_setup):
        register_job_type(JobTypeDefinition(
            job_type="update_embeddings",
            display_name="Update Embeddings",
            handler_ref="vectorsync.jobs.handlers:handle_update_embeddings",
            max_attempts=7,
        ))
        pipeline, _, queue = manual_setup
        service = BackfillService(pipeline, config=BackfillConfig())

        service.enqueue("author", ["1"])

        job = queue.claim_next_job("w")
        assert job.max_attempts == 7
        assert job.priority == 50

    def test_enqueue_blocked_by_queue_depth(self, manual_setup):
        pipeline, _, queue = manual_setup
        queue.enqueue("update_embeddings", {})
        service = BackfillService(pipeline, config=BackfillConfig(max_queue_depth=1))

        result = service.enqueue("author")

        assert result["status"] == "blocked"
        assert queue.get_queue_stats() == {"NEW": 1}


class TestBackfillMain:
    """Tests for the CLI entry point."""

    def test_refresh_from_cli(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr("vectorsync.cli.backfill.configure_logging", lambda **kwargs: None)
        monkeypatch.delenv("VECTORSYNC_QUEUE_BACKEND", raising=False)
        config_path = tmp_path / "vectorize.yaml"
        config_path.write_text(textwrap.dedent("""
            embedding_models:
              fake:
                adapter: hash
                options:
                  dimensions: 4
            resources:
              - name: author
                strategy: manual
                embedding_model: fake
                attributes:
                  name: vectorized_name
        """))
        records_db = tmp_path / "records.db"
        store = SqliteRecordStore(records_db)
        store.mutate("author", "create", {"name": "Alice"}, record_id="1")
        store.close()

        with pytest.raises(SystemExit) as exc_info:
            main([
                "--resource", "author", "--all",
                "--config", str(config_path),
                "--records-db", str(records_db),
                "--queue-db", str(tmp_path / "jobs.db"),
            ])

        assert exc_info.value.code == 0
        assert json.loads(capsys.readouterr().out)["refreshed"] == 1

        store = SqliteRecordStore(records_db)
        try:
            assert len(store.get("author", "1").attributes["vectorized_name"]) == 4
        finally:
            store.close()

    def test_requires_selection(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--resource", "author"])

        assert exc_info.value.code == 2
