"""
Embedding pipeline - runs gate → extract → adapter → write and dispatches
on the resource's synchronization strategy.

The host persistence layer calls into the pipeline through two hooks:

- ``before_commit``: inline strategy; augments the mutation with vectors
  or rejects it with a field-scoped error
- ``after_commit``: deferred strategy; enqueues a refresh job carrying the
  record identity

The manual strategy is served by ``update_embeddings``, which can also be
used as a bulk backfill for resources on any strategy.
"""

import logging
from dataclasses import replace
from typing import AbstractSet, Iterable, List, Optional, Sequence

from ..core.exceptions import ConfigurationError, RecordNotFoundError, VectorSyncError
from ..core.logging import CorrelationContext, log_with_context
from ..core.types import (
    EmbeddingResult,
    HookResponse,
    Mutation,
    PendingMutation,
    Record,
    ResourceVectorConfig,
    SyncStrategy,
)
from ..jobs.registry import ensure_job_type
from . import writer
from .extractor import extract
from .gate import select_specs


logger = logging.getLogger(__name__)


class EmbeddingPipeline:
    """
    Vector synchronization pipeline for every configured resource.

    Example:
        >>> registry = load_registry("config/vectorize.yaml")
        >>> store = SqliteRecordStore(Path("data/records.db"))
        >>> pipeline = EmbeddingPipeline(registry, store, SqliteJobQueue(Path("data/jobs.db")))
        >>> pipeline.attach(store)
        >>> store.mutate("author", "create", {"name": "Alice"})
    """

    def __init__(self, registry, record_store=None, job_queue=None):
        """
        Initialize the pipeline.

        Args:
            registry: ResourceRegistry resolved at process start
            record_store: Host record store (required for refresh operations)
            job_queue: Job queue (required when any resource is deferred)

        Raises:
            ConfigurationError: If a deferred resource has no job queue
        """
        self.registry = registry
        self.record_store = record_store
        self.job_queue = job_queue

        deferred = [
            config.resource for config in registry.configs()
            if config.strategy == SyncStrategy.DEFERRED
        ]
        if deferred and job_queue is None:
            raise ConfigurationError(
                f"Deferred strategy requires a job queue (resources: {deferred})"
            )

        for config in registry.configs():
            ensure_job_type(config.job_type)

        logger.debug(
            f"EmbeddingPipeline initialized for resources: {registry.resources()}"
        )

    def attach(self, record_store) -> None:
        """Register this pipeline's hooks on a record store."""
        self.record_store = record_store
        record_store.register_hooks(
            before_commit=self.before_commit,
            after_commit=self.after_commit,
        )

    # =========================================================================
    # Gate → Extract → Adapter → Write
    # =========================================================================

    def compute(
        self,
        config: ResourceVectorConfig,
        record_snapshot: dict,
        changed_attrs: Optional[AbstractSet[str]] = None,
        pending: Optional[PendingMutation] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> PendingMutation:
        """
        Compute the vectors a mutation needs and append them to ``pending``.

        Args:
            config: Resource configuration
            record_snapshot: Post-mutation attribute values
            changed_attrs: Changed attributes, or None for a full refresh
            pending: Pending mutation to augment (empty if None)
            fields: Optional restriction to these destination fields

        Returns:
            Augmented pending mutation (``pending`` itself when nothing to do)

        Raises:
            ExtractionError: If a text builder failed
            AdapterError: If the embedding call failed
            ShapeMismatchError: If the adapter output does not fit the batch
        """
        pending = pending if pending is not None else PendingMutation()

        specs = select_specs(changed_attrs, config.specs)
        if fields is not None:
            wanted = set(fields)
            specs = [spec for spec in specs if spec.dest_field in wanted]

        if not specs:
            logger.debug(f"No vector fields need recompute for {config.resource}")
            return pending

        pairs = extract(record_snapshot, specs)
        dest_fields = [name for name, _ in pairs]
        texts = [text for _, text in pairs]

        result = self._generate(config, texts)

        expected = config.model.dimensions() if config.model.validate_dimensions else None
        return writer.apply(
            pending,
            dest_fields,
            result,
            expected_dimensions=expected,
            provider=_provider_name(config.model.adapter),
        )

    def _generate(self, config: ResourceVectorConfig, texts: List[str]) -> EmbeddingResult:
        """Invoke the adapter once for the whole batch."""
        adapter = config.model.adapter
        logger.debug(
            f"Embedding {len(texts)} texts for {config.resource} via {_provider_name(adapter)}"
        )
        try:
            return adapter.generate(texts, config.model.options)
        except Exception as e:
            logger.exception(f"Embedding adapter {_provider_name(adapter)} raised")
            return EmbeddingResult.failure(f"Adapter raised {type(e).__name__}: {e}")

    # =========================================================================
    # Host hooks
    # =========================================================================

    def before_commit(self, mutation: Mutation) -> HookResponse:
        """
        Pre-commit hook; only the inline strategy does work here.

        Returns:
            HookResponse carrying the augmented mutation, or a rejection
            carrying the field-scoped error
        """
        config = self.registry.find(mutation.resource)
        if config is None or config.strategy != SyncStrategy.INLINE:
            return HookResponse.ok(mutation)

        with CorrelationContext(
            resource=mutation.resource,
            record_id=mutation.record_id,
            strategy=config.strategy.value,
        ):
            try:
                pending = self.compute(
                    config,
                    mutation.post_image(),
                    mutation.changed_attributes,
                    PendingMutation(changes=dict(mutation.changes)),
                )
            except VectorSyncError as e:
                log_with_context(
                    logger, logging.WARNING,
                    f"Rejecting {mutation.action.value}: {e} (fields: {e.fields})",
                )
                return HookResponse.rejected(mutation, e)

        return HookResponse.ok(replace(mutation, changes=pending.changes))

    def after_commit(self, mutation: Mutation) -> Optional[str]:
        """
        Post-commit hook; only the deferred strategy does work here.

        Returns:
            The enqueued job id, or None when nothing was enqueued
        """
        config = self.registry.find(mutation.resource)
        if config is None or config.strategy != SyncStrategy.DEFERRED:
            return None

        specs = select_specs(mutation.changed_attributes, config.specs)
        if not specs:
            return None

        definition = ensure_job_type(config.job_type)
        job_id = self.job_queue.enqueue(
            definition.job_type,
            {
                "resource": mutation.resource,
                "record_id": mutation.record_id,
                "fields": [spec.dest_field for spec in specs],
            },
            priority=definition.default_priority,
            max_attempts=definition.max_attempts,
        )
        log_with_context(
            logger, logging.INFO,
            f"Enqueued {config.job_type} job {job_id}",
            resource=mutation.resource,
            record_id=mutation.record_id,
            job_id=job_id,
        )
        return job_id

    # =========================================================================
    # Follow-up refresh (deferred job and manual trigger)
    # =========================================================================

    def refresh_record(
        self,
        resource: str,
        record_id: str,
        fields: Optional[Sequence[str]] = None,
    ) -> Record:
        """
        Recompute vectors for a persisted record and commit a follow-up mutation.

        Args:
            resource: Resource type name
            record_id: Record identity
            fields: Optional restriction to these destination fields

        Returns:
            The record after the follow-up commit

        Raises:
            RecordNotFoundError: If the record no longer exists
            AdapterError / ShapeMismatchError: If embedding failed
        """
        config = self.registry.get(resource)
        store = self._require_store()

        record = store.get(resource, record_id)
        if record is None:
            raise RecordNotFoundError(resource, record_id)

        with CorrelationContext(resource=resource, record_id=record_id):
            pending = self.compute(config, dict(record.attributes), None, fields=fields)
            if not pending.changes:
                return record

            updated = store.commit_changes(resource, record_id, pending.changes)
            log_with_context(
                logger, logging.INFO,
                f"Committed vectors for {pending.fields}",
            )
            return updated

    def update_embeddings(
        self,
        resource: str,
        record_ids: Optional[Iterable[str]] = None,
    ) -> List[Record]:
        """
        Manual trigger: refresh every vector field of the given records.

        Args:
            resource: Resource type name
            record_ids: Records to refresh; all records of the resource if None

        Returns:
            Records after their follow-up commits, in input order

        Raises:
            VectorSyncError: The first failure, surfaced directly to the caller
        """
        config = self.registry.get(resource)
        if record_ids is None:
            record_ids = self._require_store().list_ids(resource)

        refreshed = []
        for record_id in record_ids:
            refreshed.append(self.refresh_record(config.resource, str(record_id)))

        logger.info(f"Refreshed embeddings for {len(refreshed)} {resource} records")
        return refreshed

    def _require_store(self):
        if self.record_store is None:
            raise ConfigurationError("Refresh operations require a record store")
        return self.record_store


def _provider_name(adapter) -> str:
    return getattr(adapter, "provider", None) or type(adapter).__name__
