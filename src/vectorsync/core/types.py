"""
Core data types for the vector synchronization pipeline.

Uses dataclasses following the pattern established in the job and contract
modules. Configuration types are frozen; mutation types are transient and
scoped to a single mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .exceptions import ConfigurationError


TextBuilder = Callable[[Mapping[str, Any]], Optional[str]]


class SyncStrategy(str, Enum):
    """When vectors are recomputed relative to a mutation's commit."""
    INLINE = "inline"      # Before commit, same transaction
    DEFERRED = "deferred"  # After commit, via a queued job
    MANUAL = "manual"      # Only when explicitly triggered

    @classmethod
    def parse(cls, value: str) -> "SyncStrategy":
        """Parse a strategy name, accepting the historical aliases."""
        aliases = {
            "after_action": cls.INLINE,
            "ash_oban": cls.DEFERRED,
            "async": cls.DEFERRED,
        }
        normalized = (value or "").strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(f"Unknown sync strategy: {value!r}")


class MutationAction(str, Enum):
    """Kind of mutation reported by the host."""
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class VectorFieldSpec:
    """
    Declaration of one derived vector attribute.

    Exactly one of ``source_attribute`` or ``builder`` must be set.

    Attributes:
        dest_field: Attribute that receives the vector
        source_attribute: Attribute whose text is embedded (direct spec)
        builder: Callable producing the text from the full record (full-text spec)
        used_attributes: Attributes whose change triggers recomputation;
            None means always recompute
    """
    dest_field: str
    source_attribute: Optional[str] = None
    builder: Optional[TextBuilder] = None
    used_attributes: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if not self.dest_field:
            raise ConfigurationError("Vector field spec requires a destination field")
        if self.source_attribute and self.builder:
            raise ConfigurationError(
                f"Vector field {self.dest_field!r} declares both a source attribute and a builder"
            )
        if not self.source_attribute and self.builder is None:
            raise ConfigurationError(
                f"Vector field {self.dest_field!r} has no source attribute or text builder"
            )
        if self.builder is not None and not callable(self.builder):
            raise ConfigurationError(
                f"Text builder for {self.dest_field!r} is not callable"
            )
        if self.used_attributes is not None:
            object.__setattr__(self, "used_attributes", tuple(self.used_attributes))

    @property
    def is_full_text(self) -> bool:
        return self.builder is not None

    @property
    def has_trigger_list(self) -> bool:
        return self.used_attributes is not None

    @classmethod
    def direct(cls, source_attribute: str, dest_field: str, used_attributes: Optional[Iterable[str]] = None) -> "VectorFieldSpec":
        """Create a spec embedding a single attribute."""
        return cls(
            dest_field=dest_field,
            source_attribute=source_attribute,
            used_attributes=tuple(used_attributes) if used_attributes is not None else None,
        )

    @classmethod
    def full_text(cls, dest_field: str, builder: TextBuilder, used_attributes: Optional[Iterable[str]] = None) -> "VectorFieldSpec":
        """Create a spec embedding text synthesized from the whole record."""
        return cls(
            dest_field=dest_field,
            builder=builder,
            used_attributes=tuple(used_attributes) if used_attributes is not None else None,
        )


@dataclass(frozen=True)
class EmbeddingModelRef:
    """
    Reference to an embedding adapter plus its options payload.

    Attributes:
        adapter: Object implementing ``generate`` and ``dimensions``
        options: Adapter-specific options (model name, base_url, ...)
        validate_dimensions: Check every vector length against
            ``adapter.dimensions(options)``
    """
    adapter: Any
    options: Dict[str, Any] = field(default_factory=dict)
    validate_dimensions: bool = False

    def __post_init__(self):
        if self.adapter is None:
            raise ConfigurationError("Embedding model reference has no adapter")
        for method in ("generate", "dimensions"):
            if not callable(getattr(self.adapter, method, None)):
                raise ConfigurationError(
                    f"Embedding adapter {type(self.adapter).__name__} does not implement {method}()"
                )

    def dimensions(self) -> int:
        return self.adapter.dimensions(self.options)


@dataclass(frozen=True)
class ResourceVectorConfig:
    """
    Immutable vectorize configuration resolved once per resource type.

    Attributes:
        resource: Resource type name
        specs: Ordered vector field specs
        model: Embedding model reference
        strategy: Active synchronization strategy
        job_type: Job type enqueued by the deferred strategy
    """
    resource: str
    specs: Tuple[VectorFieldSpec, ...]
    model: EmbeddingModelRef
    strategy: SyncStrategy = SyncStrategy.INLINE
    job_type: str = "update_embeddings"

    def __post_init__(self):
        object.__setattr__(self, "specs", tuple(self.specs))
        if not self.specs:
            raise ConfigurationError(
                f"Resource {self.resource!r} declares no vector fields", resource=self.resource
            )
        dests = [spec.dest_field for spec in self.specs]
        duplicates = sorted({d for d in dests if dests.count(d) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Resource {self.resource!r} declares duplicate vector fields: {duplicates}",
                resource=self.resource,
            )

    @property
    def dest_fields(self) -> List[str]:
        return [spec.dest_field for spec in self.specs]


@dataclass
class Record:
    """A persisted entity as read from the host record store."""
    resource: str
    record_id: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)


@dataclass
class Mutation:
    """
    A create/update reported by the host before or after commit.

    Attributes:
        resource: Resource type name
        action: create or update
        record_id: Identity of the record (assigned before the hooks run)
        before: Attribute values prior to the mutation (empty for create)
        changes: Pending attribute values written by this mutation
    """
    resource: str
    action: MutationAction
    record_id: str
    before: Dict[str, Any] = field(default_factory=dict)
    changes: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed_attributes(self) -> Set[str]:
        """Attributes whose value differs from the pre-mutation snapshot."""
        if self.action == MutationAction.CREATE:
            return set(self.changes)
        return {
            name for name, value in self.changes.items()
            if name not in self.before or self.before[name] != value
        }

    def post_image(self) -> Dict[str, Any]:
        """Attribute values as they will be after the mutation commits."""
        image = dict(self.before)
        image.update(self.changes)
        return image


@dataclass
class PendingMutation:
    """Ordered (field, value) pairs queued for write as part of a mutation."""
    changes: Dict[str, Any] = field(default_factory=dict)

    def with_changes(self, pairs: Iterable[Tuple[str, Any]]) -> "PendingMutation":
        """Return a new pending mutation with the pairs appended."""
        merged = dict(self.changes)
        for name, value in pairs:
            merged[name] = value
        return PendingMutation(changes=merged)

    @property
    def fields(self) -> List[str]:
        return list(self.changes)


@dataclass
class EmbeddingResult:
    """
    Result of one batched adapter call.

    Attributes:
        success: Whether the provider call succeeded
        vectors: One vector per input text, in input order
        model: Model that produced the vectors
        error_message: Error description when the call failed
        status_code: Upstream HTTP status, when available
        error_body: Upstream response body, when available
        raw_response: Full provider response for diagnostics
    """
    success: bool
    vectors: List[List[float]] = field(default_factory=list)
    model: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    error_body: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, vectors: List[List[float]], model: Optional[str] = None, raw_response: Optional[Dict[str, Any]] = None) -> "EmbeddingResult":
        return cls(success=True, vectors=list(vectors), model=model, raw_response=raw_response)

    @classmethod
    def failure(cls, error_message: str, status_code: Optional[int] = None, error_body: Optional[str] = None) -> "EmbeddingResult":
        return cls(success=False, error_message=error_message, status_code=status_code, error_body=error_body)


@dataclass
class HookResponse:
    """Answer returned to the host from a pre-commit hook."""
    accepted: bool
    mutation: Optional[Mutation] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, mutation: Mutation) -> "HookResponse":
        return cls(accepted=True, mutation=mutation)

    @classmethod
    def rejected(cls, mutation: Mutation, error: Exception) -> "HookResponse":
        return cls(accepted=False, mutation=mutation, error=error)
