"""
Core subpackage for vectorsync.

Contains types, exceptions, and logging utilities.
"""

from .types import (
    SyncStrategy,
    MutationAction,
    VectorFieldSpec,
    EmbeddingModelRef,
    ResourceVectorConfig,
    Record,
    Mutation,
    PendingMutation,
    EmbeddingResult,
    HookResponse,
)
from .exceptions import (
    VectorSyncError,
    AdapterError,
    ConfigurationError,
    ShapeMismatchError,
    ExtractionError,
    StorageError,
    RecordNotFoundError,
)

__all__ = [
    # Types
    "SyncStrategy",
    "MutationAction",
    "VectorFieldSpec",
    "EmbeddingModelRef",
    "ResourceVectorConfig",
    "Record",
    "Mutation",
    "PendingMutation",
    "EmbeddingResult",
    "HookResponse",
    # Exceptions
    "VectorSyncError",
    "AdapterError",
    "ConfigurationError",
    "ShapeMismatchError",
    "ExtractionError",
    "StorageError",
    "RecordNotFoundError",
]
