"""
Custom exceptions for the vector synchronization pipeline.
"""

from typing import List, Optional


class VectorSyncError(Exception):
    """Base exception for all vectorsync errors."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])


class AdapterError(VectorSyncError):
    """
    The embedding provider call failed for a batch.

    Raised when:
    - Provider is unreachable or the request times out
    - Provider returns an error response (auth, rate limit, ...)
    - Provider response cannot be parsed

    The error always names every destination field of the batch, since a
    single failure invalidates the whole batch.
    """

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message, fields)
        self.provider = provider
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict:
        """Convert to dictionary for job results and logs."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "fields": self.fields,
            "provider": self.provider,
            "status_code": self.status_code,
        }


class ConfigurationError(VectorSyncError):
    """
    Error in vectorize configuration.

    Raised at setup time when:
    - A resource declares vector fields without a resolvable embedding model
    - A field spec is malformed (no source, missing builder, ...)
    - The strategy or adapter name is unknown
    """

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class ShapeMismatchError(VectorSyncError):
    """The adapter returned a different number (or length) of vectors than expected."""

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ):
        super().__init__(message, fields)
        self.expected = expected
        self.actual = actual


class ExtractionError(VectorSyncError):
    """A full-text builder failed to produce text for its destination field."""
    pass


class StorageError(VectorSyncError):
    """
    Error persisting or reading records and jobs.

    Raised when:
    - Cannot connect to the record store or job queue
    - A commit or queue update fails
    """
    pass


class RecordNotFoundError(StorageError):
    """The record addressed by a refresh no longer exists."""

    def __init__(self, resource: str, record_id: str):
        super().__init__(f"Record not found: {resource}/{record_id}")
        self.resource = resource
        self.record_id = record_id
