"""
Embedding writer - applies batch results to a pending mutation.

A batch is all-or-nothing: either every destination field receives its
vector or none does and the error names the whole batch.
"""

import logging
from typing import Optional, Sequence

from ..core.exceptions import AdapterError, ShapeMismatchError
from ..core.types import EmbeddingResult, PendingMutation


logger = logging.getLogger(__name__)

VECTORIZE_ERROR_MESSAGE = "Error while vectorizing"


def apply(
    mutation: PendingMutation,
    dest_fields: Sequence[str],
    result: EmbeddingResult,
    expected_dimensions: Optional[int] = None,
    provider: Optional[str] = None,
) -> PendingMutation:
    """
    Write the vectors of a batch onto a pending mutation.

    Args:
        mutation: Pending mutation to augment (left untouched)
        dest_fields: Destination fields in batch order
        result: Adapter result for the batch
        expected_dimensions: When set, every vector must have this length
        provider: Provider name for error reporting

    Returns:
        New PendingMutation with one (field, vector) pair per destination

    Raises:
        AdapterError: If the adapter reported a failure
        ShapeMismatchError: If the vector count (or length) does not match
    """
    fields = list(dest_fields)

    if not result.success:
        detail = result.error_message or "unknown error"
        logger.error(f"{VECTORIZE_ERROR_MESSAGE} {fields}: {detail}")
        raise AdapterError(
            f"{VECTORIZE_ERROR_MESSAGE}: {detail}",
            fields=fields,
            provider=provider,
            status_code=result.status_code,
            body=result.error_body,
        )

    vectors = result.vectors
    if len(vectors) != len(fields):
        raise ShapeMismatchError(
            f"Adapter returned {len(vectors)} vectors for {len(fields)} texts",
            fields=fields,
            expected=len(fields),
            actual=len(vectors),
        )

    if expected_dimensions is not None:
        for name, vector in zip(fields, vectors):
            if len(vector) != expected_dimensions:
                raise ShapeMismatchError(
                    f"Vector for {name} has {len(vector)} dimensions, expected {expected_dimensions}",
                    fields=fields,
                    expected=expected_dimensions,
                    actual=len(vector),
                )

    return mutation.with_changes(zip(fields, (list(v) for v in vectors)))
