"""
Field extractor - builds the (dest_field, text) payload for a batch.
"""

import logging
from typing import Any, List, Mapping, Sequence, Tuple

from ..core.exceptions import ExtractionError
from ..core.types import TextBuilder, VectorFieldSpec


logger = logging.getLogger(__name__)

BUILDER_ERRORS = (ValueError, TypeError, AttributeError, KeyError, IndexError)


class _Blank:
    """Stand-in for a missing attribute; renders empty under any format spec."""

    def __format__(self, format_spec):
        return ""

    def __str__(self):
        return ""

    def __repr__(self):
        return ""

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)
        return self

    def __getitem__(self, key):
        return self


_BLANK = _Blank()


class _SafeFormatDict(dict):
    """Format-map dict that renders missing keys as empty strings."""
    def __missing__(self, key):
        return _BLANK


def template_builder(template: str) -> TextBuilder:
    """
    Create a text builder from a ``str.format`` template.

    Missing or None attributes render as empty strings, including
    placeholders with a format spec or attribute access (``{year:d}``,
    ``{author.name}``).

    Example:
        >>> build = template_builder("{name}\\nBio: {biography}")
        >>> build({"name": "Alice", "biography": "loves music"})
        'Alice\\nBio: loves music'
    """
    def build(record: Mapping[str, Any]) -> str:
        values = _SafeFormatDict(
            (key, value) for key, value in record.items() if value is not None
        )
        return template.format_map(values)

    build.template = template
    return build


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def extract(
    record_snapshot: Mapping[str, Any],
    specs: Sequence[VectorFieldSpec],
) -> List[Tuple[str, str]]:
    """
    Build the ordered texts to embed for the given specs.

    Args:
        record_snapshot: Post-mutation attribute values of the record
        specs: Specs that passed the change-trigger gate, in order

    Returns:
        List of (dest_field, text) in the same order as ``specs``

    Raises:
        ExtractionError: If a full-text builder fails on the snapshot
    """
    pairs = []
    for spec in specs:
        if spec.is_full_text:
            try:
                text = spec.builder(record_snapshot)
            except BUILDER_ERRORS as e:
                logger.error(f"Text builder for {spec.dest_field} failed: {e}")
                raise ExtractionError(
                    f"Error while building text for {spec.dest_field}: {e}",
                    fields=[spec.dest_field],
                ) from e
        else:
            text = record_snapshot.get(spec.source_attribute)
        pairs.append((spec.dest_field, _to_text(text)))

    logger.debug(f"Extracted {len(pairs)} texts: {[field for field, _ in pairs]}")
    return pairs
