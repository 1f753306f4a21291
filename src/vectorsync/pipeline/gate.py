"""
Change-trigger gate.

Decides, per vector field, whether a mutation touched any attribute the
field depends on.
"""

import logging
from typing import AbstractSet, Iterable, List, Optional

from ..core.types import VectorFieldSpec


logger = logging.getLogger(__name__)


def needs_recompute(
    changed_attrs: Optional[AbstractSet[str]],
    spec: VectorFieldSpec,
) -> bool:
    """
    Check whether a vector field must be recomputed.

    Args:
        changed_attrs: Attributes changed by the mutation. None means the
            change set is unknown (manual or full refresh).
        spec: The vector field spec

    Returns:
        True when the field spec has no trigger list, when the change set is
        unknown, or when any trigger attribute changed
    """
    if not spec.has_trigger_list:
        return True
    if changed_attrs is None:
        return True
    return not set(spec.used_attributes).isdisjoint(changed_attrs)


def select_specs(
    changed_attrs: Optional[AbstractSet[str]],
    specs: Iterable[VectorFieldSpec],
) -> List[VectorFieldSpec]:
    """Return the specs that pass the gate, preserving declaration order."""
    selected = []
    for spec in specs:
        if needs_recompute(changed_attrs, spec):
            selected.append(spec)
        else:
            logger.debug(
                f"Skipping {spec.dest_field}: none of {list(spec.used_attributes)} changed"
            )
    return selected
