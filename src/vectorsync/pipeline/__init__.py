"""
Embedding synchronization pipeline.

- gate: decides which vector fields a mutation invalidates
- extractor: builds the texts to embed
- writer: applies batch vectors to a pending mutation
- sync: strategy dispatch and host hooks
"""

from .gate import needs_recompute, select_specs
from .extractor import extract, template_builder
from .writer import apply
from .sync import EmbeddingPipeline

__all__ = [
    "needs_recompute",
    "select_specs",
    "extract",
    "template_builder",
    "apply",
    "EmbeddingPipeline",
]
