"""
Deterministic hash-based embedding adapter for development and tests.
"""

import hashlib
from typing import Any, Dict, List

from ..core.types import EmbeddingResult
from .base import EmbeddingModel


class HashEmbeddingModel(EmbeddingModel):
    """
    Reproducible embeddings derived from a SHA256 stream of the text.

    Identical texts always produce identical vectors, which makes the
    adapter useful for exercising the pipeline without a model server.
    """

    provider = "hash"

    def dimensions(self, options: Dict[str, Any]) -> int:
        return int(options.get("dimensions", 16))

    def embed_text(self, text: str, dimension: int) -> List[float]:
        vector = []
        counter = 0
        while len(vector) < dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode("utf-8")).digest()
            for i in range(0, len(digest), 4):
                if len(vector) >= dimension:
                    break
                value = int.from_bytes(digest[i:i + 4], "big")
                # Map to [-1, 1]
                vector.append((value / 0xFFFFFFFF) * 2 - 1)
            counter += 1
        return vector

    def generate(self, texts: List[str], options: Dict[str, Any]) -> EmbeddingResult:
        dimension = self.dimensions(options)
        return EmbeddingResult.ok([self.embed_text(text, dimension) for text in texts], model="hash")
