"""
Embedding model adapter interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..core.types import EmbeddingResult


class EmbeddingModel(ABC):
    """
    Capability interface for embedding providers.

    Implementations must return one vector per input text, in input order,
    and report provider failures as ``EmbeddingResult.failure`` instead of
    raising.
    """

    provider: str = "custom"

    @abstractmethod
    def generate(self, texts: List[str], options: Dict[str, Any]) -> EmbeddingResult:
        """Embed a batch of texts."""
        pass

    @abstractmethod
    def dimensions(self, options: Dict[str, Any]) -> int:
        """Vector length produced for the given options."""
        pass
