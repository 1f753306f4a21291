"""
Embedding model adapters.

Adapters are referenced from configuration by short name (``ollama``,
``openai``, ``hash``) or by import path (``package.module:ClassName``).
"""

import importlib
import logging

from ..core.exceptions import ConfigurationError
from .base import EmbeddingModel
from .hashing import HashEmbeddingModel
from .ollama import OllamaEmbeddingModel
from .openai import OpenAIEmbeddingModel


logger = logging.getLogger(__name__)

BUILTIN_ADAPTERS = {
    "ollama": OllamaEmbeddingModel,
    "openai": OpenAIEmbeddingModel,
    "hash": HashEmbeddingModel,
}


def resolve_adapter(ref: str):
    """
    Instantiate an embedding adapter from a configuration reference.

    Args:
        ref: Built-in adapter name or ``module.path:ClassName``

    Returns:
        Adapter instance

    Raises:
        ConfigurationError: If the reference cannot be resolved
    """
    if not ref or not str(ref).strip():
        raise ConfigurationError("Embedding model adapter is not set")

    ref = str(ref).strip()
    if ref in BUILTIN_ADAPTERS:
        return BUILTIN_ADAPTERS[ref]()

    target = import_object(ref, "embedding adapter")
    adapter = target() if isinstance(target, type) else target
    for method in ("generate", "dimensions"):
        if not callable(getattr(adapter, method, None)):
            raise ConfigurationError(f"Embedding adapter {ref} does not implement {method}()")
    return adapter


def import_object(ref: str, kind: str = "object"):
    """
    Import ``module.path:name`` (or ``module.path.name``).

    Raises:
        ConfigurationError: If the module or attribute is missing
    """
    if ":" in ref:
        module_path, attr = ref.split(":", 1)
    else:
        parts = ref.rsplit(".", 1)
        if len(parts) != 2:
            raise ConfigurationError(f"Invalid {kind} reference: {ref}")
        module_path, attr = parts

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(f"Could not import {kind} module for {ref}: {e}")

    target = getattr(module, attr, None)
    if target is None:
        raise ConfigurationError(f"{kind.capitalize()} not found: {ref}")

    logger.debug(f"Resolved {kind} {ref}")
    return target


__all__ = [
    "EmbeddingModel",
    "HashEmbeddingModel",
    "OllamaEmbeddingModel",
    "OpenAIEmbeddingModel",
    "resolve_adapter",
    "import_object",
]
