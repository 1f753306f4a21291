"""
Ollama embedding adapter.

Thin HTTP client for Ollama's /api/embed endpoint.
"""

import json
import logging
import os
import socket
from typing import Any, Dict, List
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..core.types import EmbeddingResult
from .base import EmbeddingModel


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_TIMEOUT_SECONDS = 60

# Known output sizes; anything else must set `dimensions` in options
KNOWN_DIMENSIONS = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
    "bge-m3": 1024,
}


class OllamaEmbeddingModel(EmbeddingModel):
    """
    Embedding adapter backed by Ollama.

    Options:
        model: Embedding model (default: OLLAMA_EMBED_MODEL or nomic-embed-text)
        base_url: Ollama URL (default: OLLAMA_BASE_URL or localhost)
        timeout_seconds: Request timeout
        dimensions: Explicit vector length for unknown models

    Example:
        >>> model = OllamaEmbeddingModel()
        >>> result = model.generate(["Hello world"], {"model": "nomic-embed-text"})
        >>> len(result.vectors[0])
        768
    """

    provider = "ollama"

    def _model_name(self, options: Dict[str, Any]) -> str:
        return options.get("model") or os.environ.get("OLLAMA_EMBED_MODEL", DEFAULT_MODEL)

    def _base_url(self, options: Dict[str, Any]) -> str:
        base_url = options.get("base_url") or os.environ.get("OLLAMA_BASE_URL", DEFAULT_BASE_URL)
        return base_url.rstrip("/")

    def dimensions(self, options: Dict[str, Any]) -> int:
        if options.get("dimensions"):
            return int(options["dimensions"])
        model = self._model_name(options).split(":")[0]
        return KNOWN_DIMENSIONS.get(model, KNOWN_DIMENSIONS[DEFAULT_MODEL])

    def generate(self, texts: List[str], options: Dict[str, Any]) -> EmbeddingResult:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: Texts to embed
            options: Adapter options

        Returns:
            EmbeddingResult with one vector per text, or a failure
        """
        embed_model = self._model_name(options)
        url = f"{self._base_url(options)}/api/embed"
        timeout = options.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)

        payload = {
            "model": embed_model,
            "input": list(texts),
        }
        if options.get("truncate") is not None:
            payload["truncate"] = bool(options["truncate"])

        try:
            data = json.dumps(payload).encode("utf-8")
            request = Request(
                url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )

            logger.debug(f"Making embedding request to {url} with model {embed_model}")

            with urlopen(request, timeout=timeout) as response:
                result = json.loads(response.read().decode("utf-8"))

            return EmbeddingResult.ok(
                vectors=result.get("embeddings", []),
                model=result.get("model", embed_model),
                raw_response=result,
            )

        except HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else str(e)
            logger.error(f"HTTP error from Ollama embed: {e.code} - {error_body}")
            return EmbeddingResult.failure(
                f"Ollama embed API error: {e.code} - {error_body}",
                status_code=e.code,
                error_body=error_body,
            )
        except (socket.timeout, TimeoutError) as e:
            logger.error(f"Ollama embed request timed out after {timeout}s")
            return EmbeddingResult.failure(f"Ollama embed request timed out after {timeout}s: {e}")
        except URLError as e:
            logger.error(f"Failed to connect to Ollama for embedding: {e}")
            return EmbeddingResult.failure(f"Failed to connect to Ollama at {url}: {e}")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON response from Ollama embed: {e}")
            return EmbeddingResult.failure(f"Invalid JSON response from Ollama embed: {e}")
