"""
OpenAI embedding adapter.
"""

import logging
import os
from typing import Any, Dict, List

import requests

from ..core.types import EmbeddingResult
from .base import EmbeddingModel


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_MODEL = "text-embedding-3-large"
DEFAULT_TIMEOUT_SECONDS = 60


class OpenAIEmbeddingModel(EmbeddingModel):
    """
    Embedding adapter for the OpenAI /v1/embeddings API.

    Options:
        model: Embedding model (default: text-embedding-3-large)
        api_key: API key (default: OPENAI_API_KEY)
        base_url: API base URL
        dimensions: Requested output size (text-embedding-3 models only)
        timeout_seconds: Request timeout
    """

    provider = "openai"

    def dimensions(self, options: Dict[str, Any]) -> int:
        if options.get("dimensions"):
            return int(options["dimensions"])
        model = options.get("model", DEFAULT_MODEL)
        if model == "text-embedding-3-large":
            return 3072
        return 1536

    def generate(self, texts: List[str], options: Dict[str, Any]) -> EmbeddingResult:
        model = options.get("model", DEFAULT_MODEL)
        api_key = options.get("api_key") or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            return EmbeddingResult.failure("OpenAI API key is not configured (set OPENAI_API_KEY)")

        base_url = (options.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        url = f"{base_url}/v1/embeddings"
        timeout = options.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)

        payload = {"model": model, "input": list(texts), "encoding_format": "float"}
        if options.get("dimensions"):
            payload["dimensions"] = int(options["dimensions"])

        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"OpenAI embeddings request timed out after {timeout}s")
            return EmbeddingResult.failure(f"OpenAI embeddings request timed out: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to reach OpenAI embeddings API: {e}")
            return EmbeddingResult.failure(f"Failed to reach OpenAI embeddings API: {e}")

        if response.status_code != 200:
            logger.error(f"HTTP error from OpenAI embeddings: {response.status_code} - {response.text}")
            return EmbeddingResult.failure(
                f"OpenAI embeddings API error: {response.status_code}",
                status_code=response.status_code,
                error_body=response.text,
            )

        try:
            result = response.json()
            data = sorted(result["data"], key=lambda item: item["index"])
            vectors = [item["embedding"] for item in data]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed response from OpenAI embeddings: {e}")
            return EmbeddingResult.failure(
                f"Malformed response from OpenAI embeddings: {e}",
                status_code=response.status_code,
                error_body=response.text,
            )

        return EmbeddingResult.ok(vectors, model=result.get("model", model), raw_response=None)
