"""OllamaEmbeddingProvider: embeddings from a local Ollama server via httpx.

Tries the batched ``/api/embed`` endpoint first and falls back to one
``/api/embeddings`` call per text. There is no retry loop: a failure in the
fallback path raises EmbeddingProviderError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..types import EmbeddingProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "ollama"
DEFAULT_MODEL = "embeddinggemma"


def _is_vector(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(x, (int, float)) and not isinstance(x, bool) for x in value
    )


def parse_embeddings(payload: Any) -> list[list[float]]:
    """Extract vectors from either Ollama response shape."""
    if not isinstance(payload, dict):
        return []
    embeddings = payload.get("embeddings")
    if isinstance(embeddings, list):
        if not embeddings:
            return []
        if _is_vector(embeddings):
            return [embeddings]
        return [e for e in embeddings if _is_vector(e)]
    single = payload.get("embedding")
    if _is_vector(single):
        return [single]
    return []


class OllamaEmbeddingProvider:
    """Embedding provider for Ollama's embed API."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        model: str = DEFAULT_MODEL,
        timeout_ms: int = 5000,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout_ms / 1000.0
        self._transport = transport  # injected in tests

    def _post(self, client: httpx.Client, path: str, payload: dict) -> Any:
        try:
            response = client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            raise EmbeddingProviderError(f"HTTP error: {e}", provider=PROVIDER_NAME) from e

        if response.status_code != 200:
            raise EmbeddingProviderError(
                f"HTTP {response.status_code}: {response.text}",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise EmbeddingProviderError(f"Invalid JSON: {e}", provider=PROVIDER_NAME) from e

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            try:
                vectors = parse_embeddings(
                    self._post(client, "/api/embed", {"model": self.model, "input": texts})
                )
                if len(vectors) == len(texts):
                    return vectors
                logger.debug(
                    "Ollama /api/embed returned %d vectors for %d texts", len(vectors), len(texts),
                )
            except EmbeddingProviderError as e:
                logger.debug("Ollama /api/embed failed: %s", e)

            vectors = []
            for text in texts:
                parsed = parse_embeddings(
                    self._post(client, "/api/embeddings", {"model": self.model, "prompt": text})
                )
                if not parsed:
                    raise EmbeddingProviderError(
                        "Ollama response did not include a valid embedding vector",
                        provider=PROVIDER_NAME,
                    )
                vectors.append(parsed[0])
            return vectors
