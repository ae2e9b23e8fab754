"""SentenceTransformerEmbeddingProvider: local embeddings via sentence-transformers."""

from __future__ import annotations

import logging
from typing import Callable

from ..types import EmbeddingProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "sentence-transformers"
DEFAULT_MODEL = "all-MiniLM-L6-v2"


class SentenceTransformerEmbeddingProvider:
    """Embed with a local model, loaded on first use.

    A missing package or a model that fails to load surfaces as
    EmbeddingProviderError, so the rerank degrades instead of crashing.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        embed_fn: Callable[[list[str]], list[list[float]]] | None = None,
    ) -> None:
        self.model_name = model_name
        self._embed = embed_fn

    def _load_model(self) -> Callable[[list[str]], list[list[float]]]:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingProviderError(
                "sentence-transformers not installed. "
                "Install with: pip install context-lanes[embeddings]",
                provider=PROVIDER_NAME,
            ) from e

        try:
            model = SentenceTransformer(self.model_name)
        except Exception as e:
            raise EmbeddingProviderError(
                f"Failed to load model {self.model_name}: {e}", provider=PROVIDER_NAME,
            ) from e

        def embed(texts: list[str]) -> list[list[float]]:
            return model.encode(
                texts, convert_to_numpy=True, show_progress_bar=False,
            ).tolist()

        logger.info("Loaded sentence-transformers model %s", self.model_name)
        return embed

    def embed(self, texts: list[str]) -> list[list[float]]:
        if self._embed is None:
            self._embed = self._load_model()
        try:
            return self._embed(texts)
        except Exception as e:
            raise EmbeddingProviderError(f"Embedding failed: {e}", provider=PROVIDER_NAME) from e
