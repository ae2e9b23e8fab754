from __future__ import annotations

from ..types import EmbeddingConfig, EmbeddingProvider, EmbeddingProviderError
from . import ollama, sentence_transformer
from .ollama import OllamaEmbeddingProvider
from .sentence_transformer import SentenceTransformerEmbeddingProvider


def build_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider | None:
    """Build the configured embedding provider, or None for unknown names.

    ``embedding.model`` defaults to an Ollama model name; a sentence-transformers
    provider left on that default loads its own default model instead.
    """
    if config.provider == "ollama":
        return OllamaEmbeddingProvider(
            base_url=config.base_url,
            model=config.model or ollama.DEFAULT_MODEL,
            timeout_ms=config.timeout_ms,
        )
    if config.provider == "sentence-transformers":
        model = config.model
        if not model or model == ollama.DEFAULT_MODEL:
            model = sentence_transformer.DEFAULT_MODEL
        return SentenceTransformerEmbeddingProvider(model_name=model)
    return None


__all__ = [
    "EmbeddingProviderError",
    "OllamaEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "build_embedding_provider",
]
