"""Semantic rerank: embedding similarity between the turn and top lane candidates.

Only consulted when lexical scores are ambiguous. Any provider failure
abandons the rerank and the lexical ranking stands.
"""

from __future__ import annotations

import logging

from ..types import (
    ContextLane,
    ContextLaneScore,
    ContextLanesConfig,
    EmbeddingProvider,
    EmbeddingProviderError,
)
from .digest import clean_line
from .math_utils import clamp01, cosine_similarity

logger = logging.getLogger(__name__)

ELLIPSIS = "\n...\n"


def clip_for_embedding(text: str, max_chars: int) -> str:
    """Keep head and tail around an ellipsis marker when over *max_chars*."""
    if len(text) <= max_chars:
        return text
    half = (max_chars - len(ELLIPSIS)) // 2
    if half <= 0:
        return text[:max_chars]
    return f"{text[:half]}{ELLIPSIS}{text[len(text) - half:]}"


def lane_semantic_text(context: ContextLane, max_chars: int) -> str:
    return clip_for_embedding(clean_line(f"{context.title}\n{context.summary}"), max_chars)


def compute_semantic_similarities(
    latest_user_text: str,
    scores: list[ContextLaneScore],
    context_by_id: dict[str, ContextLane],
    config: ContextLanesConfig,
    provider: EmbeddingProvider | None,
) -> dict[str, float]:
    """Return ``{context_id: similarity in [0, 1]}`` for the top-K candidates.

    Empty when semantic rerank is disabled, no provider is available, fewer
    than two candidates carry text, or the provider fails.
    """
    result: dict[str, float] = {}
    if provider is None or not config.semantic.enabled:
        return result

    top_candidates = scores[:config.semantic.top_k]
    if len(top_candidates) < 2:
        return result

    max_chars = config.embedding.max_chars
    query_text = clip_for_embedding(clean_line(latest_user_text), max_chars)
    if not query_text:
        return result

    lane_ids: list[str] = []
    lane_texts: list[str] = []
    for candidate in top_candidates:
        context = context_by_id.get(candidate.context_id)
        if context is None:
            continue
        text = lane_semantic_text(context, max_chars)
        if not text:
            continue
        lane_ids.append(context.id)
        lane_texts.append(text)

    if len(lane_texts) < 2:
        return result

    try:
        vectors = provider.embed([query_text, *lane_texts])
    except EmbeddingProviderError as e:
        logger.debug("Semantic lane rerank failed, falling back to lexical: %s", e)
        return result

    if len(vectors) != len(lane_texts) + 1:
        logger.debug(
            "Semantic lane rerank got %d vectors for %d texts, falling back to lexical",
            len(vectors), len(lane_texts) + 1,
        )
        return result

    query_vector = vectors[0]
    for context_id, lane_vector in zip(lane_ids, vectors[1:]):
        similarity = cosine_similarity(query_vector, lane_vector)
        result[context_id] = clamp01((similarity + 1) / 2)

    logger.debug("Semantic lane rerank scored %d candidates", len(result))
    return result
