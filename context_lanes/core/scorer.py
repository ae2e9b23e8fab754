"""Lexical lane scoring.

Scores free text against lane titles and summaries using token-set overlap
plus a small recency bonus. Also decides when lexical results are ambiguous
enough to justify a semantic rerank, and merges semantic similarities back in.
"""

from __future__ import annotations

import re

from ..types import ContextLane, ContextLaneScore, SemanticRerankConfig
from .math_utils import clamp01

_NON_TOKEN_RE = re.compile(r"[^a-z0-9_./-]+")

MIN_TOKEN_LENGTH = 3
JACCARD_WEIGHT = 0.55
CONTAINMENT_WEIGHT = 0.45
RECENCY_MAX_BONUS = 0.08
RECENCY_WINDOW_MS = 60 * 60 * 1000


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation (keeping ``_./-``), drop short tokens."""
    return [
        token for token in _NON_TOKEN_RE.sub(" ", text.lower()).split()
        if len(token) >= MIN_TOKEN_LENGTH
    ]


def overlap_score(message_tokens: list[str], lane_tokens: list[str]) -> float:
    if not message_tokens or not lane_tokens:
        return 0.0

    message_set = set(message_tokens)
    lane_set = set(lane_tokens)
    intersection = len(message_set & lane_set)
    union = len(message_set) + len(lane_set) - intersection

    jaccard = intersection / union if union else 0.0
    containment = intersection / len(message_set)
    return clamp01(JACCARD_WEIGHT * jaccard + CONTAINMENT_WEIGHT * containment)


def recency_bonus(now: int, last_active_at: int) -> float:
    age_ms = max(0, now - last_active_at)
    return RECENCY_MAX_BONUS * clamp01(1 - age_ms / RECENCY_WINDOW_MS)


def score_contexts_for_message(
    message_text: str,
    contexts: list[ContextLane],
    now: int,
) -> list[ContextLaneScore]:
    """Score every lane against *message_text*; highest score first."""
    message_tokens = tokenize(message_text)
    scores = []
    for context in contexts:
        lane_tokens = tokenize(f"{context.title} {context.summary}")
        lexical = overlap_score(message_tokens, lane_tokens)
        scores.append(ContextLaneScore(
            context_id=context.id,
            score=clamp01(lexical + recency_bonus(now, context.last_active_at)),
            title=context.title,
        ))
    scores.sort(key=lambda s: s.score, reverse=True)
    return scores


def should_run_semantic_rerank(
    scores: list[ContextLaneScore],
    config: SemanticRerankConfig,
) -> bool:
    """True when semantic rerank is enabled and the lexical ranking is unclear."""
    if not config.enabled or len(scores) < 2:
        return False
    top = scores[0].score
    gap = top - scores[1].score
    return top <= config.ambiguity_top_score or gap <= config.ambiguity_gap


def merge_semantic_scores(
    scores: list[ContextLaneScore],
    semantic_by_context_id: dict[str, float],
    weight: float,
) -> list[ContextLaneScore]:
    """Blend semantic similarity into lexical scores and re-sort.

    Ties break on title then id so the ranking is reproducible.
    """
    merged = []
    for row in scores:
        semantic = semantic_by_context_id.get(row.context_id)
        score = row.score if semantic is None else clamp01(row.score + weight * semantic)
        merged.append(ContextLaneScore(context_id=row.context_id, score=score, title=row.title))
    merged.sort(key=lambda s: (-s.score, s.title, s.context_id))
    return merged
