"""Lane selection with hysteresis."""

from __future__ import annotations

from ..types import ContextLaneScore, LaneSelectionCandidate, RoutingConfig

SECONDARY_WINDOW = 0.12  # secondaries must score within this of the primary
MAX_SECONDARIES = 2


def select_context_lanes(
    scores: list[ContextLaneScore],
    current_primary_context_id: str | None,
    config: RoutingConfig,
) -> LaneSelectionCandidate:
    """Pick a primary lane and up to two secondaries from sorted *scores*.

    Returns no primary when nothing clears ``primary_threshold``; the caller
    is expected to create a lane in that case. The current primary survives
    a challenger unless the challenger leads by more than ``switch_margin``.
    """
    if not scores or scores[0].score < config.primary_threshold:
        return LaneSelectionCandidate(primary_context_id=None, scores=scores)

    top = scores[0]
    score_index = {s.context_id: s.score for s in scores}
    primary_id = top.context_id

    if current_primary_context_id:
        current_score = score_index.get(current_primary_context_id, 0.0)
        if (current_score >= config.secondary_threshold
                and current_score >= top.score - config.switch_margin):
            primary_id = current_primary_context_id

    primary_score = score_index.get(primary_id, top.score)
    secondaries = [
        s.context_id for s in scores
        if s.context_id != primary_id
        and s.score >= config.secondary_threshold
        and s.score >= primary_score - SECONDARY_WINDOW
    ][:MAX_SECONDARIES]

    return LaneSelectionCandidate(
        primary_context_id=primary_id,
        secondary_context_ids=secondaries,
        scores=scores,
    )
