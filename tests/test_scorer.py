"""Tests for lexical lane scoring and the semantic rerank gate."""

import pytest

from context_lanes.core.scorer import (
    merge_semantic_scores,
    overlap_score,
    recency_bonus,
    score_contexts_for_message,
    should_run_semantic_rerank,
    tokenize,
)
from context_lanes.types import ContextLane, ContextLaneScore, SemanticRerankConfig

HOUR_MS = 60 * 60 * 1000


def _lane(lane_id: str, title: str, summary: str = "", last_active_at: int = 0) -> ContextLane:
    return ContextLane(
        id=lane_id,
        session_id="s1",
        title=title,
        summary=summary,
        last_active_at=last_active_at,
        created_at=last_active_at,
        updated_at=last_active_at,
    )


class TestTokenize:
    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("Fix the DB-migration, now!") == ["fix", "the", "db-migration", "now"]

    def test_keeps_path_characters(self):
        assert tokenize("see src/app/main.py") == ["see", "src/app/main.py"]

    def test_drops_short_tokens(self):
        assert tokenize("a to be or API") == ["api"]

    def test_empty(self):
        assert tokenize("   ") == []


class TestOverlapScore:
    def test_identical_sets_score_one(self):
        assert overlap_score(["alpha", "beta"], ["beta", "alpha"]) == pytest.approx(1.0)

    def test_disjoint_sets_score_zero(self):
        assert overlap_score(["alpha"], ["gamma"]) == 0.0

    def test_empty_inputs_score_zero(self):
        assert overlap_score([], ["alpha"]) == 0.0
        assert overlap_score(["alpha"], []) == 0.0

    def test_weighted_jaccard_and_containment(self):
        # intersection 1, union 3, message size 2
        score = overlap_score(["alpha", "beta"], ["alpha", "gamma"])
        assert score == pytest.approx(0.55 * (1 / 3) + 0.45 * (1 / 2))


class TestRecencyBonus:
    def test_fresh_lane_gets_full_bonus(self):
        assert recency_bonus(1000, 1000) == pytest.approx(0.08)

    def test_half_hour_gets_half_bonus(self):
        assert recency_bonus(HOUR_MS // 2, 0) == pytest.approx(0.04)

    def test_old_lane_gets_nothing(self):
        assert recency_bonus(2 * HOUR_MS, 0) == 0.0

    def test_future_timestamp_clamped(self):
        assert recency_bonus(0, 5000) == pytest.approx(0.08)


class TestScoreContexts:
    def test_sorted_highest_first(self):
        now = 10 * HOUR_MS
        lanes = [
            _lane("a", "Grocery List", "- buy apples"),
            _lane("b", "Database Migration", "- migrate users table"),
        ]
        scores = score_contexts_for_message("run the database migration", lanes, now)
        assert [s.context_id for s in scores] == ["b", "a"]
        assert scores[0].title == "Database Migration"
        assert scores[1].score == 0.0

    def test_scores_bounded(self):
        now = 10 * HOUR_MS
        lanes = [_lane("a", "alpha beta", "- alpha beta", last_active_at=now)]
        scores = score_contexts_for_message("alpha beta", lanes, now)
        assert 0.0 <= scores[0].score <= 1.0
        assert scores[0].score == pytest.approx(1.0)

    def test_no_lanes(self):
        assert score_contexts_for_message("anything", [], 0) == []


class TestSemanticGate:
    def _scores(self, *values: float) -> list[ContextLaneScore]:
        return [ContextLaneScore(context_id=f"c{i}", score=v, title=f"T{i}") for i, v in enumerate(values)]

    def test_disabled_never_runs(self):
        config = SemanticRerankConfig(enabled=False)
        assert should_run_semantic_rerank(self._scores(0.5, 0.49), config) is False

    def test_needs_two_candidates(self):
        config = SemanticRerankConfig(enabled=True)
        assert should_run_semantic_rerank(self._scores(0.5), config) is False

    def test_low_top_score_is_ambiguous(self):
        config = SemanticRerankConfig(enabled=True, ambiguity_top_score=0.62, ambiguity_gap=0.08)
        assert should_run_semantic_rerank(self._scores(0.5, 0.1), config) is True

    def test_small_gap_is_ambiguous(self):
        config = SemanticRerankConfig(enabled=True, ambiguity_top_score=0.62, ambiguity_gap=0.08)
        assert should_run_semantic_rerank(self._scores(0.9, 0.85), config) is True

    def test_clear_winner_skips_rerank(self):
        config = SemanticRerankConfig(enabled=True, ambiguity_top_score=0.62, ambiguity_gap=0.08)
        assert should_run_semantic_rerank(self._scores(0.9, 0.5), config) is False


class TestMergeSemanticScores:
    def test_adds_weighted_similarity_and_resorts(self):
        scores = [
            ContextLaneScore(context_id="a", score=0.5, title="A"),
            ContextLaneScore(context_id="b", score=0.45, title="B"),
        ]
        merged = merge_semantic_scores(scores, {"a": 0.0, "b": 1.0}, weight=0.2)
        assert [s.context_id for s in merged] == ["b", "a"]
        assert merged[0].score == pytest.approx(0.65)
        assert merged[1].score == pytest.approx(0.5)

    def test_missing_similarity_keeps_lexical(self):
        scores = [ContextLaneScore(context_id="a", score=0.4, title="A")]
        merged = merge_semantic_scores(scores, {}, weight=0.5)
        assert merged[0].score == pytest.approx(0.4)

    def test_clamped_to_one(self):
        scores = [ContextLaneScore(context_id="a", score=0.95, title="A")]
        merged = merge_semantic_scores(scores, {"a": 1.0}, weight=1.0)
        assert merged[0].score == 1.0

    def test_ties_break_on_title_then_id(self):
        scores = [
            ContextLaneScore(context_id="z", score=0.5, title="Beta"),
            ContextLaneScore(context_id="y", score=0.5, title="Alpha"),
            ContextLaneScore(context_id="x", score=0.5, title="Alpha"),
        ]
        merged = merge_semantic_scores(scores, {}, weight=0.2)
        assert [s.context_id for s in merged] == ["x", "y", "z"]
