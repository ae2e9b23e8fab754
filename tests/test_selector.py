"""Tests for primary/secondary lane selection."""

from context_lanes.core.selector import select_context_lanes
from context_lanes.types import ContextLaneScore, RoutingConfig


def _scores(**values: float) -> list[ContextLaneScore]:
    rows = [ContextLaneScore(context_id=k, score=v, title=k.upper()) for k, v in values.items()]
    rows.sort(key=lambda s: s.score, reverse=True)
    return rows


class TestSelectContextLanes:
    def test_no_scores_means_no_primary(self):
        candidate = select_context_lanes([], None, RoutingConfig())
        assert candidate.primary_context_id is None
        assert candidate.secondary_context_ids == []

    def test_top_below_primary_threshold(self):
        candidate = select_context_lanes(_scores(a=0.37, b=0.2), None, RoutingConfig())
        assert candidate.primary_context_id is None

    def test_picks_top_when_no_current(self):
        candidate = select_context_lanes(_scores(a=0.7, b=0.2), None, RoutingConfig())
        assert candidate.primary_context_id == "a"
        assert candidate.secondary_context_ids == []

    def test_current_primary_survives_close_challenger(self):
        candidate = select_context_lanes(_scores(a=0.62, b=0.59), "b", RoutingConfig())
        assert candidate.primary_context_id == "b"
        assert candidate.secondary_context_ids == ["a"]

    def test_challenger_beyond_margin_wins(self):
        candidate = select_context_lanes(_scores(a=0.62, b=0.40), "b", RoutingConfig())
        assert candidate.primary_context_id == "a"
        # 0.40 is more than 0.12 below the primary
        assert candidate.secondary_context_ids == []

    def test_current_below_secondary_threshold_loses(self):
        config = RoutingConfig(primary_threshold=0.3, secondary_threshold=0.3, switch_margin=0.5)
        candidate = select_context_lanes(_scores(a=0.5, b=0.25), "b", config)
        assert candidate.primary_context_id == "a"

    def test_unknown_current_primary_is_ignored(self):
        candidate = select_context_lanes(_scores(a=0.6), "gone", RoutingConfig())
        assert candidate.primary_context_id == "a"

    def test_at_most_two_secondaries(self):
        candidate = select_context_lanes(
            _scores(a=0.70, b=0.68, c=0.66, d=0.64), None, RoutingConfig(),
        )
        assert candidate.primary_context_id == "a"
        assert candidate.secondary_context_ids == ["b", "c"]

    def test_secondaries_need_secondary_threshold(self):
        config = RoutingConfig(primary_threshold=0.38, secondary_threshold=0.30)
        candidate = select_context_lanes(_scores(a=0.40, b=0.29), None, config)
        assert candidate.secondary_context_ids == []

    def test_scores_passed_through(self):
        scores = _scores(a=0.5, b=0.45)
        candidate = select_context_lanes(scores, None, RoutingConfig())
        assert candidate.scores == scores

    def test_deterministic(self):
        scores = _scores(a=0.6, b=0.58, c=0.3)
        first = select_context_lanes(scores, "b", RoutingConfig())
        second = select_context_lanes(scores, "b", RoutingConfig())
        assert first == second

    def test_hysteresis_example_keeps_current(self):
        scores = [
            ContextLaneScore(context_id="A", score=0.62, title="A"),
            ContextLaneScore(context_id="current", score=0.59, title="Current"),
            ContextLaneScore(context_id="other", score=0.21, title="Other"),
        ]
        candidate = select_context_lanes(scores, "current", RoutingConfig(switch_margin=0.06))
        assert candidate.primary_context_id == "current"
        assert candidate.secondary_context_ids == ["A"]

    def test_zero_margin_switches(self):
        scores = [
            ContextLaneScore(context_id="A", score=0.62, title="A"),
            ContextLaneScore(context_id="current", score=0.59, title="Current"),
            ContextLaneScore(context_id="other", score=0.21, title="Other"),
        ]
        candidate = select_context_lanes(scores, "current", RoutingConfig(switch_margin=0.0))
        assert candidate.primary_context_id == "A"
        # still within 0.12 of the new primary, so it qualifies on its own
        assert candidate.secondary_context_ids == ["current"]
