"""Tests for per-session runtime stats and lane telemetry."""

import pytest
from conftest import make_message

from context_lanes.runtime_stats import (
    MAX_LANE_TELEMETRY_SAMPLES,
    count_switch_reasons,
    create_session_runtime_stats,
    format_token_efficiency_stats,
    record_lane_telemetry,
    record_routing_run,
)
from context_lanes.types import ContextLaneSelection, ContextRoutingResult, ContextSwitchEvent


def _sample(stats, at, baseline, lane, primary="lane-a", created=False):
    return record_lane_telemetry(
        stats,
        at=at,
        baseline_tokens=baseline,
        lane_scoped_tokens=lane,
        history_messages=10,
        lane_history_messages=5,
        primary_context_id=primary,
        created_new_context=created,
    )


def _event(reason: str) -> ContextSwitchEvent:
    return ContextSwitchEvent(
        session_id="s1", message_id="m", from_context_id=None, to_context_id="a",
        confidence=1.0, reason=reason, created_at=0,
    )


class TestRecordLaneTelemetry:
    def test_first_sample_sets_range(self):
        stats = create_session_runtime_stats(100)
        sample = _sample(stats, 100, baseline=200, lane=100)
        assert sample.lane_ratio == pytest.approx(0.5)
        assert sample.lane_ratio_delta == 0.0
        assert stats.min_lane_token_ratio == pytest.approx(0.5)
        assert stats.max_lane_token_ratio == pytest.approx(0.5)
        assert stats.abrupt_lane_drop_count == 0

    def test_empty_baseline_is_full_ratio(self):
        stats = create_session_runtime_stats(0)
        assert _sample(stats, 0, baseline=0, lane=0).lane_ratio == 1.0

    def test_ratio_clamped(self):
        stats = create_session_runtime_stats(0)
        assert _sample(stats, 0, baseline=10, lane=30).lane_ratio == 1.0

    def test_abrupt_drop_counted(self):
        stats = create_session_runtime_stats(0)
        _sample(stats, 1, baseline=100, lane=90)
        second = _sample(stats, 2, baseline=100, lane=60)
        assert second.lane_ratio_delta == pytest.approx(-0.3)
        assert stats.abrupt_lane_drop_count == 1
        assert stats.min_lane_token_ratio == pytest.approx(0.6)
        assert stats.max_lane_token_ratio == pytest.approx(0.9)

    def test_small_drop_not_counted(self):
        stats = create_session_runtime_stats(0)
        _sample(stats, 1, baseline=100, lane=90)
        _sample(stats, 2, baseline=100, lane=80)
        assert stats.abrupt_lane_drop_count == 0
        assert stats.last_lane_token_ratio_delta == pytest.approx(-0.1)

    def test_ring_bounded(self):
        stats = create_session_runtime_stats(0)
        for i in range(MAX_LANE_TELEMETRY_SAMPLES + 5):
            _sample(stats, i, baseline=100, lane=50)
        assert len(stats.lane_telemetry) == MAX_LANE_TELEMETRY_SAMPLES
        assert stats.lane_telemetry[0].at == 5


class TestRecordRoutingRun:
    def test_accumulates_tokens(self):
        stats = create_session_runtime_stats(0)
        history = [make_message("m1", "x" * 400), make_message("m2", "abcd")]
        result = ContextRoutingResult(
            selection=ContextLaneSelection(primary_context_id="a", created_new_context=True),
            lane_history=[history[1]],
            active_context_count=1,
        )
        record_routing_run(stats, result, history, now=50)
        record_routing_run(stats, result, history, now=60)

        assert stats.lane_routing_runs == 2
        assert stats.lane_new_context_count == 2
        assert stats.messages_seen == 2
        assert stats.last_seen_at == 60
        assert stats.total_baseline_tokens == 202
        assert stats.total_lane_scoped_tokens == 2
        assert stats.total_lane_saved_tokens == 200
        assert stats.last_lane_saved_tokens == 100
        assert stats.lane_telemetry[-1].primary_context_id == "a"


class TestFormatTokenEfficiencyStats:
    def test_report_lines(self):
        stats = create_session_runtime_stats(0)
        _sample(stats, 1, baseline=100, lane=90)
        _sample(stats, 2, baseline=100, lane=60, primary=None, created=True)
        stats.lane_routing_samples = 2
        stats.total_baseline_tokens = 200
        stats.total_lane_scoped_tokens = 150
        stats.total_lane_saved_tokens = 50

        events = [_event("score-switch"), _event("score-switch"), _event("manual-override"), _event("odd")]
        report = format_token_efficiency_stats(stats, active_context_count=3, switch_events=events)

        assert "Active contexts: 3" in report
        assert "Estimated routing savings rate: 25.0%" in report
        assert "Avg tokens saved per routed run: 25.00" in report
        assert "Lane token ratio range: 60.0%..90.0%" in report
        assert "Abrupt lane drops (>=20.0pp): 1" in report
        assert "Switch events sampled: 4" in report
        assert "score-switch=2, manual-override=1, created-new-context=0" in report
        assert "primary=none new=yes" in report

    def test_empty_stats(self):
        report = format_token_efficiency_stats(create_session_runtime_stats(0), 0, [])
        assert "Estimated routing savings rate: 0.0%" in report
        assert "Lane token ratio range: 0.0%..0.0%" in report
        assert "Recent lane telemetry" not in report

    def test_count_switch_reasons_ignores_unknown(self):
        counts = count_switch_reasons([_event("created-new-context"), _event("bogus")])
        assert counts == {"created-new-context": 1, "manual-override": 0, "score-switch": 0}
