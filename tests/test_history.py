"""Tests for lane-scoped history selection and the retention floor."""

from conftest import make_message

from context_lanes.core.history import (
    apply_retention_floor,
    dedupe_messages,
    history_message_ids,
    minimum_lane_messages,
    select_lane_history,
)
from context_lanes.types import ChatMessage


def _history(count: int) -> list[ChatMessage]:
    return [make_message(f"m{i}", f"message number {i}") for i in range(count)]


class TestDedupe:
    def test_by_id_keeps_first(self):
        first = make_message("m1", "first")
        again = make_message("m1", "second copy")
        assert dedupe_messages([first, again]) == [first]

    def test_anonymous_by_identity(self):
        a = make_message(None, "same text")
        b = make_message(None, "same text")
        assert dedupe_messages([a, b, a]) == [a, b]

    def test_empty_id_is_anonymous(self):
        a = make_message("", "x")
        assert a.message_id is None
        assert history_message_ids([a, make_message("m2", "y")]) == ["m2"]


class TestSelectLaneHistory:
    def test_recent_window_plus_memberships(self):
        history = _history(12)
        membership = {"m1": {"lane-a"}, "m2": {"lane-b"}}
        result = select_lane_history(history, membership, {"lane-a"}, keep_recent=4)
        assert [m.id for m in result] == ["m1", "m8", "m9", "m10", "m11"]

    def test_secondary_lane_membership_counts(self):
        history = _history(12)
        membership = {"m1": {"lane-a"}, "m2": {"lane-b"}}
        result = select_lane_history(history, membership, {"lane-a", "lane-b"}, keep_recent=2)
        assert [m.id for m in result] == ["m1", "m2", "m10", "m11"]

    def test_anonymous_recent_messages_included(self):
        history = _history(5)
        anonymous = make_message(None, "no id")
        history.append(anonymous)
        result = select_lane_history(history, {}, {"lane-a"}, keep_recent=2)
        assert result == [history[4], anonymous]

    def test_duplicates_collapsed(self):
        history = _history(3)
        history.append(make_message("m2", "duplicate id"))
        result = select_lane_history(history, {}, set(), keep_recent=4)
        assert [m.id for m in result] == ["m0", "m1", "m2"]
        assert result[2] is history[2]


class TestRetentionFloor:
    def test_minimum_messages(self):
        assert minimum_lane_messages(8) == 10
        assert minimum_lane_messages(1) == 4

    def test_already_satisfied_unchanged(self):
        history = _history(10)
        lane = history[4:]
        assert apply_retention_floor(lane, history, keep_recent=2, min_token_ratio=0.0) is lane

    def test_backfills_oldest_first_for_count(self):
        history = _history(10)
        lane = history[8:]
        result = apply_retention_floor(lane, history, keep_recent=2, min_token_ratio=0.0)
        assert [m.id for m in result] == ["m0", "m1", "m8", "m9"]

    def test_backfills_until_token_target(self):
        history = [
            make_message("big0", "x" * 400),  # 100 tokens
            make_message("big1", "y" * 400),
        ] + [make_message(f"t{i}", "tiny") for i in range(4)]  # 1 token each
        lane = history[2:]
        result = apply_retention_floor(lane, history, keep_recent=2, min_token_ratio=0.5)
        # target = ceil(0.5 * 204) = 102; one big message is enough
        assert [m.id for m in result] == ["big0", "t0", "t1", "t2", "t3"]

    def test_falls_back_to_full_history(self):
        history = _history(3)
        result = apply_retention_floor([], history, keep_recent=2, min_token_ratio=0.0)
        assert result == history

    def test_full_history_is_deduplicated(self):
        history = _history(3)
        history.append(history[0])
        result = apply_retention_floor([], history, keep_recent=2, min_token_ratio=0.0)
        assert [m.id for m in result] == ["m0", "m1", "m2"]

    def test_empty_history(self):
        assert apply_retention_floor([], [], keep_recent=8, min_token_ratio=0.75) == []
