"""Lane-scoped history assembly.

Pure functions, no store access: the orchestrator looks up memberships and
hands them in.
"""

from __future__ import annotations

import math
from typing import Hashable

from ..token_counter import estimate_conversation_tokens, estimate_message_tokens
from ..types import ChatMessage
from .math_utils import clamp01


def message_key(message: ChatMessage) -> Hashable:
    """Dedup key: the message id, or object identity for anonymous messages."""
    mid = message.message_id
    if mid is not None:
        return ("id", mid)
    return ("obj", id(message))


def dedupe_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    seen: set[Hashable] = set()
    deduped: list[ChatMessage] = []
    for message in messages:
        key = message_key(message)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(message)
    return deduped


def history_message_ids(history: list[ChatMessage]) -> list[str]:
    return [m.message_id for m in history if m.message_id is not None]


def minimum_lane_messages(keep_recent: int) -> int:
    return max(keep_recent + 2, 4)


def select_lane_history(
    history: list[ChatMessage],
    membership_map: dict[str, set[str]],
    selected_context_ids: set[str],
    keep_recent: int,
) -> list[ChatMessage]:
    """Keep the last *keep_recent* messages plus any message that belongs to a selected lane."""
    recent_start = len(history) - max(0, keep_recent)
    lane_history = []
    for index, message in enumerate(history):
        if index >= recent_start:
            lane_history.append(message)
            continue
        mid = message.message_id
        if mid is not None and membership_map.get(mid, set()) & selected_context_ids:
            lane_history.append(message)
    return dedupe_messages(lane_history)


def apply_retention_floor(
    lane_history: list[ChatMessage],
    full_history: list[ChatMessage],
    keep_recent: int,
    min_token_ratio: float,
) -> list[ChatMessage]:
    """Backfill the lane view until it holds enough messages and tokens.

    The floor is ``max(keep_recent + 2, 4)`` messages and, when
    *min_token_ratio* > 0, ``ceil(ratio * full tokens)`` estimated tokens.
    Missing messages are added oldest first; the result keeps full-history
    order. If backfilling runs out of messages the whole deduplicated history
    is returned.
    """
    full = dedupe_messages(full_history)
    if not full:
        return lane_history

    min_messages = minimum_lane_messages(keep_recent)
    ratio = clamp01(min_token_ratio)
    full_tokens = estimate_conversation_tokens(full)
    target_tokens = math.ceil(full_tokens * ratio) if ratio > 0 and full_tokens > 0 else 0

    count = len(lane_history)
    tokens = estimate_conversation_tokens(lane_history)
    if count >= min_messages and tokens >= target_tokens:
        return lane_history

    included = {message_key(m) for m in lane_history}
    for message in full:
        if count >= min_messages and tokens >= target_tokens:
            break
        key = message_key(message)
        if key in included:
            continue
        included.add(key)
        count += 1
        tokens += estimate_message_tokens(message)

    if count < min_messages or tokens < target_tokens:
        return full
    return [m for m in full if message_key(m) in included]
