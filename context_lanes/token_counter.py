"""Token counting utilities."""

from __future__ import annotations

import json
import math
from typing import Any, Iterable

from .types import ChatMessage

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough estimate: ~4 chars per token, never below 1."""
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def _part_text(part: dict[str, Any]) -> str:
    text = part.get("text")
    if isinstance(text, str):
        return text

    for key in ("input", "output"):
        value = part.get(key)
        if isinstance(value, str):
            return value
        if value and isinstance(value, (dict, list)):
            return json.dumps(value, default=str)

    return json.dumps(part, default=str)


def estimate_part_tokens(part: dict[str, Any]) -> int:
    return estimate_tokens(_part_text(part))


def estimate_message_tokens(message: ChatMessage) -> int:
    parts = message.parts if isinstance(message.parts, list) else []
    return sum(estimate_part_tokens(p) for p in parts if isinstance(p, dict))


def estimate_conversation_tokens(messages: Iterable[ChatMessage]) -> int:
    return sum(estimate_message_tokens(m) for m in messages)
