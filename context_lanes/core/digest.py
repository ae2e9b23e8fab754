"""Lane titles and rolling bullet digests."""

from __future__ import annotations

import re

_WS_RE = re.compile(r"\s+")
_FIRST_SENTENCE_RE = re.compile(r"^(.{1,140}?)([.!?]|$)")

TITLE_WORDS = 6
DIGEST_KEEP_LINES = 7
DEFAULT_TITLE = "General Context"


def clean_line(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def first_sentence(text: str) -> str:
    """Text up to the first ``.!?``, capped at 140 characters."""
    cleaned = clean_line(text)
    if not cleaned:
        return ""
    match = _FIRST_SENTENCE_RE.match(cleaned)
    if match is None:
        # Over 140 chars with no terminator in range
        return cleaned[:140].strip()
    return match.group(1).strip()


def _strip_bullet(line: str) -> str:
    if line == "-":
        return ""
    if line.startswith("- "):
        return line[2:].strip()
    return line


def title_from_message(text: str) -> str:
    words = clean_line(text).split(" ")
    words = [w for w in words if w][:TITLE_WORDS]
    if not words:
        return DEFAULT_TITLE
    return " ".join(w[0].upper() + w[1:] for w in words)


def summarize_context(existing_summary: str, latest_message: str, max_chars: int) -> str:
    """Roll the digest forward by one message.

    Keeps the last seven non-empty lines, appends the message's first
    sentence if it is new, and trims from the front past *max_chars*.
    """
    previous = [_strip_bullet(clean_line(line)) for line in existing_summary.split("\n")]
    lines = [line for line in previous if line][-DIGEST_KEEP_LINES:]

    latest = first_sentence(latest_message)
    if latest and latest not in lines:
        lines.append(latest)

    summary = "\n".join(f"- {line}" for line in lines)
    if len(summary) > max_chars:
        summary = summary[len(summary) - max_chars:]
    return summary or f"- {latest or 'No summary yet'}"
