"""Shared fixtures for context-lanes tests."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from context_lanes.config import load_config
from context_lanes.storage.memory import InMemoryLaneStore
from context_lanes.storage.sqlite import SQLiteLaneStore
from context_lanes.types import ChatMessage, ContextLanesConfig, EmbeddingProviderError

NOW = 1_760_000_000_000  # epoch ms


def make_message(message_id: str | None, text: str, role: str = "user") -> ChatMessage:
    return ChatMessage(role=role, parts=[{"type": "text", "text": text}], id=message_id)


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def lanes_config() -> ContextLanesConfig:
    return load_config(config_dict={}, environ={})


@pytest.fixture
def tmp_store_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def tmp_sqlite_db(tmp_store_dir):
    return tmp_store_dir / "lanes.sqlite"


@pytest.fixture
def sqlite_store(tmp_sqlite_db):
    s = SQLiteLaneStore(db_path=tmp_sqlite_db)
    yield s
    s.close()


@pytest.fixture
def memory_store():
    return InMemoryLaneStore()


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_sqlite_db):
    """Both backends, so every contract test runs twice."""
    if request.param == "sqlite":
        s = SQLiteLaneStore(db_path=tmp_sqlite_db)
    else:
        s = InMemoryLaneStore()
    yield s
    s.close()


class FakeEmbeddingProvider:
    """Returns canned vectors keyed by substring (no model, no network)."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, fail: bool = False):
        self.vectors = vectors or {}
        self.fail = fail
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingProviderError("boom", provider="fake")
        result = []
        for text in texts:
            vector = [0.0, 0.0, 1.0]
            for needle, candidate in self.vectors.items():
                if needle in text.lower():
                    vector = candidate
                    break
            result.append(vector)
        return result
