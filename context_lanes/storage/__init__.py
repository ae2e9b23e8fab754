"""Lane store backends and the factory that picks one."""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

from ..core.store import LaneStore
from .memory import InMemoryLaneStore
from .sqlite import SQLiteLaneStore

logger = logging.getLogger(__name__)

DISABLE_SQLITE_ENV = "CONTEXT_LANES_DISABLE_SQLITE"


def resolve_db_path(base_directory: str | Path, db_path: str | Path) -> Path:
    path = Path(db_path)
    if path.is_absolute():
        return path
    return Path(base_directory) / path


def open_lane_store(
    base_directory: str | Path,
    db_path: str | Path,
    backend: str = "sqlite",
) -> LaneStore:
    """Open the durable store, or fall back to memory.

    Falls back when *backend* is ``"memory"``, when ``CONTEXT_LANES_DISABLE_SQLITE=1``,
    or when the database cannot be opened. The fallback is logged, never raised.
    """
    if backend == "memory":
        logger.info("Context lanes: using in-memory store (configured)")
        return InMemoryLaneStore()

    if os.environ.get(DISABLE_SQLITE_ENV) == "1":
        logger.warning("Context lanes: sqlite disabled via %s, using in-memory store", DISABLE_SQLITE_ENV)
        return InMemoryLaneStore()

    resolved = resolve_db_path(base_directory, db_path)
    try:
        store = SQLiteLaneStore(resolved)
    except (sqlite3.Error, OSError) as e:
        logger.warning(
            "Context lanes: sqlite unavailable at %s (%s), using in-memory store", resolved, e,
        )
        return InMemoryLaneStore()

    logger.debug("Context lanes: using sqlite store at %s", resolved)
    return store


__all__ = [
    "InMemoryLaneStore",
    "LaneStore",
    "SQLiteLaneStore",
    "open_lane_store",
    "resolve_db_path",
]
