"""SessionRegistry: explicit per-session locks and runtime stats."""

from __future__ import annotations

import logging
import threading

from .orchestrator import ContextLaneOrchestrator
from .runtime_stats import (
    create_session_runtime_stats,
    format_token_efficiency_stats,
    record_routing_run,
)
from .types import ContextRoutingInput, ContextRoutingResult, SessionRuntimeStats

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Holds one lock and one ``SessionRuntimeStats`` per session key.

    Routes for the same session are serialized; different sessions proceed
    in parallel. Nothing here is persisted.
    """

    def __init__(self, orchestrator: ContextLaneOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._stats: dict[str, SessionRuntimeStats] = {}

    def lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def stats_for(self, session_id: str, now: int) -> SessionRuntimeStats:
        """Stats for *session_id*, created on first use."""
        with self._guard:
            stats = self._stats.get(session_id)
            if stats is None:
                stats = create_session_runtime_stats(now)
                self._stats[session_id] = stats
            return stats

    def get_stats(self, session_id: str) -> SessionRuntimeStats | None:
        with self._guard:
            return self._stats.get(session_id)

    def session_ids(self) -> list[str]:
        with self._guard:
            return sorted(set(self._locks) | set(self._stats))

    def forget(self, session_id: str) -> None:
        with self._guard:
            self._locks.pop(session_id, None)
            self._stats.pop(session_id, None)

    def route(self, routing_input: ContextRoutingInput) -> ContextRoutingResult:
        """Route under the session lock and record the run in the session's stats."""
        session_id = routing_input.session_id
        with self.lock_for(session_id):
            result = self.orchestrator.route(routing_input)
            stats = self.stats_for(session_id, routing_input.now)
            sample = record_routing_run(stats, result, routing_input.history, routing_input.now)
        logger.debug(
            "Context lanes: session %s lane ratio %.3f (delta %.3f)",
            session_id, sample.lane_ratio, sample.lane_ratio_delta,
        )
        return result

    def format_stats(self, session_id: str, now: int, switch_event_limit: int = 50) -> str:
        stats = self.stats_for(session_id, now)
        return format_token_efficiency_stats(
            stats,
            active_context_count=self.orchestrator.active_context_count(session_id),
            switch_events=self.orchestrator.list_switch_events(session_id, switch_event_limit),
        )
