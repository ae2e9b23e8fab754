"""InMemoryLaneStore: process-local fallback with the same contract as SQLite.

Used when SQLite is unavailable or disabled. Nothing survives a restart.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace

from ..core.store import LaneStore
from ..types import (
    ContextLane,
    ContextSwitchEvent,
    LaneStatus,
    ManualOverride,
    MessageContextMembership,
)


@dataclass
class _MembershipRow:
    session_id: str
    message_id: str
    context_id: str
    relevance: float
    is_primary: bool
    created_at: int


class InMemoryLaneStore(LaneStore):
    """Lists and dicts guarded by one lock. Returns copies, never live rows."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: list[ContextLane] = []
        # (session, message, context) -> row; dict order tracks write order
        self._memberships: dict[tuple[str, str, str], _MembershipRow] = {}
        self._switches: list[ContextSwitchEvent] = []
        self._overrides: dict[str, ManualOverride] = {}

    def _find(self, session_id: str, context_id: str) -> ContextLane | None:
        for lane in self._contexts:
            if lane.session_id == session_id and lane.id == context_id:
                return lane
        return None

    def _sorted_lanes(self, session_id: str, active_only: bool) -> list[ContextLane]:
        indexed = [
            (i, lane) for i, lane in enumerate(self._contexts)
            if lane.session_id == session_id
            and (not active_only or lane.status == LaneStatus.ACTIVE)
        ]
        indexed.sort(key=lambda pair: (pair[1].last_active_at, pair[0]), reverse=True)
        return [lane for _, lane in indexed]

    # -- lanes --

    def count_active_contexts(self, session_id: str) -> int:
        with self._lock:
            return sum(
                1 for lane in self._contexts
                if lane.session_id == session_id and lane.status == LaneStatus.ACTIVE
            )

    def list_active_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        with self._lock:
            return [replace(lane) for lane in self._sorted_lanes(session_id, True)[:limit]]

    def list_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        with self._lock:
            return [replace(lane) for lane in self._sorted_lanes(session_id, False)[:limit]]

    def get_context(self, session_id: str, context_id: str) -> ContextLane | None:
        with self._lock:
            lane = self._find(session_id, context_id)
            return replace(lane) if lane else None

    def create_context(
        self,
        session_id: str,
        title: str,
        summary: str,
        now: int,
        preferred_id: str | None = None,
        owner_session_id: str | None = None,
    ) -> ContextLane:
        with self._lock:
            context_id = preferred_id
            if not context_id or self._find(session_id, context_id) is not None:
                context_id = str(uuid.uuid4())
            lane = ContextLane(
                id=context_id,
                session_id=session_id,
                owner_session_id=owner_session_id,
                title=title,
                summary=summary,
                status=LaneStatus.ACTIVE,
                msg_count=0,
                last_active_at=now,
                created_at=now,
                updated_at=now,
            )
            self._contexts.append(lane)
            return replace(lane)

    def update_context_summary(self, session_id: str, context_id: str, summary: str, now: int) -> None:
        with self._lock:
            lane = self._find(session_id, context_id)
            if lane is None:
                return
            lane.summary = summary
            lane.msg_count += 1
            lane.last_active_at = now
            lane.updated_at = now

    # -- memberships --

    def latest_primary_context_id(self, session_id: str) -> str | None:
        with self._lock:
            latest: _MembershipRow | None = None
            for row in self._memberships.values():
                if row.session_id != session_id or not row.is_primary:
                    continue
                # >= so that among equal timestamps the last write wins
                if latest is None or row.created_at >= latest.created_at:
                    latest = row
            return latest.context_id if latest else None

    def save_memberships(
        self,
        session_id: str,
        message_id: str,
        memberships: list[MessageContextMembership],
        now: int,
    ) -> None:
        with self._lock:
            for m in memberships:
                key = (session_id, message_id, m.context_id)
                self._memberships.pop(key, None)
                self._memberships[key] = _MembershipRow(
                    session_id=session_id,
                    message_id=message_id,
                    context_id=m.context_id,
                    relevance=m.relevance,
                    is_primary=m.is_primary,
                    created_at=now,
                )

    def get_membership_context_map(
        self, session_id: str, message_ids: list[str],
    ) -> dict[str, set[str]]:
        result: dict[str, set[str]] = {}
        if not message_ids:
            return result
        wanted = set(message_ids)
        with self._lock:
            for row in self._memberships.values():
                if row.session_id == session_id and row.message_id in wanted:
                    result.setdefault(row.message_id, set()).add(row.context_id)
        return result

    # -- switch events --

    def record_switch(
        self,
        session_id: str,
        message_id: str,
        from_context_id: str | None,
        to_context_id: str,
        confidence: float,
        reason: str,
        now: int,
    ) -> None:
        with self._lock:
            self._switches.append(ContextSwitchEvent(
                session_id=session_id,
                message_id=message_id,
                from_context_id=from_context_id,
                to_context_id=to_context_id,
                confidence=confidence,
                reason=reason,
                created_at=now,
            ))

    def list_switch_events(self, session_id: str, limit: int) -> list[ContextSwitchEvent]:
        with self._lock:
            indexed = [
                (i, event) for i, event in enumerate(self._switches)
                if event.session_id == session_id
            ]
            indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
            return [replace(event) for _, event in indexed[:limit]]

    # -- manual overrides --

    def set_manual_override(self, session_id: str, context_id: str, expires_at: int) -> None:
        with self._lock:
            self._overrides[session_id] = ManualOverride(
                session_id=session_id, context_id=context_id, expires_at=expires_at,
            )

    def clear_manual_override(self, session_id: str) -> None:
        with self._lock:
            self._overrides.pop(session_id, None)

    def get_manual_override(self, session_id: str, now: int) -> str | None:
        with self._lock:
            override = self._overrides.get(session_id)
            if override is None or not override.context_id:
                return None
            if override.expires_at < now:
                del self._overrides[session_id]
                return None
            return override.context_id
