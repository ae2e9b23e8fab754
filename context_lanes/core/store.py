"""LaneStore abstract base class: the lane persistence contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..types import ContextLane, ContextSwitchEvent, MessageContextMembership


class LaneStore(ABC):
    """Session-scoped repository of lanes, memberships, switch events and overrides.

    Every implementation honours the same semantics. Missing rows are
    reported as ``None`` or empty collections, never as exceptions.
    """

    @abstractmethod
    def count_active_contexts(self, session_id: str) -> int:
        """Number of lanes with status ``active``."""

    @abstractmethod
    def list_active_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        """Active lanes, most recently active first."""

    @abstractmethod
    def list_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        """All lanes regardless of status, most recently active first."""

    @abstractmethod
    def get_context(self, session_id: str, context_id: str) -> ContextLane | None:
        """Retrieve a lane by id. None if not found."""

    @abstractmethod
    def create_context(
        self,
        session_id: str,
        title: str,
        summary: str,
        now: int,
        preferred_id: str | None = None,
        owner_session_id: str | None = None,
    ) -> ContextLane:
        """Create an active lane.

        Uses *preferred_id* when given and not already present in the
        session, otherwise a fresh uuid4.
        """

    @abstractmethod
    def update_context_summary(self, session_id: str, context_id: str, summary: str, now: int) -> None:
        """Replace the summary and bump msg_count, last_active_at, updated_at.

        No-op for unknown lanes.
        """

    @abstractmethod
    def latest_primary_context_id(self, session_id: str) -> str | None:
        """Context id of the newest primary membership, or None."""

    @abstractmethod
    def save_memberships(
        self,
        session_id: str,
        message_id: str,
        memberships: list[MessageContextMembership],
        now: int,
    ) -> None:
        """Upsert memberships for one message, keyed by (session, message, context)."""

    @abstractmethod
    def get_membership_context_map(
        self, session_id: str, message_ids: list[str],
    ) -> dict[str, set[str]]:
        """Map each message id that has memberships to its set of context ids."""

    @abstractmethod
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
        """Append a switch event."""

    @abstractmethod
    def list_switch_events(self, session_id: str, limit: int) -> list[ContextSwitchEvent]:
        """Recent switch events, newest first."""

    @abstractmethod
    def set_manual_override(self, session_id: str, context_id: str, expires_at: int) -> None:
        """Pin a lane for the session until *expires_at*. Last write wins."""

    @abstractmethod
    def clear_manual_override(self, session_id: str) -> None:
        """Remove the session's override, if any."""

    @abstractmethod
    def get_manual_override(self, session_id: str, now: int) -> str | None:
        """Pinned context id, or None.

        An override found expired (``expires_at < now``) is deleted and None
        returned.
        """

    def close(self) -> None:
        """Release any held resources."""
