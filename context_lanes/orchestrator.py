"""ContextLaneOrchestrator: routes each turn into lanes and builds the lane-scoped history."""

from __future__ import annotations

import logging
import math
from pathlib import Path

from .config import load_config
from .core.digest import summarize_context, title_from_message
from .core.history import (
    apply_retention_floor,
    history_message_ids,
    select_lane_history,
)
from .core.scorer import (
    merge_semantic_scores,
    score_contexts_for_message,
    should_run_semantic_rerank,
)
from .core.selector import select_context_lanes
from .core.semantic_rerank import compute_semantic_similarities
from .core.store import LaneStore
from .providers import build_embedding_provider
from .storage import open_lane_store
from .types import (
    ContextLane,
    ContextLaneScore,
    ContextLaneSelection,
    ContextLanesConfig,
    ContextOwnerRoute,
    ContextRoutingInput,
    ContextRoutingResult,
    ContextSwitchEvent,
    EmbeddingProvider,
    LaneSessionFactory,
    LaneSessionRequest,
    LaneStatus,
    MessageContextMembership,
    SwitchReason,
)

logger = logging.getLogger(__name__)

NEW_LANE_SCORE = 1.0
DEFAULT_PRIMARY_RELEVANCE = 1.0
DEFAULT_SECONDARY_RELEVANCE = 0.5
MS_PER_MINUTE = 60_000


def build_memberships(
    primary_context_id: str,
    secondary_context_ids: list[str],
    score_map: dict[str, float],
) -> list[MessageContextMembership]:
    memberships = [MessageContextMembership(
        context_id=primary_context_id,
        relevance=score_map.get(primary_context_id, DEFAULT_PRIMARY_RELEVANCE),
        is_primary=True,
    )]
    for context_id in secondary_context_ids:
        memberships.append(MessageContextMembership(
            context_id=context_id,
            relevance=score_map.get(context_id, DEFAULT_SECONDARY_RELEVANCE),
            is_primary=False,
        ))
    return memberships


def switch_reason(created_new_context: bool, override_applied: bool) -> SwitchReason:
    if created_new_context:
        return SwitchReason.CREATED_NEW_CONTEXT
    if override_applied:
        return SwitchReason.MANUAL_OVERRIDE
    return SwitchReason.SCORE_SWITCH


class ContextLaneOrchestrator:
    """Routes turns of a session into lanes.

    Usage:
        store = open_lane_store(".", ".context-lanes/lanes.sqlite")
        orchestrator = ContextLaneOrchestrator(store)
        result = orchestrator.route(ContextRoutingInput(...))
        messages = result.lane_history

    ``route`` is not reentrant per session; serialize calls for one session
    (see ``SessionRegistry.lock_for``).
    """

    def __init__(
        self,
        store: LaneStore,
        embedding_provider: EmbeddingProvider | None = None,
        create_lane_session: LaneSessionFactory | None = None,
    ) -> None:
        self.store = store
        self.embedding_provider = embedding_provider
        self.create_lane_session = create_lane_session

    @classmethod
    def from_config(
        cls,
        config: ContextLanesConfig | None = None,
        config_path: str | Path | None = None,
        base_directory: str | Path = ".",
        create_lane_session: LaneSessionFactory | None = None,
    ) -> ContextLaneOrchestrator:
        """Build the store and (if semantic rerank is on) the embedding provider from config."""
        config = config or load_config(config_path)
        store = open_lane_store(base_directory, config.storage.db_path, config.storage.backend)
        provider = None
        if config.semantic.enabled:
            provider = build_embedding_provider(config.embedding)
        return cls(store, embedding_provider=provider, create_lane_session=create_lane_session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_primary_context_id(self, session_id: str) -> str | None:
        return self.store.latest_primary_context_id(session_id)

    def active_context_count(self, session_id: str) -> int:
        return self.store.count_active_contexts(session_id)

    def list_contexts(self, session_id: str, limit: int = 20) -> list[ContextLane]:
        return self.store.list_contexts(session_id, limit)

    def list_switch_events(self, session_id: str, limit: int = 20) -> list[ContextSwitchEvent]:
        return self.store.list_switch_events(session_id, limit)

    # ------------------------------------------------------------------
    # Manual pinning
    # ------------------------------------------------------------------

    def switch_context(self, session_id: str, context_id: str, ttl_minutes: float, now: int) -> bool:
        """Pin *context_id* as primary for at least one minute.

        Returns False (and stores nothing) for unknown or non-active lanes.
        """
        lane = self.store.get_context(session_id, context_id)
        if lane is None or lane.status != LaneStatus.ACTIVE:
            return False
        ttl_ms = max(1, math.floor(ttl_minutes)) * MS_PER_MINUTE
        self.store.set_manual_override(session_id, context_id, now + ttl_ms)
        logger.info("Context lanes: pinned %s for session %s until %d", context_id, session_id, now + ttl_ms)
        return True

    def clear_manual_override(self, session_id: str) -> None:
        self.store.clear_manual_override(session_id)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _score(
        self,
        text: str,
        contexts: list[ContextLane],
        config: ContextLanesConfig,
        now: int,
    ) -> list[ContextLaneScore]:
        scores = score_contexts_for_message(text, contexts, now)
        if not should_run_semantic_rerank(scores, config.semantic):
            return scores

        context_by_id = {c.id: c for c in contexts}
        semantic = compute_semantic_similarities(
            text, scores, context_by_id, config, self.embedding_provider,
        )
        if not semantic:
            return scores
        return merge_semantic_scores(scores, semantic, config.semantic.weight)

    def _create_lane(self, session_id: str, text: str, config: ContextLanesConfig, now: int) -> ContextLane:
        title = title_from_message(text)
        preferred_id = None
        if self.create_lane_session is not None:
            try:
                session = self.create_lane_session(LaneSessionRequest(
                    root_session_id=session_id,
                    lane_title=title,
                    latest_user_text=text,
                    now=now,
                ))
            except Exception as e:
                logger.warning("Context lanes: lane session callback failed: %s", e)
                session = None
            if session is not None:
                if isinstance(session.context_id, str) and session.context_id:
                    preferred_id = session.context_id
                if isinstance(session.lane_title, str) and session.lane_title.strip():
                    title = session.lane_title.strip()

        lane = self.store.create_context(
            session_id,
            title,
            summarize_context("", text, config.routing.summary_max_chars),
            now,
            preferred_id=preferred_id,
            owner_session_id=preferred_id,
        )
        logger.info("Context lanes: created lane %s (%r) for session %s", lane.id, lane.title, session_id)
        return lane

    def route(self, routing_input: ContextRoutingInput) -> ContextRoutingResult:
        """Route one user turn.

        Scores the active lanes, picks primary and secondaries (creating a
        lane when nothing matches), persists digests, memberships and switch
        events, and returns the lane-scoped view of *history*.
        """
        session_id = routing_input.session_id
        message_id = routing_input.message_id
        text = routing_input.latest_user_text or ""
        history = routing_input.history
        config = routing_input.config
        routing = config.routing
        now = routing_input.now

        contexts = self.store.list_active_contexts(session_id, routing.max_active)
        previous_primary_id = self.store.latest_primary_context_id(session_id)

        scores = self._score(text, contexts, config, now)
        score_map = {s.context_id: s.score for s in scores}
        candidate = select_context_lanes(scores, previous_primary_id, routing)

        primary_id = candidate.primary_context_id
        secondary_ids = list(candidate.secondary_context_ids)
        context_by_id = {c.id: c for c in contexts}

        override_id = self.store.get_manual_override(session_id, now)
        override_applied = False
        if override_id and override_id in context_by_id:
            primary_id = override_id
            secondary_ids = [cid for cid in secondary_ids if cid != override_id]
            override_applied = True

        created_new_context = False
        if primary_id is None:
            lane = self._create_lane(session_id, text, config, now)
            context_by_id[lane.id] = lane
            primary_id = lane.id
            created_new_context = True
            score_map[lane.id] = NEW_LANE_SCORE

        primary = context_by_id.get(primary_id)
        if primary is not None:
            summary = summarize_context(primary.summary, text, routing.summary_max_chars)
            self.store.update_context_summary(session_id, primary_id, summary, now)

        for context_id in secondary_ids:
            secondary = context_by_id.get(context_id)
            if context_id == primary_id or secondary is None:
                continue
            self.store.update_context_summary(session_id, context_id, secondary.summary, now)

        has_message_id = isinstance(message_id, str) and bool(message_id)
        if has_message_id:
            self.store.save_memberships(
                session_id, message_id, build_memberships(primary_id, secondary_ids, score_map), now,
            )
        else:
            logger.warning(
                "Context lanes: turn without a message id in session %s, memberships not saved", session_id,
            )

        if has_message_id and previous_primary_id != primary_id:
            reason = switch_reason(created_new_context, override_applied)
            self.store.record_switch(
                session_id,
                message_id,
                previous_primary_id,
                primary_id,
                score_map.get(primary_id, DEFAULT_PRIMARY_RELEVANCE),
                reason.value,
                now,
            )
            logger.debug(
                "Context lanes: switch %s -> %s (%s) in session %s",
                previous_primary_id, primary_id, reason.value, session_id,
            )

        selected_ids = {primary_id, *secondary_ids}
        membership_map = self.store.get_membership_context_map(session_id, history_message_ids(history))
        lane_history = select_lane_history(
            history, membership_map, selected_ids, routing.keep_recent_messages,
        )
        lane_history = apply_retention_floor(
            lane_history, history, routing.keep_recent_messages, routing.min_history_token_ratio,
        )

        owner_routes = []
        for context_id in [primary_id, *secondary_ids]:
            lane = context_by_id.get(context_id)
            if lane is None or not lane.owner_session_id:
                continue
            owner_routes.append(ContextOwnerRoute(
                owner_session_id=lane.owner_session_id,
                context_id=lane.id,
                context_title=lane.title,
                is_primary=context_id == primary_id,
            ))

        active_count = self.store.count_active_contexts(session_id)
        logger.debug(
            "Context lanes: session %s primary=%s secondaries=%s created=%s active=%d history=%d/%d",
            session_id, primary_id, secondary_ids, created_new_context, active_count,
            len(lane_history), len(history),
        )

        return ContextRoutingResult(
            selection=ContextLaneSelection(
                primary_context_id=primary_id,
                secondary_context_ids=secondary_ids,
                scores=scores,
                created_new_context=created_new_context,
            ),
            lane_history=lane_history,
            active_context_count=active_count,
            owner_routes=owner_routes,
        )
