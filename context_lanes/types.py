"""All dataclasses, Protocols, and type aliases for context-lanes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Messages (host boundary)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class ChatMessage:
    """A conversation turn as supplied by the host.

    Compared by identity: anonymous messages (no id) are deduplicated by
    object, not by content.
    """
    role: str  # "user", "assistant", "system", "tool"
    parts: list[dict[str, Any]] = field(default_factory=list)
    id: str | None = None

    @property
    def message_id(self) -> str | None:
        """The id if it is a non-empty string, else None."""
        if isinstance(self.id, str) and self.id:
            return self.id
        return None


# ---------------------------------------------------------------------------
# Lanes
# ---------------------------------------------------------------------------

class LaneStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"  # defined but never entered by any code path


class SwitchReason(str, Enum):
    """Why the primary lane changed. Ordered by precedence."""
    CREATED_NEW_CONTEXT = "created-new-context"
    MANUAL_OVERRIDE = "manual-override"
    SCORE_SWITCH = "score-switch"


@dataclass
class ContextLane:
    id: str
    session_id: str
    title: str
    summary: str = ""
    status: LaneStatus = LaneStatus.ACTIVE
    msg_count: int = 0
    last_active_at: int = 0  # epoch ms
    created_at: int = 0
    updated_at: int = 0
    owner_session_id: str | None = None  # delegate session owning deeper work


@dataclass
class ContextLaneScore:
    context_id: str
    score: float
    title: str


@dataclass
class LaneSelectionCandidate:
    """Selector output before override reconciliation and lane creation."""
    primary_context_id: str | None
    secondary_context_ids: list[str] = field(default_factory=list)
    scores: list[ContextLaneScore] = field(default_factory=list)


@dataclass
class ContextLaneSelection:
    primary_context_id: str
    secondary_context_ids: list[str] = field(default_factory=list)
    scores: list[ContextLaneScore] = field(default_factory=list)
    created_new_context: bool = False


@dataclass
class MessageContextMembership:
    context_id: str
    relevance: float
    is_primary: bool


@dataclass
class ContextSwitchEvent:
    """Append-only audit record of a primary lane change."""
    session_id: str
    message_id: str
    from_context_id: str | None
    to_context_id: str
    confidence: float
    reason: str
    created_at: int


@dataclass
class ManualOverride:
    session_id: str
    context_id: str
    expires_at: int


@dataclass
class ContextOwnerRoute:
    owner_session_id: str
    context_id: str
    context_title: str
    is_primary: bool


@dataclass
class ContextRoutingInput:
    session_id: str
    message_id: str
    latest_user_text: str
    history: list[ChatMessage]
    config: ContextLanesConfig
    now: int


@dataclass
class ContextRoutingResult:
    selection: ContextLaneSelection
    lane_history: list[ChatMessage] = field(default_factory=list)
    active_context_count: int = 0
    owner_routes: list[ContextOwnerRoute] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Delegate lane sessions
# ---------------------------------------------------------------------------

@dataclass
class LaneSessionRequest:
    """Passed to the host when a new lane is about to be created."""
    root_session_id: str
    lane_title: str
    latest_user_text: str
    now: int


@dataclass
class LaneSession:
    """Host reply: an optional delegate session id and lane title."""
    context_id: str | None = None
    lane_title: str | None = None


LaneSessionFactory = Callable[[LaneSessionRequest], "LaneSession | None"]


# ---------------------------------------------------------------------------
# Embedding Provider
# ---------------------------------------------------------------------------

class EmbeddingProviderError(Exception):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


@runtime_checkable
class EmbeddingProvider(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]: ...


# ---------------------------------------------------------------------------
# Runtime Stats
# ---------------------------------------------------------------------------

@dataclass
class LaneTelemetrySample:
    at: int
    baseline_tokens: int
    lane_scoped_tokens: int
    lane_ratio: float
    lane_ratio_delta: float
    history_messages: int
    lane_history_messages: int
    primary_context_id: str | None
    created_new_context: bool


@dataclass
class SessionRuntimeStats:
    """Per-session counters, held in memory by the SessionRegistry."""
    first_seen_at: int = 0
    last_seen_at: int = 0
    messages_seen: int = 0
    lane_routing_runs: int = 0
    lane_new_context_count: int = 0
    lane_routing_samples: int = 0
    total_baseline_tokens: int = 0
    total_lane_scoped_tokens: int = 0
    total_lane_saved_tokens: int = 0
    last_baseline_token_estimate: int = 0
    last_lane_scoped_token_estimate: int = 0
    last_lane_saved_tokens: int = 0
    last_lane_token_ratio: float = 0.0
    last_lane_token_ratio_delta: float = 0.0
    min_lane_token_ratio: float = 0.0
    max_lane_token_ratio: float = 0.0
    abrupt_lane_drop_count: int = 0
    lane_telemetry: list[LaneTelemetrySample] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class RoutingConfig:
    enabled: bool = True
    primary_threshold: float = 0.38
    secondary_threshold: float = 0.30
    switch_margin: float = 0.06
    max_active: int = 8
    summary_max_chars: int = 1200
    keep_recent_messages: int = 8
    min_history_token_ratio: float = 0.75


@dataclass
class SemanticRerankConfig:
    enabled: bool = False
    weight: float = 0.2
    ambiguity_top_score: float = 0.62  # rerank when the top score is at or below this
    ambiguity_gap: float = 0.08        # or when top - second is at or below this
    top_k: int = 4


@dataclass
class EmbeddingConfig:
    provider: str = "ollama"  # "ollama" or "sentence-transformers"
    model: str = "embeddinggemma"
    base_url: str = "http://127.0.0.1:11434"
    timeout_ms: int = 5000
    max_chars: int = 8000


@dataclass
class StorageConfig:
    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = ".context-lanes/lanes.sqlite"


@dataclass
class ContextLanesConfig:
    version: str = "0.1"
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    semantic: SemanticRerankConfig = field(default_factory=SemanticRerankConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
