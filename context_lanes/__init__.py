"""context-lanes: route long multi-topic conversations into persistent context lanes."""

from .config import load_config
from .orchestrator import ContextLaneOrchestrator
from .session_registry import SessionRegistry
from .storage import open_lane_store
from .types import (
    ChatMessage,
    ContextLane,
    ContextLaneSelection,
    ContextLanesConfig,
    ContextRoutingInput,
    ContextRoutingResult,
    LaneSession,
    LaneSessionRequest,
)

__version__ = "0.1.0"

__all__ = [
    "ContextLaneOrchestrator",
    "SessionRegistry",
    "load_config",
    "open_lane_store",
    "ChatMessage",
    "ContextLane",
    "ContextLaneSelection",
    "ContextLanesConfig",
    "ContextRoutingInput",
    "ContextRoutingResult",
    "LaneSession",
    "LaneSessionRequest",
]
