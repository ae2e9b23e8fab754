"""Per-session runtime counters and lane token-efficiency telemetry.

Everything here is in-process and estimated: token counts come from the
character heuristic in ``token_counter``, not a real tokenizer.
"""

from __future__ import annotations

from .core.math_utils import clamp
from .token_counter import estimate_conversation_tokens
from .types import (
    ChatMessage,
    ContextRoutingResult,
    ContextSwitchEvent,
    LaneTelemetrySample,
    SessionRuntimeStats,
    SwitchReason,
)

DEFAULT_ABRUPT_DROP_THRESHOLD = 0.2
MAX_LANE_TELEMETRY_SAMPLES = 20
RECENT_TELEMETRY_IN_REPORT = 5


def create_session_runtime_stats(now: int) -> SessionRuntimeStats:
    return SessionRuntimeStats(first_seen_at=now, last_seen_at=now)


def record_lane_telemetry(
    stats: SessionRuntimeStats,
    at: int,
    baseline_tokens: int,
    lane_scoped_tokens: int,
    history_messages: int,
    lane_history_messages: int,
    primary_context_id: str | None,
    created_new_context: bool,
    abrupt_drop_threshold: float = DEFAULT_ABRUPT_DROP_THRESHOLD,
) -> LaneTelemetrySample:
    """Append a telemetry sample and update the ratio range and drop counter.

    The lane ratio is ``lane_scoped / baseline`` clamped to [0, 1] (1 when
    the baseline is empty). A drop of at least *abrupt_drop_threshold*
    against the previous sample counts as abrupt. Only the newest 20 samples
    are kept.
    """
    ratio = 1.0 if baseline_tokens <= 0 else lane_scoped_tokens / baseline_tokens
    lane_ratio = clamp(ratio, 0.0, 1.0)

    has_previous = bool(stats.lane_telemetry)
    previous_ratio = stats.last_lane_token_ratio if has_previous else lane_ratio
    delta = lane_ratio - previous_ratio

    if has_previous:
        stats.min_lane_token_ratio = min(stats.min_lane_token_ratio, lane_ratio)
        stats.max_lane_token_ratio = max(stats.max_lane_token_ratio, lane_ratio)
    else:
        stats.min_lane_token_ratio = lane_ratio
        stats.max_lane_token_ratio = lane_ratio

    stats.last_lane_token_ratio = lane_ratio
    stats.last_lane_token_ratio_delta = delta

    threshold = clamp(abrupt_drop_threshold, 0.0, 1.0)
    if has_previous and delta <= -threshold:
        stats.abrupt_lane_drop_count += 1

    sample = LaneTelemetrySample(
        at=at,
        baseline_tokens=baseline_tokens,
        lane_scoped_tokens=lane_scoped_tokens,
        lane_ratio=lane_ratio,
        lane_ratio_delta=delta,
        history_messages=history_messages,
        lane_history_messages=lane_history_messages,
        primary_context_id=primary_context_id,
        created_new_context=created_new_context,
    )
    stats.lane_telemetry.append(sample)
    if len(stats.lane_telemetry) > MAX_LANE_TELEMETRY_SAMPLES:
        del stats.lane_telemetry[:len(stats.lane_telemetry) - MAX_LANE_TELEMETRY_SAMPLES]
    return sample


def record_routing_run(
    stats: SessionRuntimeStats,
    result: ContextRoutingResult,
    history: list[ChatMessage],
    now: int,
) -> LaneTelemetrySample:
    """Fold one ``route`` result into the session counters."""
    stats.last_seen_at = now
    stats.messages_seen += 1
    stats.lane_routing_runs += 1
    if result.selection.created_new_context:
        stats.lane_new_context_count += 1

    baseline = estimate_conversation_tokens(history)
    lane_scoped = estimate_conversation_tokens(result.lane_history)
    saved = max(0, baseline - lane_scoped)

    stats.lane_routing_samples += 1
    stats.total_baseline_tokens += baseline
    stats.total_lane_scoped_tokens += lane_scoped
    stats.total_lane_saved_tokens += saved
    stats.last_baseline_token_estimate = baseline
    stats.last_lane_scoped_token_estimate = lane_scoped
    stats.last_lane_saved_tokens = saved

    return record_lane_telemetry(
        stats,
        at=now,
        baseline_tokens=baseline,
        lane_scoped_tokens=lane_scoped,
        history_messages=len(history),
        lane_history_messages=len(result.lane_history),
        primary_context_id=result.selection.primary_context_id,
        created_new_context=result.selection.created_new_context,
    )


def _percent(numerator: float, denominator: float) -> str:
    if denominator <= 0:
        return "0.0%"
    return f"{100 * numerator / denominator:.1f}%"


def _average(numerator: float, denominator: float) -> str:
    if denominator <= 0:
        return "0.00"
    return f"{numerator / denominator:.2f}"


def count_switch_reasons(switch_events: list[ContextSwitchEvent]) -> dict[str, int]:
    counts = {reason.value: 0 for reason in SwitchReason}
    for event in switch_events:
        if event.reason in counts:
            counts[event.reason] += 1
    return counts


def format_token_efficiency_stats(
    stats: SessionRuntimeStats,
    active_context_count: int,
    switch_events: list[ContextSwitchEvent],
) -> str:
    """Plain-text token efficiency report for one session."""
    reasons = count_switch_reasons(switch_events)
    has_telemetry = bool(stats.lane_telemetry)
    min_ratio = stats.min_lane_token_ratio if has_telemetry else 0.0
    max_ratio = stats.max_lane_token_ratio if has_telemetry else 0.0
    samples = stats.lane_routing_samples

    lines = [
        "Context Lanes Token Efficiency (estimated, current process)",
        f"Lane routing runs: {stats.lane_routing_runs}",
        f"Lane routing samples (with token comparison): {samples}",
        f"Lane new contexts: {stats.lane_new_context_count}",
        f"Active contexts: {active_context_count}",
        f"Total baseline tokens (full history): {stats.total_baseline_tokens}",
        f"Total lane-scoped tokens (routed history): {stats.total_lane_scoped_tokens}",
        f"Estimated tokens saved by routing: {stats.total_lane_saved_tokens}",
        f"Estimated routing savings rate: {_percent(stats.total_lane_saved_tokens, stats.total_baseline_tokens)}",
        f"Avg baseline tokens per routed run: {_average(stats.total_baseline_tokens, samples)}",
        f"Avg lane-scoped tokens per routed run: {_average(stats.total_lane_scoped_tokens, samples)}",
        f"Avg tokens saved per routed run: {_average(stats.total_lane_saved_tokens, samples)}",
        f"Last baseline token estimate: {stats.last_baseline_token_estimate}",
        f"Last lane-scoped token estimate: {stats.last_lane_scoped_token_estimate}",
        f"Last estimated route savings: {stats.last_lane_saved_tokens}",
        f"Last lane token ratio: {stats.last_lane_token_ratio * 100:.1f}%",
        f"Last lane ratio delta: {stats.last_lane_token_ratio_delta * 100:.1f}pp",
        f"Lane token ratio range: {min_ratio * 100:.1f}%..{max_ratio * 100:.1f}%",
        f"Abrupt lane drops (>={DEFAULT_ABRUPT_DROP_THRESHOLD * 100:.1f}pp): {stats.abrupt_lane_drop_count}",
        f"Switch events sampled: {len(switch_events)}",
        "Switch reasons: "
        f"score-switch={reasons[SwitchReason.SCORE_SWITCH.value]}, "
        f"manual-override={reasons[SwitchReason.MANUAL_OVERRIDE.value]}, "
        f"created-new-context={reasons[SwitchReason.CREATED_NEW_CONTEXT.value]}",
    ]

    recent = []
    for sample in stats.lane_telemetry[-RECENT_TELEMETRY_IN_REPORT:]:
        recent.append(
            f"t={sample.at} ratio={sample.lane_ratio * 100:.1f}% "
            f"delta={sample.lane_ratio_delta * 100:.1f}pp "
            f"baseline={sample.baseline_tokens} lane={sample.lane_scoped_tokens} "
            f"msgs={sample.lane_history_messages}/{sample.history_messages} "
            f"primary={sample.primary_context_id or 'none'} "
            f"new={'yes' if sample.created_new_context else 'no'}"
        )
    if recent:
        lines.append(f"Recent lane telemetry: {' | '.join(recent)}")

    return "\n".join(lines)
