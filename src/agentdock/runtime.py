"""Reduce a thread's classified events into a liveness signal.

Each backend maps its raw records to ``SemanticEventKind`` values. Only the
last event matters: the agent counts as answering when that event is recent
and its kind is in the backend's ``answering_kinds`` rule set.
"""

from typing import Iterable, Optional

from .core import RuntimeState, SemanticEventKind
from .timestamps import now_ms as _now_ms

RECENCY_WINDOW_MS = 120_000

# Kinds that mean "the agent is still working" per provider. These were read
# off observed transcripts, so they stay separate per provider.
CLAUDE_CODE_ANSWERING_KINDS = frozenset({
    SemanticEventKind.AGENT_REASONING,
    SemanticEventKind.AGENT_TOOL,
    SemanticEventKind.AGENT_PROGRESS,
    SemanticEventKind.QUEUE_DEQUEUE,
})
CODEX_ANSWERING_KINDS = frozenset({
    SemanticEventKind.AGENT_REASONING,
    SemanticEventKind.AGENT_TOOL,
    SemanticEventKind.AGENT_PROGRESS,
})

Event = tuple[SemanticEventKind, Optional[int]]


def is_recent(timestamp_ms: Optional[int], now_ms: int,
              window_ms: int = RECENCY_WINDOW_MS) -> bool:
    if timestamp_ms is None:
        return False
    return now_ms - timestamp_ms <= window_ms


def reduce_events(events: Iterable[Event], answering_kinds: frozenset,
                  now_ms: Optional[int] = None) -> RuntimeState:
    """Keep the last event and decide liveness from it.

    An event without a timestamp still replaces the last kind, but the last
    known timestamp is kept.
    """
    last_kind: Optional[SemanticEventKind] = None
    last_at: Optional[int] = None

    for kind, timestamp_ms in events:
        last_kind = kind
        if timestamp_ms is not None:
            last_at = timestamp_ms

    if now_ms is None:
        now_ms = _now_ms()

    answering = (
        last_kind is not None
        and last_kind in answering_kinds
        and is_recent(last_at, now_ms)
    )
    return RuntimeState(
        agent_answering=answering,
        last_event_kind=last_kind.value if last_kind is not None else None,
        last_event_at_ms=last_at,
    )
