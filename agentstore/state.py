"""Materialized session state and the reducers that build it from events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

import json

from .event import Event, EventType
from .storage.base import _format_time, _parse_time


@dataclass
class TokenUsage:
    """Cumulative token consumption and cost."""

    tokens_in: int = 0
    tokens_out: int = 0
    cost_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"in": self.tokens_in, "out": self.tokens_out, "cost_usd": self.cost_usd}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TokenUsage:
        if not data:
            return cls()
        return cls(
            tokens_in=int(data.get("in", 0)),
            tokens_out=int(data.get("out", 0)),
            cost_usd=float(data.get("cost_usd", 0.0)),
        )


@dataclass
class State:
    """Materialized view of a session, always reconstructable from its events."""

    session_id: str
    version: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    last_event_at: datetime | None = None
    event_count: int = 0
    tokens: TokenUsage = field(default_factory=TokenUsage)
    tool_calls: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "version": self.version,
            "data": dict(self.data),
            "last_event_at": None
            if self.last_event_at is None
            else _format_time(self.last_event_at),
            "event_count": self.event_count,
            "tokens": self.tokens.to_dict(),
            "tool_calls": self.tool_calls,
            "errors": self.errors,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> State:
        last = data.get("last_event_at")
        return cls(
            session_id=data.get("session_id", ""),
            version=int(data.get("version", 0)),
            data=dict(data.get("data") or {}),
            last_event_at=_parse_time(last) if last else None,
            event_count=int(data.get("event_count", 0)),
            tokens=TokenUsage.from_dict(data.get("tokens")),
            tool_calls=int(data.get("tool_calls", 0)),
            errors=int(data.get("errors", 0)),
        )


Reducer = Callable[[State, Event], State]


@dataclass
class Snapshot:
    """A point-in-time capture of materialized state."""

    session_id: str
    version: int
    state: State
    created_at: datetime
    event_count: int


def default_reducer(state: State, event: Event) -> State:
    """Fold an event into state: count events, tools and errors, sum LLM tokens,
    and keep the latest decoded payload per event type in ``state.data``."""
    if state.data is None:
        state.data = {}

    state.version = event.sequence_number
    state.last_event_at = event.timestamp
    state.event_count += 1

    if event.is_llm_event():
        state.tokens.tokens_in += event.metadata.tokens_in
        state.tokens.tokens_out += event.metadata.tokens_out
        state.tokens.cost_usd += event.metadata.cost_usd

    if event.type == EventType.TOOL_CALLED:
        state.tool_calls += 1
    if event.type == EventType.ERROR:
        state.errors += 1

    try:
        payload = json.loads(event.payload)
    except (ValueError, TypeError):
        return state
    state.data[str(event.type)] = payload
    return state


def new_state(session_id: str) -> State:
    """Return an empty state for the session."""
    return State(session_id=session_id)


def apply_events(state: State, events: Iterable[Event], reducer: Reducer) -> State:
    """Reduce the events onto the state in order."""
    for event in events:
        state = reducer(state, event)
    return state