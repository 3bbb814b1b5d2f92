"""Agent events: types, metadata and the event record itself."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Agent-native event categories; any other string is also accepted as a type."""

    USER_MESSAGE = "user_message"
    PLAN_CREATED = "plan_created"
    TOOL_CALLED = "tool_called"
    TOOL_RESULT = "tool_result"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"
    STATE_UPDATED = "state_updated"
    ERROR = "error"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


_LLM_TYPES = (EventType.LLM_REQUEST, EventType.LLM_RESPONSE)
_TOOL_TYPES = (EventType.TOOL_CALLED, EventType.TOOL_RESULT)


@dataclass
class Metadata:
    """Optional observability data attached to an event."""

    worker_id: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    model: str = ""
    tool_name: str = ""
    duration_ms: int = 0
    cost_usd: float = 0.0
    extra: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the non-empty fields as a JSON-ready dict."""
        items = {
            "worker_id": self.worker_id,
            "tokens_in": self.tokens_in,
            "tokens_out": self.tokens_out,
            "model": self.model,
            "tool_name": self.tool_name,
            "duration_ms": self.duration_ms,
            "cost_usd": self.cost_usd,
            "extra": dict(self.extra) if self.extra else None,
        }
        return {key: value for key, value in items.items() if value}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Metadata:
        if not data:
            return cls()
        extra = data.get("extra")
        return cls(
            worker_id=data.get("worker_id", ""),
            tokens_in=int(data.get("tokens_in", 0)),
            tokens_out=int(data.get("tokens_out", 0)),
            model=data.get("model", ""),
            tool_name=data.get("tool_name", ""),
            duration_ms=int(data.get("duration_ms", 0)),
            cost_usd=float(data.get("cost_usd", 0.0)),
            extra=None if extra is None else dict(extra),
        )


@dataclass
class Event:
    """An action or state change within a session; payload is raw JSON bytes.

    session_id, sequence_number and timestamp are set by the store on append.
    """

    type: EventType | str
    payload: bytes = b"{}"
    session_id: str = ""
    sequence_number: int = 0
    timestamp: datetime | None = None
    metadata: Metadata = field(default_factory=Metadata)

    def with_metadata(self, metadata: Metadata) -> Event:
        """Set the metadata and return the event for chaining."""
        self.metadata = metadata
        return self

    def is_llm_event(self) -> bool:
        return self.type in _LLM_TYPES

    def is_tool_event(self) -> bool:
        return self.type in _TOOL_TYPES


def new_event(event_type: EventType | str, payload: Any = None) -> Event:
    """Create an event; bytes are taken as raw JSON, None becomes '{}', anything else is JSON-encoded.

    Raises TypeError if the payload cannot be encoded as JSON.
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        raw = bytes(payload)
    elif payload is None:
        raw = b"{}"
    else:
        raw = json.dumps(
            payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False
        ).encode("utf-8")
    return Event(type=event_type, payload=raw)