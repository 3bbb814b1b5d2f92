"""Storage records, storage errors and the backend interface."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?"
)


def _format_time(value: datetime) -> str:
    """Render a datetime as an RFC 3339 UTC string ending in 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def _parse_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp (any fraction length) into an aware UTC datetime."""
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    normalized = match["base"]
    if match["frac"]:
        normalized += "." + match["frac"][:6].ljust(6, "0")
    tz = match["tz"]
    normalized += "+00:00" if tz in (None, "Z") else tz
    return datetime.fromisoformat(normalized).astimezone(timezone.utc)


def _time_from(data: dict[str, Any], key: str) -> datetime:
    text = data.get(key)
    return _parse_time(text) if text else _ZERO_TIME


def _raw_to_value(raw: bytes | None) -> Any:
    if raw is None or raw == b"":
        return None
    return json.loads(raw)


def _value_to_raw(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class StorageError(Exception):
    """Base class for errors raised by storage backends."""


class StoreClosedError(StorageError):
    """Raised when an operation is attempted on a closed backend."""

    def __init__(self) -> None:
        super().__init__("store is closed")


class SessionNotFoundError(StorageError):
    """Raised when a session does not exist."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session {session_id} not found")


class SessionExistsError(StorageError):
    """Raised when saving a session whose ID is already taken."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session {session_id} already exists")


@dataclass
class EventRecord:
    """Stored form of an event; payload and metadata are raw JSON bytes."""

    session_id: str
    sequence_number: int
    type: str
    payload: bytes = b"null"
    timestamp: datetime = _ZERO_TIME
    metadata: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "sequence_number": self.sequence_number,
            "type": self.type,
            "payload": _raw_to_value(self.payload),
            "timestamp": _format_time(self.timestamp),
            "metadata": _raw_to_value(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventRecord:
        metadata = data.get("metadata")
        return cls(
            session_id=data.get("session_id", ""),
            sequence_number=int(data.get("sequence_number", 0)),
            type=data.get("type", ""),
            payload=_value_to_raw(data.get("payload")),
            timestamp=_time_from(data, "timestamp"),
            metadata=None if metadata is None else _value_to_raw(metadata),
        )


@dataclass
class SessionRecord:
    """Stored form of a session."""

    id: str
    name: str = ""
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME
    event_count: int = 0
    labels: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        if self.name:
            data["name"] = self.name
        data["created_at"] = _format_time(self.created_at)
        data["updated_at"] = _format_time(self.updated_at)
        data["event_count"] = self.event_count
        if self.labels:
            data["labels"] = dict(self.labels)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        labels = data.get("labels")
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            created_at=_time_from(data, "created_at"),
            updated_at=_time_from(data, "updated_at"),
            event_count=int(data.get("event_count", 0)),
            labels=None if labels is None else dict(labels),
        )


@dataclass
class SnapshotRecord:
    """Stored form of a state snapshot; state is raw JSON bytes."""

    session_id: str
    version: int = 0
    state: bytes = b"null"
    created_at: datetime = _ZERO_TIME
    event_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "version": self.version,
            "state": _raw_to_value(self.state),
            "created_at": _format_time(self.created_at),
            "event_count": self.event_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotRecord:
        return cls(
            session_id=data.get("session_id", ""),
            version=int(data.get("version", 0)),
            state=_value_to_raw(data.get("state")),
            created_at=_time_from(data, "created_at"),
            event_count=int(data.get("event_count", 0)),
        )


class Backend(ABC):
    """Operations every storage implementation provides; all are thread-safe."""

    @abstractmethod
    def save_session(self, session: SessionRecord) -> None:
        """Store a new session; raise SessionExistsError if the ID is taken."""

    @abstractmethod
    def get_session(self, session_id: str) -> SessionRecord:
        """Return a session; raise SessionNotFoundError if missing."""

    @abstractmethod
    def list_sessions(self, limit: int, offset: int) -> list[SessionRecord]:
        """Return sessions newest first, paginated."""

    @abstractmethod
    def update_session(self, session: SessionRecord) -> None:
        """Replace an existing session; raise SessionNotFoundError if missing."""

    @abstractmethod
    def append_event(self, event: EventRecord) -> None:
        """Append an event to its session's log."""

    @abstractmethod
    def get_events(self, session_id: str, from_seq: int) -> list[EventRecord]:
        """Return events with sequence number >= from_seq, in order."""

    @abstractmethod
    def get_latest_sequence(self, session_id: str) -> int:
        """Return the highest sequence number stored, or 0."""

    @abstractmethod
    def save_snapshot(self, snapshot: SnapshotRecord) -> None:
        """Store a snapshot, replacing any earlier one for the session."""

    @abstractmethod
    def get_latest_snapshot(self, session_id: str) -> SnapshotRecord | None:
        """Return the latest snapshot, or None if there is none."""

    @abstractmethod
    def close(self) -> None:
        """Close the backend; later operations raise StoreClosedError."""

    def __enter__(self) -> Backend:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()