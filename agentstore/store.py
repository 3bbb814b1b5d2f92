"""The event store: sessions, append-only event logs, replay and materialized state."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from typing import Iterable

from .event import Event, EventType, Metadata
from .session import Session, new_session
from .state import Reducer, State, apply_events, default_reducer, new_state
from .storage.base import (
    Backend,
    EventRecord,
    SessionRecord,
    SnapshotRecord,
    StorageError,
)
from .storage.file import FileBackend
from .storage.memory import MemoryBackend

DEFAULT_SNAPSHOT_INTERVAL = 100
DEFAULT_LIST_LIMIT = 100


class StoreError(StorageError):
    """Raised for store-level failures such as an unopenable data directory."""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _event_type(name: str) -> EventType | str:
    try:
        return EventType(name)
    except ValueError:
        return name


def _record_to_session(record: SessionRecord) -> Session:
    return Session(
        id=record.id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        name=record.name,
        event_count=record.event_count,
        labels=None if record.labels is None else dict(record.labels),
    )


def _record_to_event(record: EventRecord) -> Event:
    metadata = Metadata()
    if record.metadata is not None:
        try:
            decoded = json.loads(record.metadata)
            if isinstance(decoded, dict):
                metadata = Metadata.from_dict(decoded)
        except (ValueError, TypeError):
            pass
    return Event(
        type=_event_type(record.type),
        payload=record.payload,
        session_id=record.session_id,
        sequence_number=record.sequence_number,
        timestamp=record.timestamp,
        metadata=metadata,
    )


class Store:
    """Append-only store of agent sessions and their events; safe for use from threads.

    With a data directory, data is kept on disk; with none, or with
    ``in_memory=True``, it lives in memory and is lost on close.
    """

    def __init__(
        self,
        data_dir: str | os.PathLike[str] | None = None,
        *,
        reducer: Reducer | None = None,
        snapshot_interval: int = DEFAULT_SNAPSHOT_INTERVAL,
        in_memory: bool = False,
    ) -> None:
        if snapshot_interval < 0:
            raise ValueError("snapshot_interval must not be negative")
        self._reducer: Reducer = reducer if reducer is not None else default_reducer
        self._snapshot_interval = snapshot_interval
        self._lock = threading.Lock()

        self._backend: Backend
        if in_memory or not data_dir:
            self._backend = MemoryBackend()
        else:
            try:
                self._backend = FileBackend(data_dir)
            except StorageError as err:
                raise StoreError(f"open file storage at {data_dir}: {err}") from err

    # ── sessions ─────────────────────────────────────────────────────────

    def create_session(
        self,
        *,
        session_id: str | None = None,
        name: str = "",
        labels: dict[str, str] | None = None,
    ) -> Session:
        """Start a new session and return it."""
        session = new_session(session_id, name, labels)
        record = SessionRecord(
            id=session.id,
            name=session.name,
            created_at=session.created_at,
            updated_at=session.updated_at,
            labels=None if session.labels is None else dict(session.labels),
        )
        self._backend.save_session(record)
        return session

    def get_session(self, session_id: str) -> Session:
        """Return the session; raise SessionNotFoundError if it does not exist."""
        return _record_to_session(self._backend.get_session(session_id))

    def list_sessions(
        self,
        *,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
        label: tuple[str, str] | None = None,
    ) -> list[Session]:
        """Return sessions newest first; ``label`` is a (key, value) pair to filter on.

        The label filter is applied to the page after pagination.
        """
        records = self._backend.list_sessions(limit, offset)
        sessions = [_record_to_session(r) for r in records]
        if label is not None and label[0]:
            key, value = label
            sessions = [
                s for s in sessions if s.labels is not None and s.labels.get(key, "") == value
            ]
        return sessions

    # ── events ───────────────────────────────────────────────────────────

    def append(self, session_id: str, event: Event) -> None:
        """Append an event, assigning its session ID, sequence number and timestamp."""
        with self._lock:
            next_seq = self._backend.get_latest_sequence(session_id) + 1
            now = datetime.now(timezone.utc)

            event.session_id = session_id
            event.sequence_number = next_seq
            event.timestamp = now

            metadata = json.dumps(
                event.metadata.to_dict(), separators=(",", ":"), ensure_ascii=False
            ).encode("utf-8")
            record = EventRecord(
                session_id=session_id,
                sequence_number=next_seq,
                type=str(event.type),
                payload=event.payload,
                timestamp=now,
                metadata=metadata,
            )
            self._backend.append_event(record)

            session_record = self._backend.get_session(session_id)
            session_record.updated_at = now
            session_record.event_count = next_seq
            self._backend.update_session(session_record)

            interval = self._snapshot_interval
            if interval > 0 and next_seq % interval == 0:
                try:
                    self._create_snapshot(session_id)
                except (StorageError, ValueError, TypeError):
                    pass  # a failed snapshot never fails the append

    def get_events(self, session_id: str, from_seq: int = 0) -> list[Event]:
        """Return events with sequence number >= from_seq, in order."""
        return [_record_to_event(r) for r in self._backend.get_events(session_id, from_seq)]

    def get_state(self, session_id: str) -> State:
        """Rebuild state from the latest snapshot plus the events after it."""
        state = new_state(session_id)
        from_seq = 0

        snap = self._backend.get_latest_snapshot(session_id)
        if snap is not None:
            try:
                decoded = json.loads(snap.state)
                if not isinstance(decoded, dict):
                    raise ValueError("snapshot state is not an object")
                state = State.from_dict(decoded)
            except (ValueError, TypeError) as err:
                raise StoreError(f"unmarshal snapshot: {err}") from err
            from_seq = snap.version + 1

        events = self.get_events(session_id, from_seq)
        return apply_events(state, events, self._reducer)

    def replay(
        self,
        session_id: str,
        *,
        types: Iterable[EventType | str] | None = None,
        time_from: datetime | None = None,
        time_to: datetime | None = None,
    ) -> list[Event]:
        """Return all events in order, optionally limited to types and an inclusive time range."""
        events = self.get_events(session_id, 0)
        type_set = {str(t) for t in types} if types else set()
        start = None if time_from is None else _as_utc(time_from)
        end = None if time_to is None else _as_utc(time_to)
        if not type_set and start is None and end is None:
            return events

        def keep(event: Event) -> bool:
            if type_set and str(event.type) not in type_set:
                return False
            if start is not None and event.timestamp < start:
                return False
            if end is not None and event.timestamp > end:
                return False
            return True

        return [e for e in events if keep(e)]

    # ── lifecycle ────────────────────────────────────────────────────────

    def close(self) -> None:
        """Close the store; later operations raise StoreClosedError."""
        self._backend.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── internals ────────────────────────────────────────────────────────

    def _create_snapshot(self, session_id: str) -> None:
        state = self.get_state(session_id)
        state_json = json.dumps(
            state.to_dict(), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
        self._backend.save_snapshot(
            SnapshotRecord(
                session_id=session_id,
                version=state.version,
                state=state_json,
                created_at=datetime.now(timezone.utc),
                event_count=state.event_count,
            )
        )