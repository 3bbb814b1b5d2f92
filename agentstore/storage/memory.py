"""Thread-safe in-memory storage backend."""

from __future__ import annotations

import threading
from dataclasses import replace

from .base import (
    Backend,
    EventRecord,
    SessionExistsError,
    SessionNotFoundError,
    SessionRecord,
    SnapshotRecord,
    StoreClosedError,
)


def _copy_session(record: SessionRecord) -> SessionRecord:
    labels = None if record.labels is None else dict(record.labels)
    return replace(record, labels=labels)


class MemoryBackend(Backend):
    """Keeps everything in process memory; data is lost when discarded."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, SessionRecord] = {}
        self._events: dict[str, list[EventRecord]] = {}
        self._snapshots: dict[str, SnapshotRecord] = {}
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError()

    def save_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._check_open()
            if session.id in self._sessions:
                raise SessionExistsError(session.id)
            self._sessions[session.id] = _copy_session(session)

    def get_session(self, session_id: str) -> SessionRecord:
        with self._lock:
            self._check_open()
            try:
                record = self._sessions[session_id]
            except KeyError:
                raise SessionNotFoundError(session_id) from None
            return _copy_session(record)

    def list_sessions(self, limit: int, offset: int) -> list[SessionRecord]:
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must not be negative")
        with self._lock:
            self._check_open()
            ordered = sorted(
                (_copy_session(s) for s in self._sessions.values()),
                key=lambda s: s.created_at,
                reverse=True,
            )
        return ordered[offset : offset + limit]

    def update_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._check_open()
            if session.id not in self._sessions:
                raise SessionNotFoundError(session.id)
            self._sessions[session.id] = _copy_session(session)

    def append_event(self, event: EventRecord) -> None:
        with self._lock:
            self._check_open()
            if event.session_id not in self._sessions:
                raise SessionNotFoundError(event.session_id)
            self._events.setdefault(event.session_id, []).append(replace(event))

    def get_events(self, session_id: str, from_seq: int) -> list[EventRecord]:
        with self._lock:
            self._check_open()
            return [
                replace(e)
                for e in self._events.get(session_id, ())
                if e.sequence_number >= from_seq
            ]

    def get_latest_sequence(self, session_id: str) -> int:
        with self._lock:
            self._check_open()
            events = self._events.get(session_id)
            return events[-1].sequence_number if events else 0

    def save_snapshot(self, snapshot: SnapshotRecord) -> None:
        with self._lock:
            self._check_open()
            self._snapshots[snapshot.session_id] = replace(snapshot)

    def get_latest_snapshot(self, session_id: str) -> SnapshotRecord | None:
        with self._lock:
            self._check_open()
            snap = self._snapshots.get(session_id)
            return None if snap is None else replace(snap)

    def close(self) -> None:
        with self._lock:
            self._closed = True