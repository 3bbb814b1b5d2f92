"""Persistent storage backend on the local filesystem.

Layout under the data directory:

    sessions/<session_id>.json    one JSON document per session
    events/<session_id>.jsonl     append-only event log, one JSON object per line
    snapshots/<session_id>.json   latest snapshot, replaced atomically

Every write is fsynced.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any, Iterator

from .base import (
    Backend,
    EventRecord,
    SessionExistsError,
    SessionNotFoundError,
    SessionRecord,
    SnapshotRecord,
    StorageError,
    StoreClosedError,
)

_MAX_LINE = 1024 * 1024
_DECODE_ERRORS = (ValueError, TypeError, KeyError, AttributeError)


class FileBackend(Backend):
    """Filesystem-backed storage; safe for use from several threads."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)
        self._sessions_dir = self._dir / "sessions"
        self._events_dir = self._dir / "events"
        self._snapshots_dir = self._dir / "snapshots"
        for path in (self._sessions_dir, self._events_dir, self._snapshots_dir):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as err:
                raise StorageError(f"create directory {path}: {err}") from err

        self._lock = threading.RLock()
        self._closed = False
        self._file_locks: dict[str, threading.Lock] = {}
        self._file_locks_guard = threading.Lock()

    # ── helpers ──────────────────────────────────────────────────────────

    def _check_open(self) -> None:
        with self._lock:
            if self._closed:
                raise StoreClosedError()

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._file_locks_guard:
            return self._file_locks.setdefault(session_id, threading.Lock())

    def _session_path(self, session_id: str) -> Path:
        return self._sessions_dir / f"{session_id}.json"

    def _events_path(self, session_id: str) -> Path:
        return self._events_dir / f"{session_id}.jsonl"

    def _snapshot_path(self, session_id: str) -> Path:
        return self._snapshots_dir / f"{session_id}.json"

    @staticmethod
    def _write_json(path: Path, value: dict[str, Any]) -> None:
        text = json.dumps(value, indent=2, ensure_ascii=False)
        try:
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as err:
            raise StorageError(f"write {path}: {err}") from err

    @staticmethod
    def _read_json(path: Path) -> Any:
        return json.loads(path.read_bytes())

    @staticmethod
    def _iter_lines(path: Path) -> Iterator[bytes]:
        """Yield the non-empty lines of a JSONL file; nothing if it does not exist."""
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            return
        except OSError as err:
            raise StorageError(f"open events file: {err}") from err
        with handle:
            for raw in handle:
                line = raw.rstrip(b"\r\n")
                if len(line) > _MAX_LINE:
                    raise StorageError("scan events file: line too long")
                if line:
                    yield line

    # ── sessions ─────────────────────────────────────────────────────────

    def save_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._check_open()
            path = self._session_path(session.id)
            if path.exists():
                raise SessionExistsError(session.id)
            self._write_json(path, session.to_dict())

    def get_session(self, session_id: str) -> SessionRecord:
        with self._lock:
            self._check_open()
            path = self._session_path(session_id)
            try:
                return SessionRecord.from_dict(self._read_json(path))
            except FileNotFoundError:
                raise SessionNotFoundError(session_id) from None
            except OSError as err:
                raise StorageError(f"read session {session_id}: {err}") from err
            except _DECODE_ERRORS as err:
                raise StorageError(f"decode session {session_id}: {err}") from err

    def list_sessions(self, limit: int, offset: int) -> list[SessionRecord]:
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must not be negative")
        with self._lock:
            self._check_open()
            try:
                entries = sorted(self._sessions_dir.iterdir())
            except OSError as err:
                raise StorageError(f"read sessions dir: {err}") from err

            sessions: list[SessionRecord] = []
            for entry in entries:
                if entry.suffix != ".json" or entry.is_dir():
                    continue
                try:
                    sessions.append(SessionRecord.from_dict(self._read_json(entry)))
                except (OSError, *_DECODE_ERRORS):
                    continue  # skip unreadable or corrupt files

        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions[offset : offset + limit]

    def update_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._check_open()
            path = self._session_path(session.id)
            if not path.exists():
                raise SessionNotFoundError(session.id)
            self._write_json(path, session.to_dict())

    # ── events ───────────────────────────────────────────────────────────

    def append_event(self, event: EventRecord) -> None:
        self._check_open()
        if not self._session_path(event.session_id).exists():
            raise SessionNotFoundError(event.session_id)

        line = json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False)
        data = (line + "\n").encode("utf-8")
        with self._session_lock(event.session_id):
            try:
                with open(self._events_path(event.session_id), "ab") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
            except OSError as err:
                raise StorageError(f"write event: {err}") from err

    def get_events(self, session_id: str, from_seq: int) -> list[EventRecord]:
        self._check_open()
        events: list[EventRecord] = []
        with self._session_lock(session_id):
            for line in self._iter_lines(self._events_path(session_id)):
                try:
                    record = EventRecord.from_dict(json.loads(line))
                except _DECODE_ERRORS:
                    continue  # skip corrupt lines
                if record.sequence_number >= from_seq:
                    events.append(record)
        return events

    def get_latest_sequence(self, session_id: str) -> int:
        self._check_open()
        latest = 0
        with self._session_lock(session_id):
            for line in self._iter_lines(self._events_path(session_id)):
                try:
                    data = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(data, dict):
                    continue
                seq = data.get("sequence_number", 0)
                if isinstance(seq, int) and not isinstance(seq, bool) and seq > latest:
                    latest = seq
        return latest

    # ── snapshots ────────────────────────────────────────────────────────

    def save_snapshot(self, snapshot: SnapshotRecord) -> None:
        self._check_open()
        path = self._snapshot_path(snapshot.session_id)
        tmp_path = path.with_name(path.name + ".tmp")
        with self._session_lock(snapshot.session_id):
            self._write_json(tmp_path, snapshot.to_dict())
            try:
                os.replace(tmp_path, path)
            except OSError as err:
                tmp_path.unlink(missing_ok=True)
                raise StorageError(f"rename snapshot: {err}") from err

    def get_latest_snapshot(self, session_id: str) -> SnapshotRecord | None:
        self._check_open()
        path = self._snapshot_path(session_id)
        try:
            return SnapshotRecord.from_dict(self._read_json(path))
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StorageError(f"read snapshot {session_id}: {err}") from err
        except _DECODE_ERRORS as err:
            raise StorageError(f"decode snapshot {session_id}: {err}") from err

    # ── lifecycle ────────────────────────────────────────────────────────

    def close(self) -> None:
        with self._lock:
            self._closed = True