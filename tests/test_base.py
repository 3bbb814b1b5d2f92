import json
from datetime import datetime, timedelta, timezone

import pytest

from agentstore.storage.base import (
    Backend,
    EventRecord,
    SessionExistsError,
    SessionNotFoundError,
    SessionRecord,
    SnapshotRecord,
    StorageError,
    StoreClosedError,
)
from agentstore.storage.memory import MemoryBackend

TS = datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)


def test_event_record_round_trip():
    rec = EventRecord("s1", 3, "custom", b'{"seq":3}', TS, b'{"worker":"w1"}')
    data = rec.to_dict()
    assert data["payload"] == {"seq": 3}
    assert data["metadata"] == {"worker": "w1"}
    assert EventRecord.from_dict(data) == rec


def test_event_record_survives_json_text():
    rec = EventRecord("s1", 7, "tool_called", b'{"tool":"search"}', TS, None)
    text = json.dumps(rec.to_dict())
    assert EventRecord.from_dict(json.loads(text)) == rec


def test_event_record_without_metadata():
    rec = EventRecord("s1", 1, "custom", b"{}", TS)
    data = rec.to_dict()
    assert data["metadata"] is None
    assert EventRecord.from_dict(data).metadata is None


def test_timestamp_serialized_in_utc():
    local = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2)))
    rec = EventRecord("s", 1, "custom", b"{}", local)
    text = rec.to_dict()["timestamp"]
    assert text.endswith("Z")
    back = EventRecord.from_dict(rec.to_dict()).timestamp
    assert back == local
    assert back.utcoffset() == timedelta(0)


def test_from_dict_accepts_nanosecond_timestamps():
    data = {
        "session_id": "s",
        "sequence_number": 1,
        "type": "custom",
        "payload": {},
        "timestamp": "2024-01-02T03:04:05.123456789Z",
        "metadata": None,
    }
    rec = EventRecord.from_dict(data)
    assert rec.timestamp == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_session_record_omits_empty_fields():
    rec = SessionRecord(id="ghost")
    data = rec.to_dict()
    assert "name" not in data
    assert "labels" not in data
    assert SessionRecord.from_dict(data) == rec


def test_session_record_round_trip_with_labels():
    rec = SessionRecord(
        id="sess-1",
        name="test-sess-1",
        created_at=TS,
        updated_at=TS + timedelta(seconds=1),
        event_count=42,
        labels={"env": "test"},
    )
    data = json.loads(json.dumps(rec.to_dict()))
    assert data["labels"] == {"env": "test"}
    assert SessionRecord.from_dict(data) == rec


def test_snapshot_record_round_trip():
    rec = SnapshotRecord("snap-1", 10, b'{"tokens":500}', TS, 10)
    data = rec.to_dict()
    assert data["state"] == {"tokens": 500}
    assert SnapshotRecord.from_dict(json.loads(json.dumps(data))) == rec


def test_backend_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Backend()


def test_backend_context_manager_closes():
    with MemoryBackend() as backend:
        backend.save_session(SessionRecord(id="s1"))
        assert backend.get_session("s1").id == "s1"
    with pytest.raises(StoreClosedError):
        backend.get_session("s1")


def test_error_hierarchy_and_messages():
    with pytest.raises(StorageError) as info:
        raise SessionNotFoundError("abc")
    assert "abc" in str(info.value)
    assert info.value.session_id == "abc"
    assert str(SessionExistsError("dup-1")) == "session dup-1 already exists"
    assert str(StoreClosedError()) == "store is closed"