import json
from datetime import datetime, timedelta, timezone

import pytest

from agentstore.event import Event, EventType, Metadata, new_event
from agentstore.state import (
    State,
    TokenUsage,
    apply_events,
    default_reducer,
    new_state,
)

_BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _event(event_type, payload=None, seq=1, metadata=None):
    event = new_event(event_type, payload)
    event.sequence_number = seq
    event.timestamp = _BASE + timedelta(seconds=seq)
    if metadata is not None:
        event.with_metadata(metadata)
    return event


def _events(specs):
    return [_event(t, p, seq=i, metadata=m) for i, (t, p, m) in enumerate(specs, start=1)]


def test_new_state_is_empty():
    state = new_state("s-1")
    assert state.session_id == "s-1"
    assert state.event_count == 0
    assert state.version == 0
    assert state.data == {}
    assert state.tokens == TokenUsage()


def test_token_accumulation():
    specs = [
        (EventType.USER_MESSAGE, {"data": "test"}, Metadata()),
        (EventType.LLM_REQUEST, {"data": "test"}, Metadata(tokens_in=500, model="gpt-4")),
        (EventType.LLM_RESPONSE, {"data": "test"}, Metadata(tokens_out=200, cost_usd=0.01, model="gpt-4")),
        (EventType.TOOL_CALLED, {"data": "test"}, Metadata(tool_name="search_flights")),
        (EventType.TOOL_RESULT, {"data": "test"}, Metadata(duration_ms=1200)),
        (EventType.LLM_REQUEST, {"data": "test"}, Metadata(tokens_in=800, model="gpt-4")),
        (EventType.LLM_RESPONSE, {"data": "test"}, Metadata(tokens_out=300, cost_usd=0.015, model="gpt-4")),
    ]
    state = apply_events(new_state("s"), _events(specs), default_reducer)
    assert state.event_count == 7
    assert state.tokens.tokens_in == 1300
    assert state.tokens.tokens_out == 500
    assert state.tokens.cost_usd == pytest.approx(0.025)
    assert state.tool_calls == 1


def test_tokens_ignored_on_non_llm_events():
    event = _event(EventType.TOOL_CALLED, metadata=Metadata(tokens_in=50, cost_usd=1.0))
    state = default_reducer(new_state("s"), event)
    assert state.tokens == TokenUsage()


def test_errors_counted():
    specs = [
        (EventType.ERROR, {"error": "timeout"}, None),
        (EventType.ERROR, {"error": "rate_limit"}, None),
    ]
    state = apply_events(new_state("s"), _events(specs), default_reducer)
    assert state.errors == 2
    assert state.data["error"] == {"error": "rate_limit"}


def test_version_and_last_event_time_follow_last_event():
    events = [_event(EventType.CUSTOM, None, seq=i) for i in range(1, 6)]
    state = apply_events(new_state("s"), events, default_reducer)
    assert state.version == 5
    assert state.event_count == 5
    assert state.last_event_at == events[-1].timestamp


def test_data_keeps_latest_payload_per_type():
    specs = [
        (EventType.USER_MESSAGE, {"content": "first"}, None),
        (EventType.PLAN_CREATED, {"steps": ["a", "b"]}, None),
        (EventType.USER_MESSAGE, {"content": "second"}, None),
    ]
    state = apply_events(new_state("s"), _events(specs), default_reducer)
    assert state.data == {
        "user_message": {"content": "second"},
        "plan_created": {"steps": ["a", "b"]},
    }


def test_custom_string_type_is_keyed_by_its_name():
    state = default_reducer(new_state("s"), _event("my_type", [1, 2]))
    assert state.data["my_type"] == [1, 2]


def test_invalid_payload_is_not_stored_but_counted():
    event = Event(type=EventType.CUSTOM, payload=b"not json", sequence_number=1)
    state = default_reducer(new_state("s"), event)
    assert "custom" not in state.data
    assert state.event_count == 1


def test_reducer_mutates_and_returns_same_state():
    state = new_state("s")
    result = default_reducer(state, _event(EventType.CUSTOM))
    assert result is state
    assert state.event_count == 1


def test_apply_events_with_no_events_returns_state_unchanged():
    state = new_state("s")
    assert apply_events(state, [], default_reducer) == new_state("s")


def test_apply_events_with_custom_reducer():
    def count_user_messages(state, event):
        state.version = event.sequence_number
        state.event_count += 1
        if event.type == EventType.USER_MESSAGE:
            state.data["user_message_count"] = state.data.get("user_message_count", 0.0) + 1
        return state

    specs = [
        (EventType.USER_MESSAGE, None, None),
        (EventType.TOOL_CALLED, None, None),
        (EventType.USER_MESSAGE, None, None),
    ]
    state = apply_events(new_state("s"), _events(specs), count_user_messages)
    assert state.data["user_message_count"] == 2
    assert state.tool_calls == 0


def test_state_round_trips_through_json():
    specs = [
        (EventType.LLM_RESPONSE, {"content": "hi"}, Metadata(tokens_in=10, tokens_out=5, cost_usd=0.001)),
        (EventType.TOOL_CALLED, {"tool": "search"}, None),
        (EventType.ERROR, {"error": "boom"}, None),
    ]
    state = apply_events(new_state("s"), _events(specs), default_reducer)
    restored = State.from_dict(json.loads(json.dumps(state.to_dict())))
    assert restored == state


def test_to_dict_uses_wire_field_names():
    data = new_state("s").to_dict()
    assert set(data) == {
        "session_id", "version", "data", "last_event_at",
        "event_count", "tokens", "tool_calls", "errors",
    }
    assert set(data["tokens"]) == {"in", "out", "cost_usd"}


def test_from_dict_fills_missing_fields_with_defaults():
    state = State.from_dict({"session_id": "s"})
    assert state == new_state("s")


def test_token_usage_round_trip():
    usage = TokenUsage(tokens_in=3, tokens_out=4, cost_usd=0.5)
    assert TokenUsage.from_dict(usage.to_dict()) == usage
    assert TokenUsage.from_dict(None) == TokenUsage()