import json

import pytest

from agentstore.event import Event, EventType, Metadata, new_event


def test_new_event_with_raw_json():
    raw = b'{"key":"value","nested":{"n":42}}'
    event = new_event(EventType.CUSTOM, raw)
    assert event.payload == raw


def test_new_event_with_nil_payload():
    event = new_event(EventType.CUSTOM, None)
    assert event.payload == b"{}"


def test_new_event_marshals_dict():
    event = new_event(EventType.USER_MESSAGE, {"content": "Find flights to Munich"})
    assert json.loads(event.payload) == {"content": "Find flights to Munich"}
    assert event.type == EventType.USER_MESSAGE
    assert event.sequence_number == 0
    assert event.timestamp is None


def test_new_event_marshals_string():
    event = new_event(EventType.USER_MESSAGE, "hello")
    assert event.payload == b'"hello"'


def test_new_event_rejects_unserializable_payload():
    with pytest.raises(TypeError):
        new_event(EventType.CUSTOM, object())


def test_event_is_llm_event():
    assert new_event(EventType.LLM_REQUEST, None).is_llm_event()
    assert new_event(EventType.LLM_RESPONSE, None).is_llm_event()
    assert not new_event(EventType.TOOL_CALLED, None).is_llm_event()


def test_event_is_tool_event():
    assert new_event(EventType.TOOL_CALLED, None).is_tool_event()
    assert new_event(EventType.TOOL_RESULT, None).is_tool_event()
    assert not new_event(EventType.LLM_RESPONSE, None).is_tool_event()


def test_plain_string_types_are_classified():
    assert Event(type="llm_request").is_llm_event()
    assert Event(type="tool_result").is_tool_event()
    assert not Event(type="my_custom").is_llm_event()


def test_event_type_from_string():
    assert EventType("tool_called") is EventType.TOOL_CALLED
    assert str(EventType.USER_MESSAGE) == "user_message"


def test_with_metadata_returns_same_event():
    event = new_event(EventType.LLM_RESPONSE, {"content": "Here are three flights..."})
    meta = Metadata(model="gpt-4", tokens_in=1200, tokens_out=450, cost_usd=0.02, duration_ms=1550)
    assert event.with_metadata(meta) is event
    assert event.metadata.model == "gpt-4"
    assert event.metadata.tokens_in == 1200
    assert event.metadata.cost_usd == 0.02


def test_metadata_to_dict_omits_empty_fields():
    meta = Metadata(model="gpt-4", tokens_in=1200)
    assert meta.to_dict() == {"model": "gpt-4", "tokens_in": 1200}
    assert Metadata().to_dict() == {}


def test_metadata_round_trip():
    meta = Metadata(
        worker_id="w1",
        tokens_in=500,
        tokens_out=200,
        model="gpt-4",
        tool_name="search_flights",
        duration_ms=1200,
        cost_usd=0.015,
        extra={"env": "demo"},
    )
    data = json.loads(json.dumps(meta.to_dict()))
    assert Metadata.from_dict(data) == meta


def test_metadata_from_empty():
    assert Metadata.from_dict(None) == Metadata()
    assert Metadata.from_dict({}) == Metadata()