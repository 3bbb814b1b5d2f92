# agentstore

An append-only event store for AI agent sessions. Every user message, plan,
tool call, LLM request and response, state update and error is recorded as an
event in a session's log. From that log you can:

- replay the whole session, or only certain event types or a time window;
- rebuild a materialized state (event count, token usage and cost, tool calls,
  errors, the latest decoded payload of each event type), sped up by periodic
  snapshots;
- plug in your own reducer to build domain-specific state.

Storage is either in memory (for tests and short-lived sessions) or on disk as
plain, human-readable files. The package has no dependencies outside the
standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

```python
from agentstore.event import EventType, Metadata, new_event
from agentstore.store import Store

with Store("./agent-data", snapshot_interval=100) as store:
    session = store.create_session(name="flight-search", labels={"agent": "travel"})

    store.append(session.id, new_event(EventType.USER_MESSAGE,
                                       {"content": "Find flights from Berlin to Munich"}))

    call = new_event(EventType.TOOL_CALLED, {"tool": "search_flights"})
    call.with_metadata(Metadata(tool_name="search_flights"))
    store.append(session.id, call)

    reply = new_event(EventType.LLM_RESPONSE, {"content": "EW456 is the best value."})
    reply.with_metadata(Metadata(model="gpt-4", tokens_out=320, cost_usd=0.018))
    store.append(session.id, reply)

    for event in store.replay(session.id):
        print(event.sequence_number, event.type, event.payload)

    tool_events = store.replay(session.id,
                               types=[EventType.TOOL_CALLED, EventType.TOOL_RESULT])

    state = store.get_state(session.id)
    print(state.event_count, state.tool_calls, state.tokens.tokens_out)
```

### Store

`agentstore.store.Store(data_dir=None, *, reducer=None, snapshot_interval=100, in_memory=False)`

- With a data directory the store keeps its data on disk; with no directory
  (or an empty one) or with `in_memory=True` it keeps everything in memory.
- `create_session(*, session_id=None, name="", labels=None)` starts a session;
  a random UUID is used unless an ID is given.
- `get_session(session_id)` returns a `Session` with its `event_count` and
  `updated_at` kept current by `append`.
- `list_sessions(*, limit=100, offset=0, label=None)` returns sessions newest
  first. `label` is a `(key, value)` pair; it filters the page that `limit` and
  `offset` selected, so a filtered page may hold fewer than `limit` sessions.
- `append(session_id, event)` assigns the event's session ID, sequence number
  (starting at 1, one higher than the last in the session) and UTC timestamp,
  then stores it. Appends are serialized, so sequence numbers stay unique and
  gap-free even when several threads append at once.
- `get_events(session_id, from_seq=0)` returns events with a sequence number of
  at least `from_seq`, in order.
- `replay(session_id, *, types=None, time_from=None, time_to=None)` returns all
  events, optionally limited to some types and to an inclusive time range.
- `get_state(session_id)` rebuilds the state from the latest snapshot plus the
  events after it.
- `close()` closes the store; the store is also a context manager.

Every `snapshot_interval` events (0 turns this off) the store saves a snapshot
of the current state. A failed snapshot never fails the append.

### Events

`agentstore.event.new_event(event_type, payload=None)` builds an `Event`.
Bytes are taken as raw JSON, `None` becomes `{}`, and anything else is encoded
as JSON. `EventType` lists the built-in types (`USER_MESSAGE`, `PLAN_CREATED`,
`TOOL_CALLED`, `TOOL_RESULT`, `LLM_REQUEST`, `LLM_RESPONSE`, `STATE_UPDATED`,
`ERROR`, `CUSTOM`); any other string is accepted as a type too.
`Event.is_llm_event()` and `Event.is_tool_event()` classify an event, and
`Event.with_metadata(metadata)` attaches a `Metadata` (worker ID, token counts,
model, tool name, duration, cost, extra key-value pairs).

### State and reducers

`agentstore.state.default_reducer` counts events, tool calls and errors, sums
tokens and cost over LLM events, and keeps the latest decoded payload of each
event type in `State.data`, keyed by the type name. A custom reducer is any
callable `(State, Event) -> State` passed as `Store(reducer=...)`.
`apply_events(state, events, reducer)` folds events onto a state directly.

### Storage backends

`agentstore.storage.memory.MemoryBackend` and
`agentstore.storage.file.FileBackend(directory)` both implement
`agentstore.storage.base.Backend` and can be used on their own. The file
backend lays out its directory as:

```
sessions/<session_id>.json    one JSON document per session
events/<session_id>.jsonl     append-only event log, one JSON object per line
snapshots/<session_id>.json   latest snapshot, replaced atomically
```

Every write is fsynced. Corrupt event lines and unreadable session files are
skipped when reading.

### Errors

All storage errors derive from `agentstore.storage.base.StorageError`:
`SessionNotFoundError`, `SessionExistsError` and `StoreClosedError` (raised by
any operation after `close()`). `agentstore.store.StoreError` is raised when a
data directory cannot be opened or a snapshot cannot be decoded.

## Demo

A sample flight-search session can be recorded, replayed and summarized with:

```
agentstore-demo                 # writes to ./agent-data
agentstore-demo path/to/dir     # writes to another directory
agentstore-demo --in-memory     # keeps nothing on disk
```

## What it does not do

There is no command for inspecting stored data: no way to list sessions or
replay a session from the shell. Use the `Store` API from Python, or read the
JSON files in the data directory directly. Sessions and events cannot be
deleted through the API.