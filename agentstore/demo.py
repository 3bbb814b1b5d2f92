"""A small flight-search agent run that records, replays and summarizes a session."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence, TextIO

from .event import EventType, Metadata, new_event
from .state import State
from .store import Store

DEFAULT_DATA_DIR = "./agent-data"

_log = logging.getLogger(__name__)


def _print(out: TextIO, text: str = "") -> None:
    out.write(text + "\n")


def run_demo(store: Store, out: TextIO) -> State:
    """Record a sample agent session in the store, print its replay and state, and return the state."""
    session = store.create_session(
        name="flight-search",
        labels={"agent": "travel", "env": "demo"},
    )
    _print(out, f"Session created: {session.id}\n")

    steps = [
        (
            EventType.USER_MESSAGE,
            {"content": "Find flights from Berlin to Munich for next Friday"},
            None,
        ),
        (
            EventType.PLAN_CREATED,
            {"steps": ["search_flights", "filter_results", "present_options"]},
            None,
        ),
        (
            EventType.TOOL_CALLED,
            {
                "tool": "search_flights",
                "args": '{"from":"BER","to":"MUC","date":"2026-03-13"}',
            },
            Metadata(tool_name="search_flights"),
        ),
        (
            EventType.TOOL_RESULT,
            {
                "flights": [
                    {"airline": "Lufthansa", "flight": "LH1234", "price": "€89"},
                    {"airline": "EuroWings", "flight": "EW456", "price": "€65"},
                ]
            },
            Metadata(tool_name="search_flights", duration_ms=1200),
        ),
        (
            EventType.LLM_REQUEST,
            {"prompt": "Given these flights, recommend the best option..."},
            Metadata(model="gpt-4", tokens_in=850),
        ),
        (
            EventType.LLM_RESPONSE,
            {"content": "I found 2 flights. The EuroWings EW456 at €65 is the best value."},
            Metadata(model="gpt-4", tokens_out=320, cost_usd=0.018),
        ),
    ]
    for event_type, payload, metadata in steps:
        event = new_event(event_type, payload)
        if metadata is not None:
            event.with_metadata(metadata)
        store.append(session.id, event)

    _print(out, "=== Full Session Replay ===")
    for ev in store.replay(session.id):
        try:
            payload = json.loads(ev.payload)
        except ValueError as err:
            _log.warning("unmarshal payload: %s", err)
            payload = None
        _print(out, f"  [{ev.sequence_number}] {str(ev.type):<16} {payload}")

    _print(out, "\n=== Tool Events Only ===")
    tool_events = store.replay(
        session.id, types=[EventType.TOOL_CALLED, EventType.TOOL_RESULT]
    )
    for ev in tool_events:
        _print(
            out,
            f"  [{ev.sequence_number}] {str(ev.type):<16} "
            f"tool={ev.metadata.tool_name} duration={ev.metadata.duration_ms}ms",
        )

    _print(out, "\n=== Session State ===")
    state = store.get_state(session.id)
    _print(out, f"  Events:     {state.event_count}")
    _print(out, f"  Tokens in:  {state.tokens.tokens_in}")
    _print(out, f"  Tokens out: {state.tokens.tokens_out}")
    _print(out, f"  Cost:       ${state.tokens.cost_usd:.3f}")
    _print(out, f"  Tool calls: {state.tool_calls}")
    _print(out, f"  Errors:     {state.errors}")
    return state


def main(argv: Sequence[str] | None = None) -> int:
    """Run the demo against a persistent store (or an in-memory one)."""
    parser = argparse.ArgumentParser(
        prog="agentstore-demo",
        description="Record a sample agent session and show its replay and state.",
    )
    parser.add_argument(
        "data_dir",
        nargs="?",
        default=DEFAULT_DATA_DIR,
        help=f"directory for persistent data (default: {DEFAULT_DATA_DIR})",
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="keep data in memory only",
    )
    args = parser.parse_args(argv)

    out = sys.stdout
    with Store(args.data_dir, in_memory=args.in_memory) as store:
        run_demo(store, out)

    if not args.in_memory:
        _print(out, f"\nData persisted to {args.data_dir}/")
        _print(out, "Run 'agentstore sessions' or 'agentstore replay <id>' to inspect.")
    return 0


if __name__ == "__main__":
    sys.exit(main())