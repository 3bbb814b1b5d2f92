"""Append-only event store for AI agent sessions, with replay, snapshots and materialized state."""

__version__ = "0.1.0"