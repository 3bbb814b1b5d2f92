"""Agent sessions and session ID generation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class Session:
    """A logical agent instance; every event belongs to one."""

    id: str
    created_at: datetime
    updated_at: datetime
    name: str = ""
    event_count: int = 0
    labels: dict[str, str] | None = None


def new_id() -> str:
    """Return a random version-4 UUID string."""
    return str(uuid.uuid4())


def new_session(
    session_id: str | None = None,
    name: str = "",
    labels: dict[str, str] | None = None,
) -> Session:
    """Create a session stamped with the current UTC time; a random ID is used unless one is given."""
    now = datetime.now(timezone.utc)
    return Session(
        id=new_id() if session_id is None else session_id,
        created_at=now,
        updated_at=now,
        name=name,
        labels=None if labels is None else dict(labels),
    )