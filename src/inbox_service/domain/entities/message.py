from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    """A timeline entry.

    ``id`` is the row identity and never changes; ``external_id`` holds the
    gateway identifier, or the placeholder token until the send is confirmed.
    """

    id: UUID
    conversation_id: str
    external_id: str
    direction: str
    kind: str
    content: str | None
    media_ref: str | None
    payload: dict[str, Any] | None
    timestamp_ms: int
    status: str
    quoted_id: str | None
    reaction: str | None
    edited: bool
    sender_name: str | None
    failed_action: str | None
    created_at: datetime


TOMBSTONE_TEXT = "This message was deleted"
