"""Canonical events produced by the gateway normalizer and the dispatcher."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class MessageEvent:
    conversation_id: str
    external_id: str
    from_me: bool
    timestamp_ms: int
    kind: str
    content: str | None
    media_ref: str | None = None
    payload: dict[str, Any] | None = None
    sender_name: str | None = None
    status: str | None = None
    quoted_id: str | None = None
    # Only set by the command dispatcher, which knows which send it confirms.
    placeholder_token: str | None = None


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    external_id: str
    status: str
    conversation_id: str | None = None


@dataclass(frozen=True, slots=True)
class MessageMutation:
    """Edit, delete or reaction targeting an existing message."""

    conversation_id: str
    target_id: str
    action: str
    value: str | None = None
    from_me: bool = False


@dataclass(frozen=True, slots=True)
class ProfileUpdate:
    conversation_id: str
    display_name: str | None = None
    avatar_ref: str | None = None


NormalizedEvent = Union[MessageEvent, StatusUpdate, MessageMutation, ProfileUpdate]
