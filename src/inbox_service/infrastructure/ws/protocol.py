"""Frames exchanged on /ws/inbox.

Clients send ``ping`` and ``mark_read``; the server pushes the fan-out event
types from application.dto.events plus ``pong`` and ``error``.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

PONG = "pong"
ERROR = "error"


class ClientFrame(BaseModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class MarkReadData(BaseModel):
    conversation_id: str = Field(min_length=1)


class ServerFrame(BaseModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


def encode(event_type: str, data: dict[str, Any]) -> str:
    return ServerFrame(type=event_type, data=data).model_dump_json()
