from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from inbox_service.domain.entities.message import Message


class MessageResponse(BaseModel):
    """``id`` is the gateway id (or placeholder token); ``row_id`` never changes."""

    id: str
    row_id: UUID
    conversation_id: str
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

    @classmethod
    def from_entity(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.external_id,
            row_id=message.id,
            conversation_id=message.conversation_id,
            direction=message.direction,
            kind=message.kind,
            content=message.content,
            media_ref=message.media_ref,
            payload=message.payload,
            timestamp_ms=message.timestamp_ms,
            status=message.status,
            quoted_id=message.quoted_id,
            reaction=message.reaction,
            edited=message.edited,
            sender_name=message.sender_name,
            failed_action=message.failed_action,
        )


class SendTextRequest(BaseModel):
    text: str = Field(min_length=1, max_length=65536)


class ReplyRequest(SendTextRequest):
    quoted_id: str = Field(min_length=1)


class SendMediaRequest(BaseModel):
    media_ref: str = Field(min_length=1)
    kind: Literal["image", "video", "document", "sticker"] = "image"
    caption: str | None = None
    mimetype: str | None = None
    file_name: str | None = None


class SendAudioRequest(BaseModel):
    audio_b64: str | None = None
    media_ref: str | None = None


class SendLocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    name: str | None = None


class SendPollRequest(BaseModel):
    title: str = Field(min_length=1)
    options: list[str] = Field(min_length=2, max_length=12)
    selectable_count: int = Field(1, ge=0)


class ReactionRequest(BaseModel):
    # Empty string removes the reaction.
    emoji: str = Field("", max_length=16)


class EditRequest(BaseModel):
    text: str = Field(min_length=1, max_length=65536)


class ForwardRequest(BaseModel):
    target: str = Field(min_length=1)
