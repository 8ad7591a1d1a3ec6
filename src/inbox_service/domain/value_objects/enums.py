from __future__ import annotations

from enum import StrEnum


class Direction(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    POLL = "poll"


MEDIA_KINDS = frozenset(
    {
        MessageKind.IMAGE,
        MessageKind.AUDIO,
        MessageKind.VIDEO,
        MessageKind.DOCUMENT,
        MessageKind.STICKER,
    }
)


class MessageStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ERROR = "error"
    DELETED = "deleted"


class MutationAction(StrEnum):
    EDIT = "edit"
    DELETE = "delete"
    REACT = "react"


class PendingSendStatus(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"
    ERROR = "error"


class ReconciliationOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class CommandAction(StrEnum):
    SEND_TEXT = "send_text"
    SEND_MEDIA = "send_media"
    SEND_AUDIO = "send_audio"
    SEND_LOCATION = "send_location"
    SEND_POLL = "send_poll"
    REACT = "react"
    DELETE = "delete"
    EDIT = "edit"
    FORWARD = "forward"
    REPLY = "reply"
