"""Fan-out event types and their JSON payloads."""
from __future__ import annotations

from typing import Any

from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import Message
from inbox_service.domain.entities.pending_send import PendingSend

MESSAGE_UPSERTED = "inbox.message_upserted"
CONVERSATION_UPDATED = "inbox.conversation_updated"
READ_STATE = "inbox.read_state"
SEND_STALE = "inbox.send_stale"


def message_data(message: Message, *, placeholder_token: str | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "conversation_id": message.conversation_id,
        "message": {
            "row_id": str(message.id),
            "id": message.external_id,
            "conversation_id": message.conversation_id,
            "direction": message.direction,
            "kind": message.kind,
            "content": message.content,
            "media_ref": message.media_ref,
            "payload": message.payload,
            "timestamp_ms": message.timestamp_ms,
            "status": message.status,
            "quoted_id": message.quoted_id,
            "reaction": message.reaction,
            "edited": message.edited,
            "sender_name": message.sender_name,
            "failed_action": message.failed_action,
        },
    }
    if placeholder_token is not None:
        # Lets clients swap the optimistic bubble they rendered for this one.
        data["replaces"] = placeholder_token
    return data


def conversation_data(conversation: Conversation) -> dict[str, Any]:
    return {
        "conversation_id": conversation.id,
        "display_name": conversation.display_name,
        "avatar_ref": conversation.avatar_ref,
        "last_activity_ms": conversation.last_activity_ms,
        "deleted": conversation.deleted,
    }


def pending_data(pending: PendingSend) -> dict[str, Any]:
    return {
        "conversation_id": pending.conversation_id,
        "token": pending.token,
        "kind": pending.kind,
        "content": pending.content,
        "created_at_ms": pending.created_at_ms,
        "command": pending.command,
    }
