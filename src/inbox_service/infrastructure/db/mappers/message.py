from __future__ import annotations

from typing import Any

from inbox_service.domain.entities.message import Message
from inbox_service.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        external_id=model.external_id,
        direction=model.direction,
        kind=model.kind,
        content=model.content,
        media_ref=model.media_ref,
        payload=model.payload,
        timestamp_ms=model.timestamp_ms,
        status=model.status,
        quoted_id=model.quoted_id,
        reaction=model.reaction,
        edited=model.edited,
        sender_name=model.sender_name,
        failed_action=model.failed_action,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict[str, Any]:
    """Column values for INSERT/UPDATE statements."""
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "external_id": entity.external_id,
        "direction": entity.direction,
        "kind": entity.kind,
        "content": entity.content,
        "media_ref": entity.media_ref,
        "payload": entity.payload,
        "timestamp_ms": entity.timestamp_ms,
        "status": entity.status,
        "quoted_id": entity.quoted_id,
        "reaction": entity.reaction,
        "edited": entity.edited,
        "sender_name": entity.sender_name,
        "failed_action": entity.failed_action,
        "created_at": entity.created_at,
    }
