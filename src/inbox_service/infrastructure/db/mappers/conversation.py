from __future__ import annotations

from inbox_service.domain.entities.conversation import Conversation
from inbox_service.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        display_name=model.display_name,
        avatar_ref=model.avatar_ref,
        last_activity_ms=model.last_activity_ms,
        deleted=model.deleted,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_model(entity: Conversation) -> ConversationModel:
    return ConversationModel(
        id=entity.id,
        display_name=entity.display_name,
        avatar_ref=entity.avatar_ref,
        last_activity_ms=entity.last_activity_ms,
        deleted=entity.deleted,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )
