from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from inbox_service.api.v1.schemas.message import MessageResponse
from inbox_service.application.dto.conversation import ConversationSummaryDTO


class ConversationResponse(BaseModel):
    id: str
    display_name: str | None
    avatar_ref: str | None
    last_activity_ms: int | None
    deleted: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummaryResponse(ConversationResponse):
    unread: int
    last_message: MessageResponse | None

    @classmethod
    def from_dto(cls, dto: ConversationSummaryDTO) -> ConversationSummaryResponse:
        conv = dto.conversation
        return cls(
            id=conv.id,
            display_name=conv.display_name,
            avatar_ref=conv.avatar_ref,
            last_activity_ms=conv.last_activity_ms,
            deleted=conv.deleted,
            created_at=conv.created_at,
            updated_at=conv.updated_at,
            unread=dto.unread,
            last_message=MessageResponse.from_entity(dto.last_message) if dto.last_message else None,
        )


class MarkReadResponse(BaseModel):
    conversation_id: str
    watermark_ms: int
    unread: int
