from __future__ import annotations

from inbox_service.application.dto.conversation import ConversationSummaryDTO
from inbox_service.application.exceptions import NotFoundError
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import Message
from inbox_service.services.reconciler import Reconciler
from inbox_service.services.watermark_tracker import UnreadWatermarkTracker


async def list_conversations(
    cursor: str | None,
    limit: int,
    tracker: UnreadWatermarkTracker,
    uow: UnitOfWork,
) -> list[ConversationSummaryDTO]:
    """Active conversations, most recent first, with unread count and preview."""
    conversations = await uow.conversations.list_active(cursor=cursor, limit=limit)
    unread = await tracker.unread_summary(uow)
    return [
        ConversationSummaryDTO(
            conversation=conversation,
            unread=unread.get(conversation.id, 0),
            last_message=await uow.messages.get_last(conversation.id),
        )
        for conversation in conversations
    ]


async def get_conversation(conversation_id: str, uow: UnitOfWork) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def list_messages(
    conversation_id: str,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    # Soft-deleted conversations keep their history readable.
    await get_conversation(conversation_id, uow)
    return await uow.messages.list_messages(conversation_id, cursor=cursor, limit=limit)


async def mark_read(
    conversation_id: str,
    tracker: UnreadWatermarkTracker,
    uow: UnitOfWork,
) -> int:
    await get_conversation(conversation_id, uow)
    return await tracker.mark_read(conversation_id, uow)


async def delete_conversation(
    conversation_id: str,
    reconciler: Reconciler,
    uow: UnitOfWork,
) -> Conversation:
    return await reconciler.soft_delete_conversation(conversation_id, uow)
