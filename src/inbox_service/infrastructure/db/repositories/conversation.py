from __future__ import annotations

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.domain.entities.conversation import Conversation
from inbox_service.infrastructure.db.mappers import conversation as mapper
from inbox_service.infrastructure.db.models.conversation import ConversationModel
from inbox_service.application.pagination import decode_cursor


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_active(
        self,
        *,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Conversation]:
        activity = func.coalesce(ConversationModel.last_activity_ms, 0)
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.deleted.is_(False))
            .order_by(activity.desc(), ConversationModel.id)
            .limit(limit)
        )
        if cursor:
            position, cid = decode_cursor(cursor)
            stmt = stmt.where(
                (activity < position)
                | ((activity == position) & (ConversationModel.id > cid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        model = mapper.entity_to_model(conversation)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def update(self, conversation: Conversation) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation.id)
            .values(
                display_name=conversation.display_name,
                avatar_ref=conversation.avatar_ref,
                last_activity_ms=conversation.last_activity_ms,
                deleted=conversation.deleted,
                updated_at=conversation.updated_at,
            )
        )
        await self._session.execute(stmt)

    async def lock(self, conversation_id: str) -> None:
        # Held until the surrounding transaction commits or rolls back.
        await self._session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": conversation_id},
        )
