from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.enums import Direction, MessageStatus
from inbox_service.infrastructure.db.mappers import message as mapper
from inbox_service.infrastructure.db.models.conversation import ConversationModel
from inbox_service.infrastructure.db.models.message import MessageModel
from inbox_service.infrastructure.db.models.read_state import ReadWatermarkModel
from inbox_service.application.pagination import decode_cursor


def _unread_filter():
    return (
        MessageModel.direction == Direction.INBOUND,
        MessageModel.status != MessageStatus.DELETED,
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest page first; the cursor points at the oldest row already seen.

        Rows of a page are returned in chronological order.
        """
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.timestamp_ms.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if cursor:
            position, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.timestamp_ms < position)
                | ((MessageModel.timestamp_ms == position) & (MessageModel.id < UUID(mid)))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in reversed(result.scalars().all())]

    async def get_by_external_id(
        self, conversation_id: str, external_id: str
    ) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.external_id == external_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def find_by_external_id(self, external_id: str) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.external_id == external_id)
            .order_by(MessageModel.timestamp_ms.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_last(self, conversation_id: str) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.timestamp_ms.desc(), MessageModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def count_unread(self, conversation_id: str, after_ms: int) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.timestamp_ms > after_ms,
            *_unread_filter(),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def unread_counts(self) -> dict[str, int]:
        stmt = (
            select(MessageModel.conversation_id, func.count())
            .join(ConversationModel, ConversationModel.id == MessageModel.conversation_id)
            .outerjoin(
                ReadWatermarkModel,
                ReadWatermarkModel.conversation_id == MessageModel.conversation_id,
            )
            .where(
                ConversationModel.deleted.is_(False),
                MessageModel.timestamp_ms > func.coalesce(ReadWatermarkModel.watermark_ms, 0),
                *_unread_filter(),
            )
            .group_by(MessageModel.conversation_id)
        )
        result = await self._session.execute(stmt)
        return {conversation_id: count for conversation_id, count in result.all()}


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_external")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: fetch existing
        existing = await MessageReaderRepo(self._session).get_by_external_id(
            message.conversation_id, message.external_id,
        )
        assert existing is not None
        return existing, False

    async def update(self, message: Message) -> None:
        values = mapper.entity_to_values(message)
        del values["id"], values["created_at"]
        stmt = update(MessageModel).where(MessageModel.id == message.id).values(**values)
        await self._session.execute(stmt)
