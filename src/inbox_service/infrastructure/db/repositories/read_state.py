from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.infrastructure.db.models.read_state import ReadWatermarkModel


class ReadStateReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_watermark(self, conversation_id: str) -> int | None:
        stmt = select(ReadWatermarkModel.watermark_ms).where(
            ReadWatermarkModel.conversation_id == conversation_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class ReadStateWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def advance_watermark(self, conversation_id: str, watermark_ms: int) -> int:
        stmt = pg_insert(ReadWatermarkModel).values(
            conversation_id=conversation_id,
            watermark_ms=watermark_ms,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ReadWatermarkModel.conversation_id],
            set_={
                # Never moves backwards.
                "watermark_ms": func.greatest(
                    ReadWatermarkModel.watermark_ms, stmt.excluded.watermark_ms,
                ),
                "updated_at": func.now(),
            },
        ).returning(ReadWatermarkModel.watermark_ms)
        result = await self._session.execute(stmt)
        return result.scalar_one()
