from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.domain.value_objects.enums import PendingSendStatus
from inbox_service.infrastructure.db.mappers import pending_send as mapper
from inbox_service.infrastructure.db.models.pending_send import PendingSendModel


class PendingSendReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, token: str) -> PendingSend | None:
        stmt = (
            select(PendingSendModel)
            .where(PendingSendModel.token == token)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def oldest_unresolved(
        self,
        conversation_id: str,
        *,
        created_after_ms: int,
        kind: str | None = None,
        content: str | None = None,
    ) -> PendingSend | None:
        stmt = select(PendingSendModel).where(
            PendingSendModel.conversation_id == conversation_id,
            PendingSendModel.status == PendingSendStatus.PENDING,
            PendingSendModel.created_at_ms >= created_after_ms,
        )
        if kind is not None:
            stmt = stmt.where(PendingSendModel.kind == kind)
        if content is not None:
            stmt = stmt.where(PendingSendModel.content == content)
        stmt = stmt.order_by(PendingSendModel.created_at_ms.asc()).limit(1)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_stale(
        self, created_before_ms: int, *, include_surfaced: bool = False
    ) -> list[PendingSend]:
        stmt = select(PendingSendModel).where(
            PendingSendModel.status == PendingSendStatus.PENDING,
            PendingSendModel.created_at_ms < created_before_ms,
        )
        if not include_surfaced:
            stmt = stmt.where(PendingSendModel.surfaced_at_ms.is_(None))
        stmt = stmt.order_by(PendingSendModel.created_at_ms.asc())
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class PendingSendWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, pending: PendingSend) -> None:
        self._session.add(mapper.entity_to_model(pending))
        await self._session.flush()

    async def mark_resolved(self, token: str, external_id: str) -> None:
        stmt = (
            update(PendingSendModel)
            .where(PendingSendModel.token == token)
            .values(status=PendingSendStatus.RESOLVED, external_id=external_id)
        )
        await self._session.execute(stmt)

    async def mark_failed(self, token: str) -> None:
        stmt = (
            update(PendingSendModel)
            .where(PendingSendModel.token == token)
            .values(status=PendingSendStatus.ERROR)
        )
        await self._session.execute(stmt)

    async def mark_surfaced(self, tokens: list[str], at_ms: int) -> None:
        stmt = (
            update(PendingSendModel)
            .where(PendingSendModel.token.in_(tokens))
            .values(surfaced_at_ms=at_ms)
        )
        await self._session.execute(stmt)
