from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.application.repositories.outbox import OutboxRecord
from inbox_service.infrastructure.db.models.outbox import OutboxEventModel, OutboxStatus

_MAX_ERROR_LENGTH = 500
_DUE_STATUSES = (OutboxStatus.PENDING.value, OutboxStatus.FAILED.value)


def _to_record(row: OutboxEventModel) -> OutboxRecord:
    return OutboxRecord(
        id=row.id,
        event_type=row.event_type,
        payload=row.payload,
        attempts=row.attempts,
        conversation_id=row.conversation_id,
    )


class OutboxWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        conversation_id = payload.get("conversation_id")
        self._session.add(OutboxEventModel(
            event_type=event_type,
            conversation_id=conversation_id if isinstance(conversation_id, str) else None,
            payload=payload,
        ))
        await self._session.flush()

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        """Claim due records in id order; concurrent workers skip claimed rows."""
        stmt = (
            select(OutboxEventModel)
            .where(
                OutboxEventModel.status.in_(_DUE_STATUSES),
                OutboxEventModel.next_retry_at.is_(None)
                | (OutboxEventModel.next_retry_at <= func.now()),
            )
            .order_by(OutboxEventModel.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        if not rows:
            return []

        await self._set_status([r.id for r in rows], OutboxStatus.PROCESSING)
        return [_to_record(r) for r in rows]

    async def mark_sent(self, ids: list[int]) -> None:
        await self._set_status(ids, OutboxStatus.SENT)

    async def mark_dead(self, ids: list[int]) -> None:
        await self._set_status(ids, OutboxStatus.DEAD)

    async def mark_failed(
        self, record_id: int, next_retry_at: datetime, error: str | None = None,
    ) -> None:
        await self._session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id == record_id)
            .values(
                status=OutboxStatus.FAILED.value,
                attempts=OutboxEventModel.attempts + 1,
                next_retry_at=next_retry_at,
                last_error=error[:_MAX_ERROR_LENGTH] if error else None,
            )
        )

    async def _set_status(self, ids: list[int], status: OutboxStatus) -> None:
        if not ids:
            return
        await self._session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id.in_(ids))
            .values(status=status.value)
        )
