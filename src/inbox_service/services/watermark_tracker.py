from __future__ import annotations

import logging

from inbox_service.application.dto import events
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


class UnreadWatermarkTracker:
    """Owns read watermarks; unread counts are derived, never stored."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    async def mark_read(self, conversation_id: str, uow: UnitOfWork) -> int:
        """Advance the watermark to now and return the stored value.

        The watermark never moves backwards. Messages stamped ahead of the
        clock stay unread until the clock passes them.
        """
        now = self._clock.now_ms()
        last = await uow.messages.get_last(conversation_id)
        if last is not None and last.timestamp_ms > now:
            logger.warning(
                "Conversation %s has message %s stamped %dms ahead of the clock",
                conversation_id, last.external_id, last.timestamp_ms - now,
            )
        stored = await uow.read_state_w.advance_watermark(conversation_id, now)
        unread = await uow.messages.count_unread(conversation_id, stored)
        await uow.outbox.add(
            events.READ_STATE,
            {"conversation_id": conversation_id, "watermark_ms": stored, "unread": unread},
        )
        await uow.commit()
        logger.debug("Conversation %s read up to %s", conversation_id, stored)
        return stored

    async def unread_count(self, conversation_id: str, uow: UnitOfWork) -> int:
        conversation = await uow.conversations.get_by_id(conversation_id)
        if conversation is None or conversation.deleted:
            return 0
        watermark = await uow.read_state.get_watermark(conversation_id)
        return await uow.messages.count_unread(conversation_id, watermark or 0)

    async def unread_summary(self, uow: UnitOfWork) -> dict[str, int]:
        return await uow.messages.unread_counts()
