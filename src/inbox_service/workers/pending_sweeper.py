"""Surfaces sends the gateway never confirmed, so none disappears silently."""
from __future__ import annotations

import asyncio
import logging

from inbox_service.application.dto import events
from inbox_service.application.uow import UnitOfWork
from inbox_service.bootstrap import build_engine
from inbox_service.config import settings
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW
from inbox_service.services.pending_registry import PendingSendRegistry

logger = logging.getLogger(__name__)


async def sweep_once(registry: PendingSendRegistry, uow: UnitOfWork) -> int:
    """Emit one ``inbox.send_stale`` event per newly stale send and mark it surfaced."""
    stale = await registry.list_stale(uow)
    if not stale:
        return 0
    for pending in stale:
        logger.warning(
            "Send %s to %s unconfirmed since %d",
            pending.token, pending.conversation_id, pending.created_at_ms,
        )
        await uow.outbox.add(events.SEND_STALE, events.pending_data(pending))
    await registry.mark_surfaced([p.token for p in stale], uow)
    await uow.commit()
    return len(stale)


async def run_sweeper() -> None:
    engine = build_engine(settings)
    logger.info(
        "Pending sweeper started (interval=%.1fs, stale_after=%ds)",
        settings.PENDING_SWEEP_INTERVAL,
        settings.PENDING_STALE_SECONDS,
    )
    while True:
        try:
            async with AsyncSessionLocal() as session:
                await sweep_once(engine.registry, SqlAlchemyUoW(session))
        except Exception:
            logger.exception("Pending sweeper loop error")
        await asyncio.sleep(settings.PENDING_SWEEP_INTERVAL)


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_sweeper())


if __name__ == "__main__":
    main()
