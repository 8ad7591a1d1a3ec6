"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from inbox_service.application.ports.bus import EventPublisher
from inbox_service.application.uow import UnitOfWork
from inbox_service.config import settings
from inbox_service.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def _calc_backoff(attempts: int) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return datetime.now(timezone.utc) + timedelta(seconds=delay)


async def publish_batch(
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    channel: str,
    batch_size: int,
    max_attempts: int,
) -> int:
    """Publish one batch in outbox order and return how many records went out."""
    batch = await uow.outbox.fetch_pending(batch_size)
    if not batch:
        return 0

    sent_ids: list[int] = []
    dead_ids: list[int] = []
    for record in batch:
        if record.attempts >= max_attempts:
            logger.warning("Outbox record %d exceeded max attempts, parking it", record.id)
            dead_ids.append(record.id)
            continue
        try:
            await publisher.publish(channel, record.event_type, record.payload)
            sent_ids.append(record.id)
        except Exception as exc:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(
                record.id, _calc_backoff(record.attempts), str(exc) or type(exc).__name__,
            )

    await uow.outbox.mark_sent(sent_ids)
    await uow.outbox.mark_dead(dead_ids)
    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with AsyncSessionLocal() as session:
                    published = await publish_batch(
                        SqlAlchemyUoW(session),
                        publisher,
                        channel=settings.REDIS_PUBSUB_CHANNEL,
                        batch_size=settings.OUTBOX_BATCH_SIZE,
                        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
                    )
            except Exception:
                logger.exception("Outbox worker loop error")
                published = 0
            # A full batch means more is waiting.
            if published < settings.OUTBOX_BATCH_SIZE:
                await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
