"""Consumer for raw gateway webhooks queued on a Redis Stream (WEBHOOK_INGEST_MODE=stream)."""
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

import redis.asyncio as aioredis

from inbox_service.bootstrap import InboxEngine, build_engine
from inbox_service.config import settings
from inbox_service.infrastructure.bus.redis_streams import RedisStreamConsumer
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW
from inbox_service.infrastructure.media.local_store import LocalMediaStore
from inbox_service.services import ingestion_service

logger = logging.getLogger(__name__)


def make_handler(engine: InboxEngine):
    async def _handle_event(event_type: str, body: dict[str, Any]) -> None:
        async with AsyncSessionLocal() as session:
            uow = SqlAlchemyUoW(session)
            results = await ingestion_service.ingest_gateway_event(
                body, engine.normalizer, engine.reconciler, uow,
            )
        logger.debug("%s -> %s", event_type, [r.outcome for r in results])

    return _handle_event


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    engine = build_engine(
        settings,
        media_store=LocalMediaStore(settings.MEDIA_ROOT, settings.MEDIA_BASE_URL),
    )
    # Stable per host so unacked entries are replayed after a restart.
    consumer_name = f"consumer-{socket.gethostname()}"

    consumer = RedisStreamConsumer(
        redis=redis,
        stream=settings.GATEWAY_EVENTS_STREAM,
        group=settings.GATEWAY_EVENTS_GROUP,
        consumer=consumer_name,
        callback=make_handler(engine),
    )
    await consumer.start()
    logger.info("Gateway events consumer started (%s)", consumer_name)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
