"""Prepare an empty environment: inbox tables plus the webhook stream group.

Safe to re-run; existing tables and groups are left alone.
"""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from inbox_service.config import settings
from inbox_service.infrastructure.bus.redis_streams import ensure_group
from inbox_service.infrastructure.db.session import create_schema, engine

logger = logging.getLogger(__name__)


async def init_infra() -> None:
    try:
        await create_schema()
        logger.info("Database schema ready")
    finally:
        await engine.dispose()

    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await ensure_group(redis, settings.GATEWAY_EVENTS_STREAM, settings.GATEWAY_EVENTS_GROUP)
    finally:
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(init_infra())


if __name__ == "__main__":
    main()
