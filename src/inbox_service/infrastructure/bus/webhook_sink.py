from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from inbox_service.infrastructure.bus.serializer import dumps

logger = logging.getLogger(__name__)


class RedisWebhookSink:
    """Implements application.ports.bus.WebhookSink with a single Redis key."""

    def __init__(self, redis: aioredis.Redis, key: str, *, ttl_seconds: int = 86400) -> None:
        self._redis = redis
        self._key = key
        self._ttl = ttl_seconds

    async def store(self, payload: dict[str, Any]) -> None:
        try:
            await self._redis.set(self._key, dumps(payload), ex=self._ttl)
        except aioredis.RedisError:
            # Diagnostics only; ingestion must not depend on it.
            logger.warning("Could not store last webhook", exc_info=True)

    async def load(self) -> dict[str, Any] | None:
        raw = await self._redis.get(self._key)
        return json.loads(raw) if raw else None
