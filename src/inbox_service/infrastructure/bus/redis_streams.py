"""Redis Streams hand-off of raw gateway webhooks."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from inbox_service.infrastructure.bus.serializer import decode_stream_fields, encode_stream_fields

logger = logging.getLogger(__name__)

OnStreamEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisStreamProducer:
    """Implements application.ports.bus.GatewayEventQueue."""

    def __init__(self, redis: aioredis.Redis, stream: str, *, maxlen: int = 100_000) -> None:
        self._redis = redis
        self._stream = stream
        self._maxlen = maxlen

    async def append(self, event_name: str, body: dict[str, Any]) -> str:
        return await self._redis.xadd(
            self._stream,
            encode_stream_fields(event_name, body),
            maxlen=self._maxlen,
            approximate=True,
        )


async def ensure_group(redis: aioredis.Redis, stream: str, group: str) -> bool:
    """Create the consumer group (and the stream). Returns False if it already existed."""
    try:
        await redis.xgroup_create(stream, group, id="$", mkstream=True)
    except aioredis.ResponseError as e:
        if "BUSYGROUP" in str(e):
            logger.debug("Consumer group %s already exists", group)
            return False
        raise
    logger.info("Created consumer group %s on %s", group, stream)
    return True


class RedisStreamConsumer:
    """XREADGROUP-based consumer for a single stream + consumer group.

    Entries are acked only after the callback returns. Entries whose callback
    raised stay pending and are replayed when a consumer with the same name
    starts again.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        stream: str,
        group: str,
        consumer: str,
        callback: OnStreamEventCallback,
        *,
        batch_size: int = 10,
        block_ms: int = 5000,
    ) -> None:
        self._redis = redis
        self._stream = stream
        self._group = group
        self._consumer = consumer
        self._callback = callback
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        await ensure_group(self._redis, self._stream, self._group)
        self._task = asyncio.create_task(self._consume(), name="redis-stream-consumer")
        logger.info("Stream consumer started: stream=%s group=%s", self._stream, self._group)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Stream consumer stopped")

    async def _consume(self) -> None:
        # "0" replays entries delivered to this consumer but never acked.
        cursor = "0"
        while True:
            try:
                entries = await self._redis.xreadgroup(
                    groupname=self._group,
                    consumername=self._consumer,
                    streams={self._stream: cursor},
                    count=self._batch_size,
                    block=self._block_ms,
                )
                if cursor == "0" and not any(messages for _, messages in entries or []):
                    cursor = ">"
                    continue
                for _stream_name, messages in entries or []:
                    for msg_id, fields in messages:
                        await self._handle(msg_id, fields)
                if cursor == "0":
                    cursor = ">"
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Stream consumer error, retrying in 5s")
                await asyncio.sleep(5)

    async def _handle(self, msg_id: str, fields: dict[str, str]) -> None:
        event_type = fields.get("event_type", "unknown")
        try:
            body = decode_stream_fields(fields)
        except (KeyError, ValueError):
            logger.warning("Dropping undecodable stream entry %s", msg_id)
            await self._redis.xack(self._stream, self._group, msg_id)
            return
        try:
            await self._callback(event_type, body)
            await self._redis.xack(self._stream, self._group, msg_id)
        except Exception:
            logger.exception("Error processing stream message %s", msg_id)
