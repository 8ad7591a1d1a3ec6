from __future__ import annotations

import pytest
import redis.asyncio as aioredis

from inbox_service.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from inbox_service.infrastructure.bus.redis_streams import (
    RedisStreamConsumer,
    RedisStreamProducer,
    ensure_group,
)
from inbox_service.infrastructure.bus.serializer import deserialize_event, encode_stream_fields
from inbox_service.infrastructure.bus.webhook_sink import RedisWebhookSink


class FakeRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []
        self.acked: list[str] = []
        self.added: list[tuple[str, dict, int]] = []
        self.values: dict[str, str] = {}
        self.down = False
        self.groups: set[tuple[str, str]] = set()

    async def publish(self, channel: str, raw: str) -> int:
        self.published.append((channel, raw))
        return 1

    async def xadd(self, stream: str, fields: dict, maxlen: int, approximate: bool) -> str:
        self.added.append((stream, fields, maxlen))
        return "1700000000000-0"

    async def xack(self, stream: str, group: str, msg_id: str) -> int:
        self.acked.append(msg_id)
        return 1

    async def set(self, key: str, value: str, ex: int) -> None:
        if self.down:
            raise aioredis.ConnectionError("down")
        self.values[key] = value

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def xgroup_create(self, stream: str, group: str, id: str, mkstream: bool) -> bool:
        if (stream, group) in self.groups:
            raise aioredis.ResponseError("BUSYGROUP Consumer Group name already exists")
        self.groups.add((stream, group))
        return True


@pytest.mark.asyncio
async def test_publisher_sends_envelope():
    redis = FakeRedis()
    await RedisPubSubPublisher(redis).publish("inbox.fanout", "inbox.read_state", {"unread": 0})

    channel, raw = redis.published[0]
    assert channel == "inbox.fanout"
    assert deserialize_event(raw) == ("inbox.read_state", {"unread": 0})


@pytest.mark.asyncio
async def test_producer_appends_body_as_json():
    redis = FakeRedis()
    entry_id = await RedisStreamProducer(redis, "gateway.events").append("messages.upsert", {"a": 1})

    assert entry_id == "1700000000000-0"
    stream, fields, _ = redis.added[0]
    assert stream == "gateway.events"
    assert fields == {"event_type": "messages.upsert", "body": '{"a": 1}'}


@pytest.mark.asyncio
async def test_consumer_acks_only_after_success():
    redis = FakeRedis()
    handled: list[tuple[str, dict]] = []

    async def callback(event_type: str, body: dict) -> None:
        if body.get("fail"):
            raise RuntimeError("db down")
        handled.append((event_type, body))

    consumer = RedisStreamConsumer(redis, "gateway.events", "inbox-service", "c1", callback)
    await consumer._handle("1-0", encode_stream_fields("messages.upsert", {"ok": True}))
    await consumer._handle("2-0", encode_stream_fields("messages.upsert", {"fail": True}))
    await consumer._handle("3-0", {"event_type": "messages.upsert", "body": "{not json"})

    assert handled == [("messages.upsert", {"ok": True})]
    # Undecodable entries are acked so they cannot block the group forever.
    assert redis.acked == ["1-0", "3-0"]


@pytest.mark.asyncio
async def test_webhook_sink_round_trip_and_outage():
    redis = FakeRedis()
    sink = RedisWebhookSink(redis, "inbox:last_webhook")

    assert await sink.load() is None
    await sink.store({"event": "messages.upsert"})
    assert await sink.load() == {"event": "messages.upsert"}

    redis.down = True
    await sink.store({"event": "ignored"})
    assert await sink.load() == {"event": "messages.upsert"}


@pytest.mark.asyncio
async def test_ensure_group_is_idempotent():
    redis = FakeRedis()

    assert await ensure_group(redis, "gateway.events", "inbox-service") is True
    assert await ensure_group(redis, "gateway.events", "inbox-service") is False
    assert redis.groups == {("gateway.events", "inbox-service")}
