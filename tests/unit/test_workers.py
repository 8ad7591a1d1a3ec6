from __future__ import annotations

import pytest

from inbox_service.application.dto import events
from inbox_service.application.dto.commands import SendCommand
from inbox_service.application.repositories.outbox import OutboxRecord
from inbox_service.domain.value_objects.enums import CommandAction, MessageKind
from inbox_service.workers.outbox_worker import publish_batch
from inbox_service.workers.pending_sweeper import sweep_once


class FakePublisher:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.published: list[tuple[str, str, dict]] = []
        self._fail_on = fail_on or set()

    async def publish(self, channel: str, event_type: str, data: dict) -> None:
        if event_type in self._fail_on:
            raise ConnectionError("redis down")
        self.published.append((channel, event_type, data))


@pytest.mark.asyncio
async def test_publish_batch_in_order(uow):
    uow.outbox._pending = [
        OutboxRecord(1, events.MESSAGE_UPSERTED, {"n": 1}, 0),
        OutboxRecord(2, events.READ_STATE, {"n": 2}, 0),
    ]
    publisher = FakePublisher()

    published = await publish_batch(uow, publisher, channel="inbox.fanout", batch_size=50, max_attempts=5)

    assert published == 2
    assert [p[1] for p in publisher.published] == [events.MESSAGE_UPSERTED, events.READ_STATE]
    assert publisher.published[0][0] == "inbox.fanout"
    assert uow.outbox.sent == [1, 2]
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_publish_failures_back_off_and_exhausted_records_park(uow):
    uow.outbox._pending = [
        OutboxRecord(1, events.MESSAGE_UPSERTED, {}, 0),
        OutboxRecord(2, events.READ_STATE, {}, 1),
        OutboxRecord(3, events.CONVERSATION_UPDATED, {}, 5),
    ]
    publisher = FakePublisher(fail_on={events.READ_STATE})

    published = await publish_batch(uow, publisher, channel="c", batch_size=50, max_attempts=5)

    assert published == 1
    assert uow.outbox.sent == [1]
    assert uow.outbox.failed == [2]
    assert uow.outbox.errors[2] == "redis down"
    assert uow.outbox.dead == [3]


@pytest.mark.asyncio
async def test_empty_batch_does_not_commit(uow):
    assert await publish_batch(uow, FakePublisher(), channel="c", batch_size=50, max_attempts=5) == 0
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_sweep_surfaces_stale_sends_once(registry, uow, clock):
    command = SendCommand(
        action=CommandAction.SEND_TEXT,
        address="5511999999999@s.whatsapp.net",
        conversation_id="5511999999999",
        text="hello",
    )
    pending = await registry.register("5511999999999", MessageKind.TEXT, "hello", command, uow)

    assert await sweep_once(registry, uow) == 0

    clock.advance(301)
    assert await sweep_once(registry, uow) == 1
    assert await sweep_once(registry, uow) == 0

    [stale] = uow.outbox.of_type(events.SEND_STALE)
    assert stale["token"] == pending.token
    assert stale["content"] == "hello"
    assert (await registry.get(pending.token, uow)).surfaced_at_ms == clock.now_ms()
