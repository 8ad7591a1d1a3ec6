from __future__ import annotations

import pytest

from inbox_service.application.exceptions import NotFoundError, ValidationError
from inbox_service.application.pagination import encode_cursor
from inbox_service.services import conversation_service
from tests.conftest import BASE_MS, make_conversation, make_message


@pytest.mark.asyncio
async def test_list_conversations_orders_by_activity_with_unread(tracker, uow):
    uow.add_conversation(make_conversation(conversation_id="A", last_activity_ms=BASE_MS))
    uow.add_conversation(make_conversation(conversation_id="B", last_activity_ms=BASE_MS + 10))
    uow.add_conversation(make_conversation(conversation_id="C", deleted=True))
    uow.add_message(make_message(conversation_id="A", external_id="WA1"))

    summaries = await conversation_service.list_conversations(None, 20, tracker, uow)

    assert [s.conversation.id for s in summaries] == ["B", "A"]
    assert summaries[1].unread == 1
    assert summaries[1].last_message.external_id == "WA1"
    assert summaries[0].unread == 0
    assert summaries[0].last_message is None


@pytest.mark.asyncio
async def test_list_conversations_cursor(tracker, uow):
    uow.add_conversation(make_conversation(conversation_id="A", last_activity_ms=BASE_MS))
    uow.add_conversation(make_conversation(conversation_id="B", last_activity_ms=BASE_MS + 10))

    cursor = encode_cursor(BASE_MS + 10, "B")
    summaries = await conversation_service.list_conversations(cursor, 20, tracker, uow)

    assert [s.conversation.id for s in summaries] == ["A"]


@pytest.mark.asyncio
async def test_malformed_cursor_is_rejected(tracker, uow):
    with pytest.raises(ValidationError):
        await conversation_service.list_conversations("bm9waXBl", 20, tracker, uow)


@pytest.mark.asyncio
async def test_messages_of_deleted_conversation_stay_readable(uow):
    uow.add_conversation(make_conversation(deleted=True))
    uow.add_message(make_message())

    messages = await conversation_service.list_messages("5511999999999", None, 50, uow)

    assert [m.external_id for m in messages] == ["WA1"]


@pytest.mark.asyncio
async def test_unknown_conversation_raises(tracker, reconciler, uow):
    with pytest.raises(NotFoundError):
        await conversation_service.list_messages("000", None, 50, uow)
    with pytest.raises(NotFoundError):
        await conversation_service.mark_read("000", tracker, uow)
    with pytest.raises(NotFoundError):
        await conversation_service.delete_conversation("000", reconciler, uow)
