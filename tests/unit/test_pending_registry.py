from __future__ import annotations

import pytest

from inbox_service.application.dto.commands import SendCommand
from inbox_service.domain.value_objects.enums import CommandAction, MessageKind, PendingSendStatus
from inbox_service.domain.value_objects.ids import is_placeholder

CID = "5511999999999"


def text_command(text: str = "hello") -> SendCommand:
    return SendCommand(
        action=CommandAction.SEND_TEXT,
        address=f"{CID}@s.whatsapp.net",
        conversation_id=CID,
        text=text,
    )


@pytest.mark.asyncio
async def test_register_creates_pending_entry(registry, uow, clock):
    pending = await registry.register(CID, MessageKind.TEXT, "hello", text_command(), uow)

    assert is_placeholder(pending.token)
    assert pending.status == PendingSendStatus.PENDING
    assert pending.created_at_ms == clock.now_ms()
    assert pending.command["text"] == "hello"
    assert await registry.get(pending.token, uow) == pending


@pytest.mark.asyncio
async def test_register_drops_inline_audio_from_stored_command(registry, uow):
    command = SendCommand(
        action=CommandAction.SEND_AUDIO,
        address=f"{CID}@s.whatsapp.net",
        conversation_id=CID,
        audio_b64="T2dnUw==" * 1000,
    )
    pending = await registry.register(CID, MessageKind.AUDIO, None, command, uow)
    assert "audio_b64" not in pending.command


@pytest.mark.asyncio
async def test_resolve_and_fail_are_idempotent(registry, uow):
    pending = await registry.register(CID, MessageKind.TEXT, "hello", text_command(), uow)

    await registry.resolve(pending.token, "WA123", uow)
    await registry.resolve(pending.token, "WA999", uow)
    await registry.fail(pending.token, uow)
    await registry.resolve("pending-unknown", "WA1", uow)

    stored = await registry.get(pending.token, uow)
    assert stored.status == PendingSendStatus.RESOLVED
    assert stored.external_id == "WA123"


@pytest.mark.asyncio
async def test_candidate_is_oldest_unresolved_of_same_kind(registry, uow, clock):
    first = await registry.register(CID, MessageKind.TEXT, "one", text_command("one"), uow)
    clock.advance(1)
    await registry.register(CID, MessageKind.IMAGE, None, text_command(), uow)
    clock.advance(1)
    await registry.register(CID, MessageKind.TEXT, "two", text_command("two"), uow)

    candidate = await registry.find_unresolved_candidate(CID, uow, kind=MessageKind.TEXT)
    assert candidate.token == first.token

    await registry.resolve(first.token, "WA1", uow)
    candidate = await registry.find_unresolved_candidate(CID, uow, kind=MessageKind.TEXT)
    assert candidate.content == "two"


@pytest.mark.asyncio
async def test_candidate_prefers_identical_content(registry, uow, clock):
    await registry.register(CID, MessageKind.TEXT, "one", text_command("one"), uow)
    clock.advance(1)
    second = await registry.register(CID, MessageKind.TEXT, "two", text_command("two"), uow)

    candidate = await registry.find_unresolved_candidate(
        CID, uow, kind=MessageKind.TEXT, content="two",
    )
    assert candidate.token == second.token


@pytest.mark.asyncio
async def test_candidate_respects_grace_window_and_conversation(registry, uow, clock):
    await registry.register(CID, MessageKind.TEXT, "old", text_command("old"), uow)
    clock.advance(121)

    assert await registry.find_unresolved_candidate(CID, uow) is None
    assert await registry.find_unresolved_candidate("5521888888888", uow) is None


@pytest.mark.asyncio
async def test_stale_entries_are_listed_until_surfaced(registry, uow, clock):
    pending = await registry.register(CID, MessageKind.TEXT, "hello", text_command(), uow)
    assert await registry.list_stale(uow) == []

    clock.advance(301)
    stale = await registry.list_stale(uow)
    assert [p.token for p in stale] == [pending.token]

    await registry.mark_surfaced([pending.token], uow)
    assert await registry.list_stale(uow) == []
    assert len(await registry.list_stale(uow, include_surfaced=True)) == 1
