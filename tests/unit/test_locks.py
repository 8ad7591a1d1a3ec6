from __future__ import annotations

import asyncio

import pytest

from inbox_service.services.locks import ConversationLocks


@pytest.mark.asyncio
async def test_same_conversation_is_serialized():
    locks = ConversationLocks()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("c1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_conversations_do_not_block():
    locks = ConversationLocks()
    entered = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("c1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other() -> None:
        async with locks.hold("c2"):
            entered.set()

    await asyncio.gather(holder(), other())
    assert len(locks) == 0
