"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

import pytest

from inbox_service.application.dto.commands import SendCommand
from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import GatewayDispatchFailure
from inbox_service.application.pagination import decode_cursor
from inbox_service.application.ports.gateway import GatewayReceipt
from inbox_service.application.repositories.outbox import OutboxRecord
from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import Message
from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.domain.value_objects.enums import (
    Direction,
    MessageKind,
    MessageStatus,
    PendingSendStatus,
)
from inbox_service.services.locks import ConversationLocks
from inbox_service.services.normalizer import GatewayEventNormalizer
from inbox_service.services.pending_registry import PendingSendRegistry
from inbox_service.services.reconciler import Reconciler
from inbox_service.services.watermark_tracker import UnreadWatermarkTracker

# 2026-01-01T00:00:00Z
BASE_MS = 1_767_225_600_000


class FakeClock:
    def __init__(self, now_ms: int = BASE_MS) -> None:
        self.ms = now_ms

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.ms / 1000, tz=timezone.utc)

    def now_ms(self) -> int:
        return self.ms

    def advance(self, seconds: float) -> None:
        self.ms += int(seconds * 1000)


@pytest.fixture
def operator_principal() -> Principal:
    return Principal(subject_id="op-1", roles=["operator"])


def make_conversation(
    *,
    conversation_id: str = "5511999999999",
    display_name: str | None = None,
    last_activity_ms: int | None = None,
    deleted: bool = False,
) -> Conversation:
    now = datetime.now(timezone.utc)
    return Conversation(
        id=conversation_id,
        display_name=display_name,
        avatar_ref=None,
        last_activity_ms=last_activity_ms,
        deleted=deleted,
        created_at=now,
        updated_at=now,
    )


def make_message(
    *,
    conversation_id: str = "5511999999999",
    external_id: str = "WA1",
    direction: str = Direction.INBOUND,
    kind: str = MessageKind.TEXT,
    content: str | None = "hello",
    media_ref: str | None = None,
    payload: dict[str, Any] | None = None,
    timestamp_ms: int = BASE_MS,
    status: str = MessageStatus.DELIVERED,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        external_id=external_id,
        direction=direction,
        kind=kind,
        content=content,
        media_ref=media_ref,
        payload=payload,
        timestamp_ms=timestamp_ms,
        status=status,
        quoted_id=None,
        reaction=None,
        edited=False,
        sender_name=None,
        failed_action=None,
        created_at=datetime.now(timezone.utc),
    )


@dataclass
class FakeConversationReader:
    _store: dict[str, Conversation] = field(default_factory=dict)

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        return self._store.get(conversation_id)

    async def list_active(self, *, cursor: str | None = None, limit: int = 20) -> list[Conversation]:
        rows = sorted(
            (c for c in self._store.values() if not c.deleted),
            key=lambda c: (-(c.last_activity_ms or 0), c.id),
        )
        if cursor:
            position, cid = decode_cursor(cursor)
            rows = [
                c for c in rows
                if (c.last_activity_ms or 0) < position
                or ((c.last_activity_ms or 0) == position and c.id > cid)
            ]
        return rows[:limit]


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    locked: list[str] = field(default_factory=list)

    async def create(self, conversation: Conversation) -> Conversation:
        self._reader._store[conversation.id] = conversation
        return conversation

    async def update(self, conversation: Conversation) -> None:
        self._reader._store[conversation.id] = conversation

    async def lock(self, conversation_id: str) -> None:
        self.locked.append(conversation_id)


@dataclass
class FakeReadState:
    _watermarks: dict[str, int] = field(default_factory=dict)

    async def get_watermark(self, conversation_id: str) -> int | None:
        return self._watermarks.get(conversation_id)

    async def advance_watermark(self, conversation_id: str, watermark_ms: int) -> int:
        stored = max(self._watermarks.get(conversation_id, 0), watermark_ms)
        self._watermarks[conversation_id] = stored
        return stored


def _is_unread(message: Message, after_ms: int) -> bool:
    return (
        message.direction == Direction.INBOUND
        and message.status != MessageStatus.DELETED
        and message.timestamp_ms > after_ms
    )


@dataclass
class FakeMessageReader:
    _conversations: FakeConversationReader
    _read_state: FakeReadState
    _messages: list[Message] = field(default_factory=list)

    def _timeline(self, conversation_id: str) -> list[Message]:
        return sorted(
            (m for m in self._messages if m.conversation_id == conversation_id),
            key=lambda m: (m.timestamp_ms, str(m.id)),
        )

    async def list_messages(
        self, conversation_id: str, *, cursor: str | None = None, limit: int = 50
    ) -> list[Message]:
        rows = self._timeline(conversation_id)
        if cursor:
            position, mid = decode_cursor(cursor)
            rows = [m for m in rows if (m.timestamp_ms, str(m.id)) < (position, mid)]
        return rows[-limit:]

    async def get_by_external_id(self, conversation_id: str, external_id: str) -> Message | None:
        for m in self._messages:
            if m.conversation_id == conversation_id and m.external_id == external_id:
                return m
        return None

    async def find_by_external_id(self, external_id: str) -> Message | None:
        for m in self._messages:
            if m.external_id == external_id:
                return m
        return None

    async def get_last(self, conversation_id: str) -> Message | None:
        timeline = self._timeline(conversation_id)
        return timeline[-1] if timeline else None

    async def count_unread(self, conversation_id: str, after_ms: int) -> int:
        return sum(1 for m in self._timeline(conversation_id) if _is_unread(m, after_ms))

    async def unread_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for conversation in self._conversations._store.values():
            if conversation.deleted:
                continue
            watermark = self._read_state._watermarks.get(conversation.id, 0)
            count = await self.count_unread(conversation.id, watermark)
            if count:
                counts[conversation.id] = count
        return counts


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        existing = await self._reader.get_by_external_id(message.conversation_id, message.external_id)
        if existing is not None:
            return existing, False
        self._reader._messages.append(message)
        return message, True

    async def update(self, message: Message) -> None:
        for i, m in enumerate(self._reader._messages):
            if m.id == message.id:
                self._reader._messages[i] = message
                return


@dataclass
class FakePendingSends:
    _store: dict[str, PendingSend] = field(default_factory=dict)

    async def get(self, token: str) -> PendingSend | None:
        return self._store.get(token)

    async def oldest_unresolved(
        self,
        conversation_id: str,
        *,
        created_after_ms: int,
        kind: str | None = None,
        content: str | None = None,
    ) -> PendingSend | None:
        candidates = [
            p for p in self._store.values()
            if p.conversation_id == conversation_id
            and p.status == PendingSendStatus.PENDING
            and p.created_at_ms >= created_after_ms
            and (kind is None or p.kind == kind)
            and (content is None or p.content == content)
        ]
        return min(candidates, key=lambda p: p.created_at_ms, default=None)

    async def list_stale(self, created_before_ms: int, *, include_surfaced: bool = False) -> list[PendingSend]:
        return sorted(
            (
                p for p in self._store.values()
                if p.status == PendingSendStatus.PENDING
                and p.created_at_ms < created_before_ms
                and (include_surfaced or p.surfaced_at_ms is None)
            ),
            key=lambda p: p.created_at_ms,
        )

    async def add(self, pending: PendingSend) -> None:
        self._store[pending.token] = pending

    async def mark_resolved(self, token: str, external_id: str) -> None:
        self._store[token] = replace(
            self._store[token], status=PendingSendStatus.RESOLVED, external_id=external_id,
        )

    async def mark_failed(self, token: str) -> None:
        self._store[token] = replace(self._store[token], status=PendingSendStatus.ERROR)

    async def mark_surfaced(self, tokens: list[str], at_ms: int) -> None:
        for token in tokens:
            self._store[token] = replace(self._store[token], surfaced_at_ms=at_ms)


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    _pending: list[OutboxRecord] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    dead: list[int] = field(default_factory=list)
    errors: dict[int, str | None] = field(default_factory=dict)

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._records.append({"event_type": event_type, "payload": payload})

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        return self._pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)

    async def mark_failed(
        self, record_id: int, next_retry_at: datetime, error: str | None = None,
    ) -> None:
        self.failed.append(record_id)
        self.errors[record_id] = error

    async def mark_dead(self, ids: list[int]) -> None:
        self.dead.extend(ids)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [r["payload"] for r in self._records if r["event_type"] == event_type]


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Writes apply immediately; rollback is only counted."""

    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    read_state: FakeReadState = field(default_factory=FakeReadState)
    pending: FakePendingSends = field(default_factory=FakePendingSends)
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader | None = None
    messages_w: FakeMessageWriter | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages is None:
            self.messages = FakeMessageReader(self.conversations, self.read_state)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    @property
    def pending_w(self) -> FakePendingSends:
        return self.pending

    @property
    def read_state_w(self) -> FakeReadState:
        return self.read_state

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations._store[conversation.id] = conversation
        return conversation

    def add_message(self, message: Message) -> Message:
        self.messages._messages.append(message)
        return message

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class FakeGateway:
    """Records dispatched commands; answers with sequential ids or a configured failure."""

    def __init__(self) -> None:
        self.commands: list[SendCommand] = []
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.status: str | None = MessageStatus.SENT
        self.on_dispatch = None
        self._seq = 0

    async def dispatch(self, command: SendCommand) -> GatewayReceipt:
        self.commands.append(command)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.on_dispatch is not None:
            await self.on_dispatch(command)
        if self.error is not None:
            raise self.error
        if command.target_id is not None:
            return GatewayReceipt(external_id=command.target_id)
        self._seq += 1
        return GatewayReceipt(external_id=f"WA{self._seq:03d}", status=self.status)

    def fail_with(self, detail: str = "gateway rejected the command") -> None:
        self.error = GatewayDispatchFailure(detail)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def registry(clock) -> PendingSendRegistry:
    return PendingSendRegistry(match_grace_seconds=120, stale_after_seconds=300, clock=clock)


@pytest.fixture
def reconciler(registry, clock) -> Reconciler:
    return Reconciler(registry, locks=ConversationLocks(), clock=clock)


@pytest.fixture
def tracker(clock) -> UnreadWatermarkTracker:
    return UnreadWatermarkTracker(clock)


@pytest.fixture
def normalizer(clock) -> GatewayEventNormalizer:
    return GatewayEventNormalizer(clock=clock)
