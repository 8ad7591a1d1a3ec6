from __future__ import annotations

from typing import Protocol

from inbox_service.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from inbox_service.application.repositories.message import MessageReader, MessageWriter
from inbox_service.application.repositories.outbox import OutboxWriter
from inbox_service.application.repositories.pending_send import (
    PendingSendReader,
    PendingSendWriter,
)
from inbox_service.application.repositories.read_state import (
    ReadStateReader,
    ReadStateWriter,
)


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter
    pending: PendingSendReader
    pending_w: PendingSendWriter
    read_state: ReadStateReader
    read_state_w: ReadStateWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
