from __future__ import annotations

from typing import Protocol

from inbox_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]: ...

    async def get_by_external_id(
        self, conversation_id: str, external_id: str
    ) -> Message | None: ...

    async def find_by_external_id(self, external_id: str) -> Message | None:
        """Cross-conversation lookup for status updates without a routing address."""
        ...

    async def get_last(self, conversation_id: str) -> Message | None: ...

    async def count_unread(self, conversation_id: str, after_ms: int) -> int:
        """Inbound, non-deleted messages with timestamp strictly after ``after_ms``."""
        ...

    async def unread_counts(self) -> dict[str, int]:
        """Unread count per active conversation, measured against its watermark."""
        ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). On external_id conflict → return existing."""
        ...

    async def update(self, message: Message) -> None: ...
