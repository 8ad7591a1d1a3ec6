from __future__ import annotations

from typing import Protocol

from inbox_service.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: str) -> Conversation | None: ...

    async def list_active(
        self, *, cursor: str | None = None, limit: int = 20
    ) -> list[Conversation]:
        """Non-deleted conversations, most recent activity first."""
        ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation: ...

    async def update(self, conversation: Conversation) -> None: ...

    async def lock(self, conversation_id: str) -> None:
        """Serialize writers of one conversation for the rest of the transaction."""
        ...
