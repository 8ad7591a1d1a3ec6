from __future__ import annotations

from dataclasses import dataclass

from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class ConversationSummaryDTO:
    conversation: Conversation
    unread: int
    last_message: Message | None
