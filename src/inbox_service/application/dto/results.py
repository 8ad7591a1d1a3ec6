from __future__ import annotations

from dataclasses import dataclass

from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.enums import ReconciliationOutcome


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    outcome: ReconciliationOutcome
    message: Message | None = None
    conversation: Conversation | None = None

    @property
    def changed(self) -> bool:
        return self.outcome in (ReconciliationOutcome.CREATED, ReconciliationOutcome.UPDATED)


IGNORED = ReconciliationResult(ReconciliationOutcome.IGNORED)
