from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class OutboxRecord:
    """A fan-out event waiting for publication.

    ``conversation_id`` is lifted out of the payload when present; records of
    one conversation are handed out in insertion order.
    """

    id: int
    event_type: str
    payload: dict[str, Any]
    attempts: int
    conversation_id: str | None = None


class OutboxWriter(Protocol):
    async def add(self, event_type: str, payload: dict[str, Any]) -> None: ...

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]: ...

    async def mark_sent(self, ids: list[int]) -> None: ...

    async def mark_failed(
        self, record_id: int, next_retry_at: datetime, error: str | None = None,
    ) -> None: ...

    async def mark_dead(self, ids: list[int]) -> None: ...
