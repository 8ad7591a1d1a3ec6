from __future__ import annotations

from typing import Protocol

from inbox_service.domain.entities.pending_send import PendingSend


class PendingSendReader(Protocol):
    async def get(self, token: str) -> PendingSend | None: ...

    async def oldest_unresolved(
        self,
        conversation_id: str,
        *,
        created_after_ms: int,
        kind: str | None = None,
        content: str | None = None,
    ) -> PendingSend | None: ...

    async def list_stale(
        self, created_before_ms: int, *, include_surfaced: bool = False
    ) -> list[PendingSend]: ...


class PendingSendWriter(Protocol):
    async def add(self, pending: PendingSend) -> None: ...

    async def mark_resolved(self, token: str, external_id: str) -> None: ...

    async def mark_failed(self, token: str) -> None: ...

    async def mark_surfaced(self, tokens: list[str], at_ms: int) -> None: ...
