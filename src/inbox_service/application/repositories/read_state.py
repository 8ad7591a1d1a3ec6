from __future__ import annotations

from typing import Protocol


class ReadStateReader(Protocol):
    async def get_watermark(self, conversation_id: str) -> int | None: ...


class ReadStateWriter(Protocol):
    async def advance_watermark(self, conversation_id: str, watermark_ms: int) -> int:
        """Store max(current, watermark_ms) and return the stored value."""
        ...
