from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class PendingSend:
    token: str
    conversation_id: str
    kind: str
    content: str | None
    command: dict[str, Any]
    status: str
    created_at_ms: int
    external_id: str | None = None
    surfaced_at_ms: int | None = None
