from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class PendingSendResponse(BaseModel):
    token: str
    conversation_id: str
    kind: str
    content: str | None
    command: dict[str, Any]
    status: str
    created_at_ms: int
    surfaced_at_ms: int | None

    model_config = {"from_attributes": True}
