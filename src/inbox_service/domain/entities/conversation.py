from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    display_name: str | None
    avatar_ref: str | None
    last_activity_ms: int | None
    deleted: bool
    created_at: datetime
    updated_at: datetime
