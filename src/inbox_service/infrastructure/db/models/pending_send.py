from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from inbox_service.infrastructure.db.base import Base


class PendingSendModel(Base):
    __tablename__ = "pending_sends"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    # No foreign key: the send is registered before its conversation row may exist.
    conversation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    command: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    surfaced_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        Index("ix_pending_sends_match", "conversation_id", "status", "created_at_ms"),
        Index("ix_pending_sends_stale", "status", "created_at_ms"),
    )
