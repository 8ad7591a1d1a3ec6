"""Tracks outgoing sends between dispatch and gateway confirmation."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any

from inbox_service.application.dto.commands import SendCommand
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.domain.value_objects.enums import PendingSendStatus
from inbox_service.domain.value_objects.ids import new_placeholder_token

logger = logging.getLogger(__name__)


def _command_payload(command: SendCommand) -> dict[str, Any]:
    raw = dataclasses.asdict(command)
    raw["poll_options"] = list(command.poll_options)
    # Audio bodies can be megabytes; the command is kept for retry inspection only.
    raw.pop("audio_b64", None)
    return {k: v for k, v in raw.items() if v is not None}


class PendingSendRegistry:
    """Owns PendingSend rows.

    The gateway does not echo client-chosen ids, so a confirmation that
    arrives without a token is matched to the oldest unresolved send of the
    same conversation and kind. That is exact for serialized sends and can
    pair the wrong placeholders during concurrent bursts.
    """

    def __init__(
        self,
        *,
        match_grace_seconds: int,
        stale_after_seconds: int,
        clock: Clock | None = None,
    ) -> None:
        self._grace_ms = match_grace_seconds * 1000
        self._stale_ms = stale_after_seconds * 1000
        self._clock = clock or SystemClock()

    async def register(
        self,
        conversation_id: str,
        kind: str,
        provisional_content: str | None,
        command: SendCommand,
        uow: UnitOfWork,
    ) -> PendingSend:
        pending = PendingSend(
            token=new_placeholder_token(),
            conversation_id=conversation_id,
            kind=kind,
            content=provisional_content,
            command=_command_payload(command),
            status=PendingSendStatus.PENDING,
            created_at_ms=self._clock.now_ms(),
        )
        await uow.pending_w.add(pending)
        logger.debug("Registered pending send %s in %s", pending.token, conversation_id)
        return pending

    async def resolve(self, token: str, external_id: str, uow: UnitOfWork) -> None:
        pending = await uow.pending.get(token)
        if pending is None or pending.status != PendingSendStatus.PENDING:
            return
        await uow.pending_w.mark_resolved(token, external_id)
        logger.debug("Pending send %s resolved as %s", token, external_id)

    async def fail(self, token: str, uow: UnitOfWork) -> None:
        pending = await uow.pending.get(token)
        if pending is None or pending.status != PendingSendStatus.PENDING:
            return
        await uow.pending_w.mark_failed(token)
        logger.info("Pending send %s marked failed", token)

    async def get(self, token: str, uow: UnitOfWork) -> PendingSend | None:
        return await uow.pending.get(token)

    async def find_unresolved_candidate(
        self,
        conversation_id: str,
        uow: UnitOfWork,
        *,
        kind: str | None = None,
        content: str | None = None,
    ) -> PendingSend | None:
        """Oldest unresolved send for the conversation still inside the grace window.

        A send with identical content is preferred over plain arrival order.
        """
        created_after_ms = self._clock.now_ms() - self._grace_ms
        if content is not None:
            exact = await uow.pending.oldest_unresolved(
                conversation_id, created_after_ms=created_after_ms, kind=kind, content=content,
            )
            if exact is not None:
                return exact
        return await uow.pending.oldest_unresolved(
            conversation_id, created_after_ms=created_after_ms, kind=kind,
        )

    async def list_stale(
        self, uow: UnitOfWork, *, include_surfaced: bool = False
    ) -> list[PendingSend]:
        return await uow.pending.list_stale(
            self._clock.now_ms() - self._stale_ms,
            include_surfaced=include_surfaced,
        )

    async def mark_surfaced(self, tokens: list[str], uow: UnitOfWork) -> None:
        if tokens:
            await uow.pending_w.mark_surfaced(tokens, self._clock.now_ms())
