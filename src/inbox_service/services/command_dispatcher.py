"""Turns operator intents into gateway commands with optimistic local state.

Content sends go through a pending placeholder that the reconciler later
swaps for the confirmed message. Mutations are applied locally first and
flagged when the gateway refuses them.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Sequence

from inbox_service.application.dto.commands import SendCommand
from inbox_service.application.exceptions import (
    ConflictError,
    GatewayDispatchFailure,
    GatewayTimeout,
    NotFoundError,
    ValidationError,
)
from inbox_service.application.ports.gateway import GatewayClient, GatewayReceipt
from inbox_service.application.ports.media_store import MediaStore
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.message import Message
from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.domain.events.gateway_events import MessageEvent, MessageMutation
from inbox_service.domain.value_objects.enums import (
    CommandAction,
    Direction,
    MessageKind,
    MessageStatus,
    MutationAction,
)
from inbox_service.domain.value_objects.ids import (
    conversation_id_from_address,
    is_placeholder,
    to_routing_address,
)
from inbox_service.services.pending_registry import PendingSendRegistry
from inbox_service.services.reconciler import Reconciler
from inbox_service.services.watermark_tracker import UnreadWatermarkTracker

logger = logging.getLogger(__name__)

SENDABLE_MEDIA_KINDS = frozenset(
    {MessageKind.IMAGE, MessageKind.VIDEO, MessageKind.DOCUMENT, MessageKind.STICKER}
)

_MUTATION_COMMANDS = {
    MutationAction.REACT: CommandAction.REACT,
    MutationAction.DELETE: CommandAction.DELETE,
    MutationAction.EDIT: CommandAction.EDIT,
}


class CommandDispatcher:
    def __init__(
        self,
        *,
        registry: PendingSendRegistry,
        reconciler: Reconciler,
        tracker: UnreadWatermarkTracker,
        gateway: GatewayClient,
        timeout_seconds: float,
        default_suffix: str,
        media_store: MediaStore | None = None,
    ) -> None:
        self._registry = registry
        self._reconciler = reconciler
        self._tracker = tracker
        self._gateway = gateway
        self._timeout = timeout_seconds
        self._default_suffix = default_suffix
        self._media_store = media_store

    # -- content sends -------------------------------------------------

    async def send_text(
        self,
        target: str,
        text: str,
        uow: UnitOfWork,
        *,
        quoted_id: str | None = None,
    ) -> Message:
        if not text or not text.strip():
            raise ValidationError("Message text must not be empty")
        command = self._command(
            CommandAction.REPLY if quoted_id else CommandAction.SEND_TEXT,
            target,
            text=text,
            quoted_id=quoted_id,
        )
        return await self._send_content(command, MessageKind.TEXT, text, uow)

    async def reply(self, target: str, text: str, quoted_id: str, uow: UnitOfWork) -> Message:
        return await self.send_text(target, text, uow, quoted_id=quoted_id)

    async def send_media(
        self,
        target: str,
        media_ref: str,
        media_kind: str,
        uow: UnitOfWork,
        *,
        caption: str | None = None,
        mimetype: str | None = None,
        file_name: str | None = None,
    ) -> Message:
        if media_kind not in SENDABLE_MEDIA_KINDS:
            raise ValidationError(f"Unsupported media kind {media_kind!r}")
        if not media_ref:
            raise ValidationError("Media reference is required")
        command = self._command(
            CommandAction.SEND_MEDIA,
            target,
            text=caption,
            media_ref=media_ref,
            media_kind=media_kind,
            mimetype=mimetype,
            file_name=file_name,
        )
        payload = {k: v for k, v in (("mimetype", mimetype), ("file_name", file_name)) if v}
        return await self._send_content(
            command, MessageKind(media_kind), caption, uow,
            media_ref=media_ref, payload=payload or None,
        )

    async def send_audio(
        self,
        target: str,
        uow: UnitOfWork,
        *,
        audio_b64: str | None = None,
        media_ref: str | None = None,
    ) -> Message:
        if not audio_b64 and not media_ref:
            raise ValidationError("Audio requires inline data or a media reference")
        local_ref = media_ref
        if local_ref is None and self._media_store is not None:
            # Lets the optimistic bubble play the recording before confirmation.
            try:
                local_ref = self._media_store.materialize(audio_b64, "audio/ogg")  # type: ignore[arg-type]
            except ValueError as exc:
                raise ValidationError("Audio payload is not valid base64") from exc
            except OSError:
                logger.warning("Could not store local audio copy, sending without it", exc_info=True)
        command = self._command(
            CommandAction.SEND_AUDIO,
            target,
            audio_b64=audio_b64,
            media_ref=media_ref,
            media_kind=MessageKind.AUDIO,
        )
        return await self._send_content(command, MessageKind.AUDIO, None, uow, media_ref=local_ref)

    async def send_location(
        self,
        target: str,
        latitude: float,
        longitude: float,
        uow: UnitOfWork,
        *,
        name: str | None = None,
    ) -> Message:
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValidationError("Coordinates out of range")
        command = self._command(
            CommandAction.SEND_LOCATION,
            target,
            latitude=latitude,
            longitude=longitude,
            location_name=name,
        )
        payload = {"latitude": latitude, "longitude": longitude, "name": name}
        return await self._send_content(
            command, MessageKind.LOCATION, name or f"{latitude}, {longitude}", uow,
            payload=payload,
        )

    async def send_poll(
        self,
        target: str,
        title: str,
        options: Sequence[str],
        uow: UnitOfWork,
        *,
        selectable_count: int = 1,
    ) -> Message:
        cleaned = tuple(o.strip() for o in options if o and o.strip())
        if not title.strip():
            raise ValidationError("Poll title must not be empty")
        if len(cleaned) < 2:
            raise ValidationError("A poll needs at least two options")
        if not 0 <= selectable_count <= len(cleaned):
            raise ValidationError("selectable_count exceeds the number of options")
        command = self._command(
            CommandAction.SEND_POLL,
            target,
            poll_title=title,
            poll_options=cleaned,
            selectable_count=selectable_count,
        )
        payload = {"title": title, "options": list(cleaned), "selectable_count": selectable_count}
        return await self._send_content(command, MessageKind.POLL, title, uow, payload=payload)

    async def forward(
        self,
        source_conversation_id: str,
        message_id: str,
        target: str,
        uow: UnitOfWork,
    ) -> Message:
        """Re-send a stored message's content into another conversation."""
        source = await uow.messages.get_by_external_id(source_conversation_id, message_id)
        if source is None:
            raise NotFoundError("Message not found")
        if source.status == MessageStatus.DELETED:
            raise ConflictError("Deleted messages cannot be forwarded")

        payload = source.payload or {}
        if source.kind == MessageKind.TEXT:
            return await self.send_text(target, source.content or "", uow)
        if source.kind == MessageKind.LOCATION:
            return await self.send_location(
                target, payload["latitude"], payload["longitude"], uow, name=payload.get("name"),
            )
        if source.kind == MessageKind.POLL:
            return await self.send_poll(
                target, payload.get("title") or source.content or "", payload.get("options") or [], uow,
                selectable_count=payload.get("selectable_count") or 1,
            )
        if not source.media_ref:
            raise ConflictError("Message has no retrievable media to forward")
        if source.kind == MessageKind.AUDIO:
            return await self.send_audio(target, uow, media_ref=source.media_ref)
        caption = source.content if source.content != f"[{source.kind}]" else None
        return await self.send_media(
            target, source.media_ref, source.kind, uow,
            caption=caption,
            mimetype=payload.get("mimetype"),
            file_name=payload.get("file_name"),
        )

    # -- mutations -----------------------------------------------------

    async def react(self, target: str, message_id: str, emoji: str, uow: UnitOfWork) -> Message:
        return await self._mutate(target, message_id, MutationAction.REACT, emoji, uow)

    async def edit(self, target: str, message_id: str, text: str, uow: UnitOfWork) -> Message:
        if not text or not text.strip():
            raise ValidationError("Edited text must not be empty")
        return await self._mutate(target, message_id, MutationAction.EDIT, text, uow)

    async def delete(self, target: str, message_id: str, uow: UnitOfWork) -> Message:
        return await self._mutate(target, message_id, MutationAction.DELETE, None, uow)

    # -- internals -----------------------------------------------------

    def _command(self, action: CommandAction, target: str, **fields: Any) -> SendCommand:
        if not target or not target.strip():
            raise ValidationError("Target address is required")
        address = to_routing_address(target, self._default_suffix)
        return SendCommand(
            action=action,
            address=address,
            conversation_id=conversation_id_from_address(address),
            **fields,
        )

    async def _call_gateway(self, command: SendCommand) -> GatewayReceipt:
        try:
            return await asyncio.wait_for(self._gateway.dispatch(command), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GatewayTimeout(f"Gateway did not answer within {self._timeout:g}s") from exc

    async def _send_content(
        self,
        command: SendCommand,
        kind: MessageKind,
        provisional_content: str | None,
        uow: UnitOfWork,
        *,
        media_ref: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Message:
        pending = await self._registry.register(
            command.conversation_id, kind, provisional_content, command, uow,
        )
        await self._reconciler.stage_placeholder(
            pending, uow, media_ref=media_ref, payload=payload, quoted_id=command.quoted_id,
        )

        try:
            receipt = await self._call_gateway(command)
        except GatewayDispatchFailure as exc:
            failed = await self._reconciler.fail_placeholder(pending, uow)
            if failed is None:
                confirmed = await self._current_message(pending, uow)
                if confirmed is not None:
                    logger.info(
                        "Send %s reported %s but was already confirmed as %s",
                        pending.token, type(exc).__name__, confirmed.external_id,
                    )
                    await self._tracker.mark_read(command.conversation_id, uow)
                    return confirmed
            logger.warning("Send %s to %s failed: %s", pending.token, command.address, exc.detail)
            raise

        event = MessageEvent(
            conversation_id=command.conversation_id,
            external_id=receipt.external_id,
            from_me=True,
            timestamp_ms=receipt.timestamp_ms or pending.created_at_ms,
            kind=kind,
            content=provisional_content,
            media_ref=receipt.media_ref or media_ref,
            payload=payload,
            status=receipt.status or MessageStatus.SENT,
            quoted_id=command.quoted_id,
            placeholder_token=pending.token,
        )
        result = await self._reconciler.apply(event, uow)
        await self._tracker.mark_read(command.conversation_id, uow)

        message = result.message
        if message is None or message.external_id != receipt.external_id:
            message = await self._current_message(replace(pending, external_id=receipt.external_id), uow)
        if message is None:
            raise ConflictError("Sent message could not be reconciled")
        return message

    async def _current_message(self, pending: PendingSend, uow: UnitOfWork) -> Message | None:
        """The timeline row for a send, wherever its resolution left it."""
        current = await self._registry.get(pending.token, uow) or pending
        for external_id in (current.external_id, pending.external_id, pending.token):
            if external_id:
                message = await uow.messages.get_by_external_id(pending.conversation_id, external_id)
                if message is not None:
                    return message
        return None

    async def _mutate(
        self,
        target: str,
        message_id: str,
        action: MutationAction,
        value: str | None,
        uow: UnitOfWork,
    ) -> Message:
        address = to_routing_address(target, self._default_suffix)
        conversation_id = conversation_id_from_address(address)
        message = await uow.messages.get_by_external_id(conversation_id, message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if is_placeholder(message.external_id):
            raise ConflictError("Message has not been confirmed by the gateway yet")
        if message.status == MessageStatus.DELETED:
            raise ConflictError("Message was deleted")
        if action != MutationAction.REACT and message.direction != Direction.OUTBOUND:
            raise ValidationError("Only own messages can be edited or deleted")

        command = self._command(
            _MUTATION_COMMANDS[action],
            address,
            target_id=message_id,
            target_from_me=message.direction == Direction.OUTBOUND,
            emoji=value if action == MutationAction.REACT else None,
            text=value if action == MutationAction.EDIT else None,
        )
        mutation = MessageMutation(
            conversation_id=conversation_id,
            target_id=message_id,
            action=action,
            value=value,
            from_me=True,
        )
        await self._reconciler.apply(mutation, uow)

        try:
            await self._call_gateway(command)
        except GatewayDispatchFailure as exc:
            logger.warning("%s of %s failed: %s", action, message_id, exc.detail)
            await self._reconciler.flag_failed_mutation(conversation_id, message_id, action, uow)
            raise

        await self._reconciler.apply(mutation, uow)
        current = await uow.messages.get_by_external_id(conversation_id, message_id)
        return current or message
