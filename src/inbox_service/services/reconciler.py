"""Merges canonical events into the stored conversation timeline.

Gateway delivery is at-least-once and unordered, so every event is applied
as an idempotent merge keyed by the gateway message id rather than appended
to a log. All writes to messages and conversations go through here.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator

from inbox_service.application.dto import events
from inbox_service.application.dto.results import IGNORED, ReconciliationResult
from inbox_service.application.exceptions import NotFoundError
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.conversation import Conversation
from inbox_service.domain.entities.message import TOMBSTONE_TEXT, Message
from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.domain.events.gateway_events import (
    MessageEvent,
    MessageMutation,
    NormalizedEvent,
    ProfileUpdate,
    StatusUpdate,
)
from inbox_service.domain.status import merge_status
from inbox_service.domain.value_objects.enums import (
    Direction,
    MessageStatus,
    MutationAction,
    PendingSendStatus,
    ReconciliationOutcome,
)
from inbox_service.services.locks import ConversationLocks
from inbox_service.services.pending_registry import PendingSendRegistry

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(
        self,
        registry: PendingSendRegistry,
        *,
        locks: ConversationLocks | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._locks = locks or ConversationLocks()
        self._clock = clock or SystemClock()

    async def apply(self, event: NormalizedEvent, uow: UnitOfWork) -> ReconciliationResult:
        """Merge one event. Never raises: failures degrade to ``ignored``."""
        try:
            conversation_id = event.conversation_id
            if conversation_id is None:
                # Status updates sometimes arrive without a routing address.
                located = await uow.messages.find_by_external_id(event.external_id)  # type: ignore[union-attr]
                if located is None:
                    logger.debug("Status for unknown message %s ignored", event.external_id)  # type: ignore[union-attr]
                    return IGNORED
                conversation_id = located.conversation_id

            async with self._serialized(conversation_id, uow):
                result = await self._apply_locked(event, conversation_id, uow)
                if result.changed:
                    await uow.commit()
                else:
                    await uow.rollback()
                return result
        except Exception:
            logger.exception("Reconciliation of %s failed; event ignored", type(event).__name__)
            await uow.rollback()
            return IGNORED

    async def stage_placeholder(
        self,
        pending: PendingSend,
        uow: UnitOfWork,
        *,
        media_ref: str | None = None,
        payload: dict[str, Any] | None = None,
        quoted_id: str | None = None,
    ) -> Message:
        """Write the optimistic timeline row for a registered send and commit both."""
        async with self._serialized(pending.conversation_id, uow):
            try:
                conversation = await self._get_or_create_conversation(
                    pending.conversation_id, uow,
                )
                message = self._placeholder_message(pending, media_ref, payload, quoted_id)
                message, _created = await uow.messages_w.create_if_not_exists(message)
                await self._touch(conversation, uow, activity_ms=message.timestamp_ms, revive=True)
                await self._emit_message(message, uow)
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        return message

    async def fail_placeholder(self, pending: PendingSend, uow: UnitOfWork) -> Message | None:
        """Mark a send that could not be dispatched as failed.

        Returns None when the send was confirmed in the meantime (the webhook
        echo can beat a slow gateway response), in which case nothing changes.
        """
        async with self._serialized(pending.conversation_id, uow):
            current = await self._registry.get(pending.token, uow)
            if current is None or current.status != PendingSendStatus.PENDING:
                await uow.rollback()
                return None
            await self._registry.fail(pending.token, uow)
            message = await uow.messages.get_by_external_id(pending.conversation_id, pending.token)
            if message is not None:
                message = replace(message, status=merge_status(message.status, MessageStatus.ERROR))
                await uow.messages_w.update(message)
                await self._emit_message(message, uow)
            await uow.commit()
        return message

    async def flag_failed_mutation(
        self,
        conversation_id: str,
        target_id: str,
        action: str,
        uow: UnitOfWork,
    ) -> Message | None:
        async with self._serialized(conversation_id, uow):
            message = await uow.messages.get_by_external_id(conversation_id, target_id)
            if message is None:
                await uow.rollback()
                return None
            message = replace(message, failed_action=action)
            await uow.messages_w.update(message)
            await self._emit_message(message, uow)
            await uow.commit()
        return message

    async def soft_delete_conversation(self, conversation_id: str, uow: UnitOfWork) -> Conversation:
        async with self._serialized(conversation_id, uow):
            conversation = await uow.conversations.get_by_id(conversation_id)
            if conversation is None:
                await uow.rollback()
                raise NotFoundError("Conversation not found")
            if conversation.deleted:
                await uow.rollback()
                return conversation
            conversation = replace(conversation, deleted=True, updated_at=self._clock.now())
            await uow.conversations_w.update(conversation)
            await uow.outbox.add(events.CONVERSATION_UPDATED, events.conversation_data(conversation))
            await uow.commit()
        logger.info("Conversation %s soft-deleted", conversation_id)
        return conversation

    @asynccontextmanager
    async def _serialized(self, conversation_id: str, uow: UnitOfWork) -> AsyncIterator[None]:
        async with self._locks.hold(conversation_id):
            await uow.conversations_w.lock(conversation_id)
            yield

    async def _apply_locked(
        self,
        event: NormalizedEvent,
        conversation_id: str,
        uow: UnitOfWork,
    ) -> ReconciliationResult:
        if isinstance(event, MessageEvent):
            return await self._apply_message(event, uow)
        if isinstance(event, StatusUpdate):
            return await self._apply_status(event, conversation_id, uow)
        if isinstance(event, MessageMutation):
            return await self._apply_mutation(event, uow)
        if isinstance(event, ProfileUpdate):
            return await self._apply_profile(event, uow)
        logger.warning("Unsupported event type %s", type(event).__name__)
        return IGNORED

    async def _apply_message(self, event: MessageEvent, uow: UnitOfWork) -> ReconciliationResult:
        # Our own push name is not a title for the peer's conversation.
        display_name = None if event.from_me else event.sender_name
        conversation = await self._get_or_create_conversation(
            event.conversation_id, uow, display_name=display_name,
        )

        existing = await uow.messages.get_by_external_id(event.conversation_id, event.external_id)
        if existing is not None:
            return await self._merge_status(existing, event.status, conversation, uow)

        replaced_token: str | None = None
        message: Message | None = None
        outcome = ReconciliationOutcome.CREATED
        if event.from_me:
            message, replaced_token = await self._resolve_placeholder(event, uow)
            if message is not None:
                outcome = ReconciliationOutcome.UPDATED

        if message is None:
            message, created = await uow.messages_w.create_if_not_exists(self._new_message(event))
            if not created:
                return ReconciliationResult(ReconciliationOutcome.DUPLICATE, message, conversation)

        conversation = await self._touch(
            conversation, uow,
            activity_ms=message.timestamp_ms,
            display_name=display_name,
            revive=True,
        )
        await self._emit_message(message, uow, placeholder_token=replaced_token)
        return ReconciliationResult(outcome, message, conversation)

    async def _resolve_placeholder(
        self, event: MessageEvent, uow: UnitOfWork
    ) -> tuple[Message | None, str | None]:
        pending: PendingSend | None = None
        if event.placeholder_token:
            pending = await self._registry.get(event.placeholder_token, uow)
            if pending is not None and pending.status != PendingSendStatus.PENDING:
                logger.warning(
                    "Placeholder %s already %s; matching %s by order instead",
                    pending.token, pending.status, event.external_id,
                )
                pending = None
        if pending is None:
            pending = await self._registry.find_unresolved_candidate(
                event.conversation_id, uow, kind=event.kind, content=event.content,
            )
        if pending is None:
            return None, None

        placeholder = await uow.messages.get_by_external_id(event.conversation_id, pending.token)
        if placeholder is None:
            # Registered but its optimistic row was never written; keep the registered position.
            placeholder, _ = await uow.messages_w.create_if_not_exists(
                self._placeholder_message(pending, event.media_ref, event.payload, event.quoted_id)
            )

        status = merge_status(merge_status(placeholder.status, MessageStatus.SENT), event.status)
        resolved = replace(
            placeholder,
            external_id=event.external_id,
            status=status,
            media_ref=event.media_ref or placeholder.media_ref,
            quoted_id=placeholder.quoted_id or event.quoted_id,
        )
        await uow.messages_w.update(resolved)
        await self._registry.resolve(pending.token, event.external_id, uow)
        logger.info(
            "Placeholder %s in %s confirmed as %s",
            pending.token, event.conversation_id, event.external_id,
        )
        return resolved, pending.token

    async def _merge_status(
        self,
        message: Message,
        incoming: str | None,
        conversation: Conversation | None,
        uow: UnitOfWork,
    ) -> ReconciliationResult:
        merged = merge_status(message.status, incoming)
        if merged == message.status:
            return ReconciliationResult(ReconciliationOutcome.DUPLICATE, message, conversation)
        message = replace(message, status=merged)
        await uow.messages_w.update(message)
        await self._emit_message(message, uow)
        return ReconciliationResult(ReconciliationOutcome.UPDATED, message, conversation)

    async def _apply_status(
        self, event: StatusUpdate, conversation_id: str, uow: UnitOfWork
    ) -> ReconciliationResult:
        message = await uow.messages.get_by_external_id(conversation_id, event.external_id)
        if message is None:
            logger.debug("Status %s for unknown message %s ignored", event.status, event.external_id)
            return IGNORED
        return await self._merge_status(message, event.status, None, uow)

    async def _apply_mutation(self, event: MessageMutation, uow: UnitOfWork) -> ReconciliationResult:
        target = await uow.messages.get_by_external_id(event.conversation_id, event.target_id)
        if target is None:
            logger.debug("%s for unknown message %s ignored", event.action, event.target_id)
            return IGNORED

        if event.action == MutationAction.EDIT:
            if target.status == MessageStatus.DELETED or event.value is None:
                return IGNORED
            updated = replace(target, content=event.value, edited=True)
        elif event.action == MutationAction.DELETE:
            updated = replace(
                target,
                content=TOMBSTONE_TEXT,
                media_ref=None,
                payload=None,
                status=merge_status(target.status, MessageStatus.DELETED),
            )
        elif event.action == MutationAction.REACT:
            updated = replace(target, reaction=event.value or None)
        else:
            return IGNORED

        if event.from_me and updated.failed_action == event.action:
            updated = replace(updated, failed_action=None)
        if updated == target:
            return ReconciliationResult(ReconciliationOutcome.DUPLICATE, target)
        await uow.messages_w.update(updated)
        await self._emit_message(updated, uow)
        return ReconciliationResult(ReconciliationOutcome.UPDATED, updated)

    async def _apply_profile(self, event: ProfileUpdate, uow: UnitOfWork) -> ReconciliationResult:
        conversation = await uow.conversations.get_by_id(event.conversation_id)
        if conversation is None:
            # Contact syncs cover the whole address book; only known chats are enriched.
            return IGNORED
        updated = await self._touch(
            conversation, uow,
            display_name=event.display_name,
            avatar_ref=event.avatar_ref,
        )
        if updated is conversation:
            return ReconciliationResult(ReconciliationOutcome.DUPLICATE, conversation=conversation)
        await uow.outbox.add(events.CONVERSATION_UPDATED, events.conversation_data(updated))
        return ReconciliationResult(ReconciliationOutcome.UPDATED, conversation=updated)

    async def _get_or_create_conversation(
        self,
        conversation_id: str,
        uow: UnitOfWork,
        *,
        display_name: str | None = None,
    ) -> Conversation:
        existing = await uow.conversations.get_by_id(conversation_id)
        if existing is not None:
            return existing
        now = self._clock.now()
        conversation = Conversation(
            id=conversation_id,
            display_name=display_name,
            avatar_ref=None,
            last_activity_ms=None,
            deleted=False,
            created_at=now,
            updated_at=now,
        )
        logger.info("New conversation %s", conversation_id)
        return await uow.conversations_w.create(conversation)

    async def _touch(
        self,
        conversation: Conversation,
        uow: UnitOfWork,
        *,
        activity_ms: int | None = None,
        display_name: str | None = None,
        avatar_ref: str | None = None,
        revive: bool = False,
    ) -> Conversation:
        """Advance activity and apply display fields; a null never overwrites a value."""
        last_activity = conversation.last_activity_ms
        if activity_ms is not None:
            last_activity = max(last_activity or 0, activity_ms)
        updated = replace(
            conversation,
            display_name=display_name or conversation.display_name,
            avatar_ref=avatar_ref or conversation.avatar_ref,
            last_activity_ms=last_activity,
            deleted=False if revive else conversation.deleted,
        )
        if updated == conversation:
            return conversation
        updated = replace(updated, updated_at=self._clock.now())
        await uow.conversations_w.update(updated)
        return updated

    def _new_message(self, event: MessageEvent) -> Message:
        if event.from_me:
            direction, base_status = Direction.OUTBOUND, MessageStatus.SENT
        else:
            direction, base_status = Direction.INBOUND, MessageStatus.DELIVERED
        return Message(
            id=uuid.uuid4(),
            conversation_id=event.conversation_id,
            external_id=event.external_id,
            direction=direction,
            kind=event.kind,
            content=event.content,
            media_ref=event.media_ref,
            payload=event.payload,
            timestamp_ms=event.timestamp_ms,
            status=merge_status(base_status, event.status),
            quoted_id=event.quoted_id,
            reaction=None,
            edited=False,
            sender_name=event.sender_name,
            failed_action=None,
            created_at=self._clock.now(),
        )

    def _placeholder_message(
        self,
        pending: PendingSend,
        media_ref: str | None,
        payload: dict[str, Any] | None,
        quoted_id: str | None,
    ) -> Message:
        return Message(
            id=uuid.uuid4(),
            conversation_id=pending.conversation_id,
            external_id=pending.token,
            direction=Direction.OUTBOUND,
            kind=pending.kind,
            content=pending.content,
            media_ref=media_ref,
            payload=payload,
            timestamp_ms=pending.created_at_ms,
            status=MessageStatus.PENDING,
            quoted_id=quoted_id,
            reaction=None,
            edited=False,
            sender_name=None,
            failed_action=None,
            created_at=self._clock.now(),
        )

    async def _emit_message(
        self,
        message: Message,
        uow: UnitOfWork,
        *,
        placeholder_token: str | None = None,
    ) -> None:
        await uow.outbox.add(
            events.MESSAGE_UPSERTED,
            events.message_data(message, placeholder_token=placeholder_token),
        )
