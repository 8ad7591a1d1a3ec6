"""Gateway webhook payload → canonical event.

The gateway (an Evolution/Baileys style WhatsApp bridge) posts envelopes of
the form ``{"event": "messages.upsert", "instance": ..., "data": {...}}``.
Shapes vary per event and per message kind; anything that cannot be turned
into a canonical event is logged and dropped, never raised.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from inbox_service.application.exceptions import MalformedEvent, UnknownMessageKind
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.ports.media_store import MediaStore
from inbox_service.domain.events.gateway_events import (
    MessageEvent,
    MessageMutation,
    NormalizedEvent,
    ProfileUpdate,
    StatusUpdate,
)
from inbox_service.domain.value_objects.enums import MessageKind, MessageStatus, MutationAction
from inbox_service.domain.value_objects.ids import conversation_id_from_address

logger = logging.getLogger(__name__)

STATUS_EVENTS = frozenset({"messages.update", "message.ack", "messages.ack"})
PROFILE_EVENTS = frozenset({"contacts.update", "contacts.upsert", "chats.update", "chats.upsert"})
DELETE_EVENTS = frozenset({"messages.delete"})

# Checked in order; the first matching needle wins.
_STATUS_PATTERNS: tuple[tuple[tuple[str, ...], MessageStatus], ...] = (
    (("delivery",), MessageStatus.DELIVERED),
    (("read",), MessageStatus.READ),
    (("sent",), MessageStatus.SENT),
    (("error", "fail"), MessageStatus.ERROR),
)

# Baileys numeric acks.
_NUMERIC_ACKS: dict[int, MessageStatus] = {
    0: MessageStatus.ERROR,
    2: MessageStatus.SENT,
    3: MessageStatus.DELIVERED,
    4: MessageStatus.READ,
    5: MessageStatus.READ,
}

# Message node field → kind, in precedence order.
_KIND_FIELDS: tuple[tuple[str, MessageKind], ...] = (
    ("conversation", MessageKind.TEXT),
    ("extendedTextMessage", MessageKind.TEXT),
    ("imageMessage", MessageKind.IMAGE),
    ("audioMessage", MessageKind.AUDIO),
    ("documentMessage", MessageKind.DOCUMENT),
    ("documentWithCaptionMessage", MessageKind.DOCUMENT),
    ("videoMessage", MessageKind.VIDEO),
    ("stickerMessage", MessageKind.STICKER),
    ("locationMessage", MessageKind.LOCATION),
    ("pollCreationMessage", MessageKind.POLL),
    ("pollCreationMessageV2", MessageKind.POLL),
    ("pollCreationMessageV3", MessageKind.POLL),
)

_WRAPPERS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2")

_REVOKE_TYPES = ("REVOKE", 0)
_EDIT_TYPES = ("MESSAGE_EDIT", 14)

# Epoch milliseconds passed 10^12 in 2001; epoch seconds will not reach it for millennia.
SECONDS_MS_BOUNDARY = 10**12


def normalize_status(raw: Any) -> MessageStatus | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return _NUMERIC_ACKS.get(raw)
    if not isinstance(raw, str):
        return None
    lowered = raw.strip().lower()
    if lowered.isdigit():
        return _NUMERIC_ACKS.get(int(lowered))
    for needles, status in _STATUS_PATTERNS:
        if any(needle in lowered for needle in needles):
            return status
    return None


def normalize_timestamp_ms(raw: Any, fallback_ms: int) -> int:
    """Gateway timestamps arrive as seconds or milliseconds; tell them apart by magnitude."""
    value = raw
    if isinstance(value, Mapping):
        value = value.get("low")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            value = None
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value <= 0
    ):
        logger.warning("Unusable gateway timestamp %r, using receive time", raw)
        return fallback_ms
    if value < SECONDS_MS_BOUNDARY:
        return int(value * 1000)
    return int(value)


def _event_name(raw: Mapping[str, Any]) -> str:
    return str(raw.get("event") or "").strip().lower().replace("_", ".")


def _populated(node: Any) -> bool:
    if node is None:
        return False
    if isinstance(node, str):
        return bool(node.strip())
    if isinstance(node, Mapping):
        return bool(node)
    return True


def _unwrap(message: Mapping[str, Any]) -> Mapping[str, Any]:
    for wrapper in _WRAPPERS:
        inner = message.get(wrapper)
        if isinstance(inner, Mapping) and isinstance(inner.get("message"), Mapping):
            return _unwrap(inner["message"])
    return message


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _address(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedEvent(f"unusable routing address {value!r}")
    return value


def _message_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return _text(value)


def _key_target(node: Mapping[str, Any]) -> str | None:
    key = node.get("key")
    return _message_id(key.get("id")) if isinstance(key, Mapping) else None


def _resolve_kind(message: Mapping[str, Any]) -> tuple[MessageKind, Any] | None:
    """First populated kind field whose node has the expected shape.

    ``conversation`` carries a plain string; every other field an object.
    """
    for field, kind in _KIND_FIELDS:
        node = message.get(field)
        if not _populated(node):
            continue
        if field == "conversation":
            if isinstance(node, str):
                return kind, node
            continue
        if not isinstance(node, Mapping):
            continue
        if field == "documentWithCaptionMessage":
            inner = node.get("message")
            node = inner.get("documentMessage") if isinstance(inner, Mapping) else None
            if not isinstance(node, Mapping) or not node:
                continue
        return kind, node
    return None


def _quoted_id(node: Any) -> str | None:
    if not isinstance(node, Mapping):
        return None
    context = node.get("contextInfo")
    if isinstance(context, Mapping):
        return _text(context.get("stanzaId"))
    return None


def _edited_text(edited: Any) -> str | None:
    if not isinstance(edited, Mapping):
        return None
    if isinstance(edited.get("conversation"), str):
        return edited["conversation"]
    extended = edited.get("extendedTextMessage")
    if isinstance(extended, Mapping) and isinstance(extended.get("text"), str):
        return extended["text"]
    for field in ("imageMessage", "videoMessage", "documentMessage"):
        node = edited.get(field)
        if isinstance(node, Mapping) and isinstance(node.get("caption"), str):
            return node["caption"]
    return None


class GatewayEventNormalizer:
    """Turns raw webhook payloads into zero or one canonical event."""

    def __init__(
        self,
        media_store: MediaStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._media_store = media_store
        self._clock = clock or SystemClock()

    def normalize(self, raw: Any) -> NormalizedEvent | None:
        if not isinstance(raw, Mapping):
            logger.info("Discarding non-object gateway payload (%s)", type(raw).__name__)
            return None
        event_name = _event_name(raw)
        try:
            return self._classify(event_name, raw.get("data"))
        except UnknownMessageKind as exc:
            logger.warning(
                "Discarding %s event: %s; payload=%r",
                event_name or "unnamed", exc.detail, exc.payload,
            )
        except MalformedEvent as exc:
            logger.info("Discarding %s event: %s", event_name or "unnamed", exc.detail)
        return None

    def normalize_all(self, raw: Any) -> list[NormalizedEvent]:
        """Like ``normalize`` but expands contact batches into one update per contact."""
        if (
            isinstance(raw, Mapping)
            and _event_name(raw) in PROFILE_EVENTS
            and isinstance(raw.get("data"), list)
        ):
            events: list[NormalizedEvent] = []
            for item in raw["data"]:
                event = self.normalize({**raw, "data": item})
                if event is not None:
                    events.append(event)
            return events
        event = self.normalize(raw)
        return [event] if event is not None else []

    def _classify(self, event_name: str, data: Any) -> NormalizedEvent:
        if data is None:
            raise MalformedEvent("missing data")
        if isinstance(data, list):
            data = self._reduce_array(event_name, data)
        if not isinstance(data, Mapping):
            raise MalformedEvent("data is not an object")

        if event_name in STATUS_EVENTS or self._looks_like_status(data):
            return self._status_update(data)
        if event_name in PROFILE_EVENTS:
            return self._profile_update(data)
        if event_name in DELETE_EVENTS:
            return self._delete_event(data)
        return self._message_event(data)

    @staticmethod
    def _reduce_array(event_name: str, data: list[Any]) -> Mapping[str, Any]:
        first = data[0] if data else None
        if not isinstance(first, Mapping):
            raise MalformedEvent("empty or non-object array payload")
        if event_name in STATUS_EVENTS or event_name in PROFILE_EVENTS or "key" in first:
            return first
        raise MalformedEvent("array payload without a message envelope")

    @staticmethod
    def _looks_like_status(data: Mapping[str, Any]) -> bool:
        has_id = bool(data.get("keyId") or data.get("id") or isinstance(data.get("key"), Mapping))
        return "status" in data and "message" not in data and has_id

    def _status_update(self, data: Mapping[str, Any]) -> StatusUpdate:
        key = data.get("key") if isinstance(data.get("key"), Mapping) else {}
        external_id = next(
            (
                mid
                for mid in map(
                    _message_id,
                    (data.get("keyId"), key.get("id"), data.get("id"), data.get("messageId")),
                )
                if mid
            ),
            None,
        )
        if external_id is None:
            raise MalformedEvent("status update without message id")

        raw_status = data.get("status")
        if raw_status is None and isinstance(data.get("update"), Mapping):
            raw_status = data["update"].get("status")
        status = normalize_status(raw_status)
        if status is None:
            raise MalformedEvent(f"unrecognized status {raw_status!r}")

        address = data.get("remoteJid") or key.get("remoteJid")
        return StatusUpdate(
            external_id=external_id,
            status=status,
            conversation_id=conversation_id_from_address(_address(address)) if address else None,
        )

    def _profile_update(self, data: Mapping[str, Any]) -> ProfileUpdate:
        address = data.get("remoteJid") or data.get("id")
        if not isinstance(address, str) or not address:
            raise MalformedEvent("profile update without address")
        name = _text(data.get("pushName")) or _text(data.get("name")) or _text(data.get("notify"))
        avatar = _text(data.get("profilePicUrl")) or _text(data.get("profilePictureUrl"))
        if not name and not avatar:
            raise MalformedEvent("profile update without attributes")
        return ProfileUpdate(
            conversation_id=conversation_id_from_address(address),
            display_name=name or None,
            avatar_ref=avatar or None,
        )

    def _delete_event(self, data: Mapping[str, Any]) -> MessageMutation:
        key = data.get("key") if isinstance(data.get("key"), Mapping) else data
        target = _message_id(key.get("id"))
        if target is None:
            raise MalformedEvent("delete without message id")
        return MessageMutation(
            conversation_id=conversation_id_from_address(_address(key.get("remoteJid"))),
            target_id=target,
            action=MutationAction.DELETE,
            from_me=bool(key.get("fromMe")),
        )

    def _message_event(self, data: Mapping[str, Any]) -> NormalizedEvent:
        key = data.get("key")
        if not isinstance(key, Mapping):
            raise MalformedEvent("missing message key")
        address, external_id = _address(key.get("remoteJid")), _message_id(key.get("id"))
        if external_id is None:
            raise MalformedEvent("message key without id")
        if address.endswith("@broadcast"):
            raise MalformedEvent("broadcast/status post")
        message = data.get("message")
        if not isinstance(message, Mapping):
            raise MalformedEvent("missing message body")

        conversation_id = conversation_id_from_address(address)
        from_me = bool(key.get("fromMe"))
        message = _unwrap(message)

        mutation = self._mutation(conversation_id, from_me, message)
        if mutation is not None:
            return mutation

        resolved = _resolve_kind(message)
        if resolved is None:
            raise UnknownMessageKind(f"no supported content in {sorted(message)}", payload=dict(data))
        kind, node = resolved

        content, media_ref, payload = self._extract(kind, node, message, data)
        sender_name = data.get("pushName")
        raw_status = data.get("status")
        return MessageEvent(
            conversation_id=conversation_id,
            external_id=external_id,
            from_me=from_me,
            timestamp_ms=normalize_timestamp_ms(data.get("messageTimestamp"), self._clock.now_ms()),
            kind=kind,
            content=content,
            media_ref=media_ref,
            payload=payload,
            sender_name=sender_name if isinstance(sender_name, str) and sender_name else None,
            status=normalize_status(raw_status) if raw_status is not None else None,
            quoted_id=_quoted_id(node),
        )

    def _mutation(
        self,
        conversation_id: str,
        from_me: bool,
        message: Mapping[str, Any],
    ) -> MessageMutation | None:
        reaction = message.get("reactionMessage")
        if isinstance(reaction, Mapping):
            target = _key_target(reaction)
            if target is None:
                raise MalformedEvent("reaction without target")
            return MessageMutation(
                conversation_id=conversation_id,
                target_id=target,
                action=MutationAction.REACT,
                value=_text(reaction.get("text")),
                from_me=from_me,
            )

        protocol = message.get("protocolMessage")
        if isinstance(protocol, Mapping):
            target = _key_target(protocol)
            if target is None:
                raise MalformedEvent("protocol message without target")
            ptype = protocol.get("type")
            if ptype in _REVOKE_TYPES:
                return MessageMutation(
                    conversation_id=conversation_id,
                    target_id=target,
                    action=MutationAction.DELETE,
                    from_me=from_me,
                )
            if ptype in _EDIT_TYPES or isinstance(protocol.get("editedMessage"), Mapping):
                text = _edited_text(protocol.get("editedMessage"))
                if text is None:
                    raise MalformedEvent("edit without text")
                return MessageMutation(
                    conversation_id=conversation_id,
                    target_id=target,
                    action=MutationAction.EDIT,
                    value=text,
                    from_me=from_me,
                )
            raise MalformedEvent(f"unsupported protocol message type {ptype!r}")

        edited = message.get("editedMessage")
        if isinstance(edited, Mapping) and isinstance(edited.get("message"), Mapping):
            return self._mutation(conversation_id, from_me, edited["message"])
        return None

    def _extract(
        self,
        kind: MessageKind,
        node: Any,
        message: Mapping[str, Any],
        data: Mapping[str, Any],
    ) -> tuple[str | None, str | None, dict[str, Any] | None]:
        if kind == MessageKind.TEXT:
            return node if isinstance(node, str) else _text(node.get("text")), None, None

        if kind == MessageKind.LOCATION:
            lat, lng = node.get("degreesLatitude"), node.get("degreesLongitude")
            if lat is None or lng is None:
                raise MalformedEvent("location without coordinates")
            name = _text(node.get("name")) or _text(node.get("address"))
            payload = {"latitude": lat, "longitude": lng, "name": name}
            return name or f"{lat}, {lng}", None, payload

        if kind == MessageKind.POLL:
            title = _text(node.get("name")) or ""
            raw_options = node.get("options")
            options = [
                o["optionName"]
                for o in (raw_options if isinstance(raw_options, list) else [])
                if isinstance(o, Mapping) and _text(o.get("optionName"))
            ]
            payload = {
                "title": title,
                "options": options,
                "selectable_count": node.get("selectableOptionsCount", 0),
            }
            return title, None, payload

        mimetype = _text(node.get("mimetype"))
        file_name = _text(node.get("fileName"))
        caption = _text(node.get("caption")) or (file_name if kind == MessageKind.DOCUMENT else None)
        media_ref = self._media_ref(node, message, data, mimetype)
        payload = {
            k: v
            for k, v in (
                ("mimetype", mimetype),
                ("file_name", file_name),
                ("seconds", node.get("seconds")),
            )
            if v is not None
        }
        if media_ref is None and not caption:
            caption = f"[{kind}]"
        return caption or None, media_ref, payload or None

    def _media_ref(
        self,
        node: Mapping[str, Any],
        message: Mapping[str, Any],
        data: Mapping[str, Any],
        mimetype: str | None,
    ) -> str | None:
        for candidate in (data.get("mediaUrl"), message.get("mediaUrl"), node.get("url")):
            if isinstance(candidate, str) and candidate.strip():
                return candidate

        inline = message.get("base64") or data.get("base64")
        if isinstance(inline, str) and inline and self._media_store is not None:
            try:
                return self._media_store.materialize(inline, mimetype)
            except (ValueError, OSError):
                logger.warning("Could not materialize inline media", exc_info=True)
        return None
