"""HTTP client for an Evolution-API style WhatsApp gateway."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from inbox_service.application.dto.commands import SendCommand
from inbox_service.application.exceptions import GatewayDispatchFailure, GatewayTimeout
from inbox_service.application.ports.gateway import GatewayReceipt
from inbox_service.domain.value_objects.enums import CommandAction, MessageKind
from inbox_service.services.normalizer import normalize_status, normalize_timestamp_ms

logger = logging.getLogger(__name__)

# Typing indicator shown to the peer before a text goes out.
_SEND_OPTIONS = {"delay": 1200, "presence": "composing", "linkPreview": False}


class EvolutionGatewayClient:
    """Implements application.ports.gateway.GatewayClient.

    The ``httpx.AsyncClient`` is owned by the caller so one connection pool
    serves the whole process.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str, api_key: str, instance: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._instance = instance

    async def dispatch(self, command: SendCommand) -> GatewayReceipt:
        method, path, body = self._request(command)
        url = f"{self._base_url}{path}/{self._instance}"
        try:
            response = await self._http.request(
                method, url, json=body, headers={"apikey": self._api_key},
            )
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(f"Gateway timed out on {path}") from exc
        except httpx.HTTPError as exc:
            raise GatewayDispatchFailure(f"Gateway unreachable: {exc}") from exc

        if response.is_error:
            logger.warning(
                "Gateway rejected %s (%s): %s", command.action, response.status_code, response.text[:500],
            )
            raise GatewayDispatchFailure(f"Gateway answered {response.status_code} for {command.action}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        return self._receipt(command, data)

    def _request(self, command: SendCommand) -> tuple[str, str, dict[str, Any]]:
        action = command.action
        if action in (CommandAction.SEND_TEXT, CommandAction.REPLY, CommandAction.FORWARD):
            options = dict(_SEND_OPTIONS)
            if command.quoted_id:
                options["quoted"] = {"key": {"remoteJid": command.address, "id": command.quoted_id}}
            return "POST", "/message/sendText", {
                "number": command.address,
                "options": options,
                "textMessage": {"text": command.text},
            }
        if action == CommandAction.SEND_MEDIA:
            if command.media_kind == MessageKind.STICKER:
                return "POST", "/message/sendSticker", {
                    "number": command.address,
                    "stickerMessage": {"image": command.media_ref},
                }
            media = {
                "mediatype": command.media_kind,
                "media": command.media_ref,
                "caption": command.text or "",
            }
            if command.file_name:
                media["fileName"] = command.file_name
            if command.mimetype:
                media["mimetype"] = command.mimetype
            return "POST", "/message/sendMedia", {"number": command.address, "mediaMessage": media}
        if action == CommandAction.SEND_AUDIO:
            return "POST", "/message/sendWhatsAppAudio", {
                "number": command.address,
                "options": {"encoding": True},
                "audioMessage": {"audio": command.audio_b64 or command.media_ref},
            }
        if action == CommandAction.SEND_LOCATION:
            return "POST", "/message/sendLocation", {
                "number": command.address,
                "locationMessage": {
                    "name": command.location_name or "",
                    "latitude": command.latitude,
                    "longitude": command.longitude,
                },
            }
        if action == CommandAction.SEND_POLL:
            return "POST", "/message/sendPoll", {
                "number": command.address,
                "pollMessage": {
                    "name": command.poll_title,
                    "selectableCount": command.selectable_count,
                    "values": list(command.poll_options),
                },
            }

        key = {"remoteJid": command.address, "fromMe": command.target_from_me, "id": command.target_id}
        if action == CommandAction.REACT:
            return "POST", "/message/sendReaction", {
                "reactionMessage": {"key": key, "reaction": command.emoji or ""},
            }
        if action == CommandAction.DELETE:
            return "DELETE", "/chat/deleteMessageForEveryone", {
                "id": command.target_id,
                "remoteJid": command.address,
                "fromMe": command.target_from_me,
            }
        if action == CommandAction.EDIT:
            return "PUT", "/chat/updateMessage", {
                "number": command.address,
                "key": key,
                "text": command.text,
            }
        raise GatewayDispatchFailure(f"Unsupported command {action!r}")

    @staticmethod
    def _receipt(command: SendCommand, data: Any) -> GatewayReceipt:
        key = data.get("key") if isinstance(data, dict) else None
        external_id = key.get("id") if isinstance(key, dict) else None
        if not external_id:
            if command.target_id:
                # Mutations answer without a new message key.
                return GatewayReceipt(external_id=command.target_id)
            raise GatewayDispatchFailure("Gateway response carries no message id")
        timestamp = data.get("messageTimestamp")
        timestamp_ms = normalize_timestamp_ms(timestamp, 0) if timestamp is not None else 0
        return GatewayReceipt(
            external_id=external_id,
            timestamp_ms=timestamp_ms or None,
            status=normalize_status(data.get("status")),
        )
