from __future__ import annotations

from dataclasses import dataclass

from inbox_service.domain.value_objects.enums import CommandAction


@dataclass(frozen=True, slots=True)
class SendCommand:
    """Canonical command handed to the gateway client.

    ``address`` is the full routing address; ``conversation_id`` is the
    stripped peer id used for the local timeline.
    """

    action: CommandAction
    address: str
    conversation_id: str
    text: str | None = None
    media_ref: str | None = None
    media_kind: str | None = None
    mimetype: str | None = None
    file_name: str | None = None
    audio_b64: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    poll_title: str | None = None
    poll_options: tuple[str, ...] = ()
    selectable_count: int = 1
    target_id: str | None = None
    target_from_me: bool = False
    emoji: str | None = None
    quoted_id: str | None = None
