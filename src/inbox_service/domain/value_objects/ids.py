from __future__ import annotations

import uuid
from typing import NewType

ConversationId = NewType("ConversationId", str)
ExternalMessageId = NewType("ExternalMessageId", str)
PlaceholderToken = NewType("PlaceholderToken", str)

# Gateway ids are upper-case hex; the prefix can never collide with them.
PLACEHOLDER_PREFIX = "pending-"


def new_placeholder_token() -> PlaceholderToken:
    return PlaceholderToken(f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex}")


def is_placeholder(message_id: str | None) -> bool:
    return bool(message_id) and message_id.startswith(PLACEHOLDER_PREFIX)  # type: ignore[union-attr]


def conversation_id_from_address(address: str) -> ConversationId:
    """Strip the routing suffix (``@s.whatsapp.net``) and device part (``:12``)."""
    local = address.strip().split("@", 1)[0]
    local = local.split(":", 1)[0]
    return ConversationId(local)


def to_routing_address(target: str, default_suffix: str) -> str:
    """Routing address for a bare number or an already-qualified address."""
    target = target.strip()
    if "@" in target:
        return target
    return f"{target}{default_suffix}"
