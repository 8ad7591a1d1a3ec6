from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def dumps(payload: Any) -> str:
    return json.dumps(payload, cls=_Encoder, ensure_ascii=False)


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    """Fan-out envelope; the same ``{type, data}`` shape reaches WebSocket clients."""
    return dumps({"type": event_type, "data": payload})


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    data = json.loads(raw)
    return data["type"], data["data"]


def encode_stream_fields(event_name: str, body: dict[str, Any]) -> dict[str, str]:
    """Stream entries are flat string maps; the webhook body travels as JSON."""
    return {"event_type": event_name or "unknown", "body": dumps(body)}


def decode_stream_fields(fields: dict[str, str]) -> dict[str, Any]:
    return json.loads(fields["body"])
