"""Cursor-based pagination helpers.

Cursor format: base64("<position>|<key>") where position is an ms timestamp.
"""
from __future__ import annotations

import base64
import binascii

from inbox_service.application.exceptions import ValidationError


def encode_cursor(position: int | None, key: object) -> str:
    raw = f"{position or 0}|{key}"
    cursor = base64.urlsafe_b64encode(raw.encode()).decode()
    return cursor.rstrip("=")


def decode_cursor(cursor: str) -> tuple[int, str]:
    # Restore base64 padding if it was stripped
    cursor += "=" * ((4 - len(cursor) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        position, key = raw.split("|", 1)
        return int(position), key
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Malformed cursor") from exc
