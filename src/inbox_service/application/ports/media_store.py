from __future__ import annotations

from typing import Protocol


class MediaStore(Protocol):
    def materialize(self, data_b64: str, mimetype: str | None) -> str:
        """Persist an inline base64 payload and return a retrievable reference."""
        ...
