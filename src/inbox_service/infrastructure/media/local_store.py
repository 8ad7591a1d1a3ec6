from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import mimetypes
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalMediaStore:
    """Implements application.ports.media_store.MediaStore on a local directory.

    Files are content-addressed, so materializing the same payload twice
    yields the same reference.
    """

    def __init__(self, root: str | Path, base_url: str) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    def materialize(self, data_b64: str, mimetype: str | None) -> str:
        if "," in data_b64 and data_b64.startswith("data:"):
            header, data_b64 = data_b64.split(",", 1)
            mimetype = mimetype or header[5:].split(";", 1)[0] or None
        try:
            data = base64.b64decode(data_b64, validate=True)
        except binascii.Error as exc:
            raise ValueError("invalid base64 media payload") from exc
        if not data:
            raise ValueError("empty media payload")

        extension = ""
        if mimetype:
            extension = mimetypes.guess_extension(mimetype.split(";", 1)[0].strip()) or ""
        name = f"{hashlib.sha256(data).hexdigest()[:32]}{extension}"

        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / name
        if not path.exists():
            path.write_bytes(data)
            logger.debug("Stored %d bytes of media as %s", len(data), name)
        return f"{self._base_url}/{name}"
