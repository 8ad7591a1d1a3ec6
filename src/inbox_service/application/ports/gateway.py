from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from inbox_service.application.dto.commands import SendCommand


@dataclass(frozen=True, slots=True)
class GatewayReceipt:
    external_id: str
    timestamp_ms: int | None = None
    status: str | None = None
    media_ref: str | None = None


class GatewayClient(Protocol):
    async def dispatch(self, command: SendCommand) -> GatewayReceipt:
        """Send a command. Raises GatewayDispatchFailure on rejection or transport error."""
        ...
