from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    async def publish(self, channel: str, event_type: str, data: dict[str, Any]) -> None: ...


class GatewayEventQueue(Protocol):
    """Durable hand-off of raw webhook bodies to the ingestion worker."""

    async def append(self, event_name: str, body: dict[str, Any]) -> str: ...


class WebhookSink(Protocol):
    """Keeps the most recent raw webhook for diagnostics."""

    async def store(self, payload: dict[str, Any]) -> None: ...

    async def load(self) -> dict[str, Any] | None: ...
