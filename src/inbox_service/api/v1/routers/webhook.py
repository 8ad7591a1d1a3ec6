"""Gateway webhook intake."""
from __future__ import annotations

import json
import logging
import secrets
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from inbox_service.api.deps import (
    CurrentPrincipal,
    EngineDep,
    EventQueueDep,
    UoWDep,
    WebhookSinkDep,
)
from inbox_service.config import settings
from inbox_service.services import ingestion_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhook"])


def _check_api_key(request: Request, body: dict[str, Any]) -> None:
    expected = settings.WEBHOOK_API_KEY
    if not expected:
        return
    supplied = request.headers.get("apikey") or body.get("apikey") or ""
    if not secrets.compare_digest(str(supplied), expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook api key")


@router.post("/webhook/{instance}")
async def receive_webhook(
    instance: str,
    request: Request,
    engine: EngineDep,
    uow: UoWDep,
    sink: WebhookSinkDep,
    queue: EventQueueDep,
) -> dict[str, Any]:
    """Accept one gateway event. Discarded events still answer 200 so the gateway does not retry."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be a JSON object")

    _check_api_key(request, body)
    await sink.store(body)

    event_name = str(body.get("event") or "")
    if settings.WEBHOOK_INGEST_MODE == "stream":
        entry_id = await queue.append(event_name, body)
        return {"status": "queued", "id": entry_id}

    results = await ingestion_service.ingest_gateway_event(body, engine.normalizer, engine.reconciler, uow)
    logger.debug("Webhook %s from %s -> %d events", event_name, instance, len(results))
    return {"status": "ok", "outcomes": [r.outcome for r in results]}


@router.get("/api/v1/inbox/debug/last-webhook")
async def last_webhook(_principal: CurrentPrincipal, sink: WebhookSinkDep) -> dict[str, Any]:
    payload = await sink.load()
    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No webhook received yet")
    return payload
