from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from inbox_service.api.deps import get_verifier
from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import AppError
from inbox_service.config import settings
from inbox_service.domain.value_objects.ids import conversation_id_from_address
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW
from inbox_service.infrastructure.ws.manager import ConnectionManager
from inbox_service.infrastructure.ws.protocol import ERROR, PONG, ClientFrame, MarkReadData
from inbox_service.services import conversation_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager(settings.WS_QUEUE_SIZE)


def get_manager() -> ConnectionManager:
    return manager


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/inbox")
async def ws_inbox(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    pkey = principal.principal_key
    await manager.connect(websocket, pkey)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{pkey}",
    )
    try:
        await _read_loop(websocket)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", pkey)
    finally:
        heartbeat_task.cancel()
        await manager.disconnect(websocket)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while True:
        await asyncio.sleep(interval)
        await manager.send(ws, PONG, {})


async def _read_loop(ws: WebSocket) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = ClientFrame.model_validate_json(raw)
        except PydanticValidationError:
            await manager.send(ws, ERROR, {"code": "invalid_payload"})
            continue

        if msg.type == "ping":
            await manager.send(ws, PONG, {})
        elif msg.type == "mark_read":
            await _handle_mark_read(ws, msg.data)
        else:
            await manager.send(ws, ERROR, {"code": "unknown_type", "type": msg.type})


async def _handle_mark_read(ws: WebSocket, data: dict) -> None:
    try:
        payload = MarkReadData.model_validate(data)
    except PydanticValidationError:
        await manager.send(ws, ERROR, {"code": "invalid_data", "detail": "conversation_id required"})
        return

    # The read_state event reaches this client through the regular fan-out.
    tracker = ws.app.state.engine.tracker
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            await conversation_service.mark_read(
                conversation_id_from_address(payload.conversation_id), tracker, uow,
            )
        except AppError as exc:
            await manager.send(ws, ERROR, {"code": "mark_read_failed", "detail": exc.detail})
