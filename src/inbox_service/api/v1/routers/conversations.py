from __future__ import annotations

from fastapi import APIRouter, Query

from inbox_service.api.deps import CurrentPrincipal, EngineDep, UoWDep
from inbox_service.api.v1.schemas.common import CursorPage
from inbox_service.api.v1.schemas.conversation import (
    ConversationResponse,
    ConversationSummaryResponse,
    MarkReadResponse,
)
from inbox_service.api.v1.schemas.message import MessageResponse
from inbox_service.application.pagination import encode_cursor
from inbox_service.domain.value_objects.ids import conversation_id_from_address
from inbox_service.services import conversation_service

router = APIRouter(prefix="/api/v1/inbox/conversations", tags=["conversations"])


@router.get("", response_model=CursorPage[ConversationSummaryResponse])
async def list_conversations(
    _principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> CursorPage[ConversationSummaryResponse]:
    summaries = await conversation_service.list_conversations(cursor, limit, engine.tracker, uow)
    next_cursor = None
    if len(summaries) == limit:
        last = summaries[-1].conversation
        next_cursor = encode_cursor(last.last_activity_ms, last.id)
    return CursorPage[ConversationSummaryResponse](
        items=[ConversationSummaryResponse.from_dto(s) for s in summaries],
        next_cursor=next_cursor,
    )


@router.get("/unread", response_model=dict[str, int])
async def unread_counts(
    _principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
) -> dict[str, int]:
    return await engine.tracker.unread_summary(uow)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: str,
    _principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
) -> MarkReadResponse:
    cid = conversation_id_from_address(conversation_id)
    watermark = await conversation_service.mark_read(cid, engine.tracker, uow)
    unread = await engine.tracker.unread_count(cid, uow)
    return MarkReadResponse(conversation_id=cid, watermark_ms=watermark, unread=unread)


@router.delete("/{conversation_id}", response_model=ConversationResponse)
async def delete_conversation(
    conversation_id: str,
    _principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.delete_conversation(
        conversation_id_from_address(conversation_id), engine.reconciler, uow,
    )
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.get("/{conversation_id}/messages", response_model=CursorPage[MessageResponse])
async def list_messages(
    conversation_id: str,
    _principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> CursorPage[MessageResponse]:
    messages = await conversation_service.list_messages(
        conversation_id_from_address(conversation_id), cursor, limit, uow,
    )
    next_cursor = None
    if len(messages) == limit:
        oldest = messages[0]
        next_cursor = encode_cursor(oldest.timestamp_ms, oldest.id)
    return CursorPage[MessageResponse](
        items=[MessageResponse.from_entity(m) for m in messages],
        next_cursor=next_cursor,
    )
