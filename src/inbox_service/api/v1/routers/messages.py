from __future__ import annotations

from fastapi import APIRouter

from inbox_service.api.deps import CurrentPrincipal, DispatcherDep, UoWDep
from inbox_service.api.v1.schemas.message import (
    EditRequest,
    ForwardRequest,
    MessageResponse,
    ReactionRequest,
    ReplyRequest,
    SendAudioRequest,
    SendLocationRequest,
    SendMediaRequest,
    SendPollRequest,
    SendTextRequest,
)
from inbox_service.domain.value_objects.ids import conversation_id_from_address

router = APIRouter(prefix="/api/v1/inbox/conversations", tags=["messages"])


@router.post("/{target}/messages/text", response_model=MessageResponse, status_code=201)
async def send_text(
    target: str,
    body: SendTextRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.send_text(target, body.text, uow)
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/reply", response_model=MessageResponse, status_code=201)
async def reply(
    target: str,
    body: ReplyRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.reply(target, body.text, body.quoted_id, uow)
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/media", response_model=MessageResponse, status_code=201)
async def send_media(
    target: str,
    body: SendMediaRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.send_media(
        target,
        body.media_ref,
        body.kind,
        uow,
        caption=body.caption,
        mimetype=body.mimetype,
        file_name=body.file_name,
    )
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/audio", response_model=MessageResponse, status_code=201)
async def send_audio(
    target: str,
    body: SendAudioRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.send_audio(
        target, uow, audio_b64=body.audio_b64, media_ref=body.media_ref,
    )
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/location", response_model=MessageResponse, status_code=201)
async def send_location(
    target: str,
    body: SendLocationRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.send_location(
        target, body.latitude, body.longitude, uow, name=body.name,
    )
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/poll", response_model=MessageResponse, status_code=201)
async def send_poll(
    target: str,
    body: SendPollRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.send_poll(
        target, body.title, body.options, uow, selectable_count=body.selectable_count,
    )
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/{message_id}/reaction", response_model=MessageResponse)
async def react(
    target: str,
    message_id: str,
    body: ReactionRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.react(target, message_id, body.emoji, uow)
    return MessageResponse.from_entity(message)


@router.patch("/{target}/messages/{message_id}", response_model=MessageResponse)
async def edit(
    target: str,
    message_id: str,
    body: EditRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.edit(target, message_id, body.text, uow)
    return MessageResponse.from_entity(message)


@router.delete("/{target}/messages/{message_id}", response_model=MessageResponse)
async def delete(
    target: str,
    message_id: str,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.delete(target, message_id, uow)
    return MessageResponse.from_entity(message)


@router.post("/{target}/messages/{message_id}/forward", response_model=MessageResponse, status_code=201)
async def forward(
    target: str,
    message_id: str,
    body: ForwardRequest,
    _principal: CurrentPrincipal,
    dispatcher: DispatcherDep,
    uow: UoWDep,
) -> MessageResponse:
    message = await dispatcher.forward(
        conversation_id_from_address(target), message_id, body.target, uow,
    )
    return MessageResponse.from_entity(message)
