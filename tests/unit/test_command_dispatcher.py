from __future__ import annotations

import pytest

from inbox_service.application.exceptions import (
    ConflictError,
    GatewayDispatchFailure,
    GatewayTimeout,
    NotFoundError,
    ValidationError,
)
from inbox_service.domain.entities.message import TOMBSTONE_TEXT
from inbox_service.domain.events.gateway_events import MessageEvent
from inbox_service.domain.value_objects.enums import (
    CommandAction,
    Direction,
    MessageKind,
    MessageStatus,
    MutationAction,
    PendingSendStatus,
)
from inbox_service.domain.value_objects.ids import is_placeholder
from inbox_service.services.command_dispatcher import CommandDispatcher
from tests.conftest import BASE_MS, FakeGateway, make_message

CID = "5511999999999"
JID = f"{CID}@s.whatsapp.net"


class FakeMediaStore:
    def materialize(self, data_b64: str, mimetype: str | None) -> str:
        if data_b64 == "not-base64!":
            raise ValueError("invalid base64 media payload")
        if data_b64 == "UmVhZE9ubHk=":
            raise PermissionError("media root is read-only")
        return "/media/voice.ogg"


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def dispatcher(registry, reconciler, tracker, gateway) -> CommandDispatcher:
    return CommandDispatcher(
        registry=registry,
        reconciler=reconciler,
        tracker=tracker,
        gateway=gateway,
        timeout_seconds=0.05,
        default_suffix="@s.whatsapp.net",
        media_store=FakeMediaStore(),
    )


async def only_pending(uow):
    return list(uow.pending._store.values())


# -- content sends ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_send_text_confirms_placeholder(dispatcher, gateway, uow):
    message = await dispatcher.send_text(CID, "hello", uow)

    assert message.external_id == "WA001"
    assert message.status == MessageStatus.SENT
    assert message.direction == Direction.OUTBOUND
    assert [m.external_id for m in await uow.messages.list_messages(CID)] == ["WA001"]

    command = gateway.commands[0]
    assert command.action == CommandAction.SEND_TEXT
    assert command.address == JID
    assert command.text == "hello"

    [pending] = await only_pending(uow)
    assert pending.status == PendingSendStatus.RESOLVED
    assert await uow.read_state.get_watermark(CID) == BASE_MS


@pytest.mark.asyncio
async def test_qualified_address_is_kept(dispatcher, gateway, uow):
    await dispatcher.send_text("120363025246125486@g.us", "hi group", uow)
    assert gateway.commands[0].address == "120363025246125486@g.us"
    assert await uow.conversations.get_by_id("120363025246125486") is not None


@pytest.mark.asyncio
async def test_empty_text_is_rejected_before_dispatch(dispatcher, gateway, uow):
    with pytest.raises(ValidationError):
        await dispatcher.send_text(CID, "   ", uow)
    assert gateway.commands == []
    assert await only_pending(uow) == []


@pytest.mark.asyncio
async def test_reply_carries_quoted_id(dispatcher, gateway, uow):
    message = await dispatcher.reply(CID, "sure", "WA100", uow)

    assert gateway.commands[0].action == CommandAction.REPLY
    assert gateway.commands[0].quoted_id == "WA100"
    assert message.quoted_id == "WA100"


@pytest.mark.asyncio
async def test_gateway_failure_marks_placeholder_error(dispatcher, gateway, uow):
    gateway.fail_with("number not on WhatsApp")

    with pytest.raises(GatewayDispatchFailure) as exc_info:
        await dispatcher.send_text(CID, "hello", uow)

    assert not isinstance(exc_info.value, GatewayTimeout)
    [message] = await uow.messages.list_messages(CID)
    assert is_placeholder(message.external_id)
    assert message.status == MessageStatus.ERROR
    [pending] = await only_pending(uow)
    assert pending.status == PendingSendStatus.ERROR


@pytest.mark.asyncio
async def test_gateway_timeout(dispatcher, gateway, uow):
    gateway.delay = 1.0

    with pytest.raises(GatewayTimeout):
        await dispatcher.send_text(CID, "hello", uow)

    [message] = await uow.messages.list_messages(CID)
    assert message.status == MessageStatus.ERROR


@pytest.mark.asyncio
async def test_failure_after_echo_confirmation_returns_message(dispatcher, gateway, reconciler, uow):
    async def echo_then_fail(command):
        # The webhook echo lands while the HTTP call is still in flight.
        await reconciler.apply(
            MessageEvent(
                conversation_id=CID,
                external_id="WA777",
                from_me=True,
                timestamp_ms=BASE_MS,
                kind=MessageKind.TEXT,
                content="hello",
            ),
            uow,
        )
        gateway.fail_with("response lost")

    gateway.on_dispatch = echo_then_fail

    message = await dispatcher.send_text(CID, "hello", uow)

    assert message.external_id == "WA777"
    assert message.status == MessageStatus.SENT


@pytest.mark.asyncio
async def test_send_media(dispatcher, gateway, uow):
    message = await dispatcher.send_media(
        CID, "https://cdn/photo.jpg", MessageKind.IMAGE, uow, caption="look", mimetype="image/jpeg",
    )

    assert message.kind == MessageKind.IMAGE
    assert message.media_ref == "https://cdn/photo.jpg"
    assert message.content == "look"
    assert message.payload == {"mimetype": "image/jpeg"}
    assert gateway.commands[0].media_kind == MessageKind.IMAGE


@pytest.mark.asyncio
async def test_send_media_rejects_audio_and_unknown_kinds(dispatcher, uow):
    with pytest.raises(ValidationError):
        await dispatcher.send_media(CID, "https://cdn/a.ogg", MessageKind.AUDIO, uow)
    with pytest.raises(ValidationError):
        await dispatcher.send_media(CID, "https://cdn/x", "hologram", uow)


@pytest.mark.asyncio
async def test_send_audio_materializes_local_copy(dispatcher, gateway, uow):
    message = await dispatcher.send_audio(CID, uow, audio_b64="T2dnUw==")

    assert message.kind == MessageKind.AUDIO
    assert message.media_ref == "/media/voice.ogg"
    assert gateway.commands[0].audio_b64 == "T2dnUw=="


@pytest.mark.asyncio
async def test_send_audio_without_writable_media_root_still_sends(dispatcher, gateway, uow, caplog):
    message = await dispatcher.send_audio(CID, uow, audio_b64="UmVhZE9ubHk=")

    assert message.external_id == "WA001"
    assert message.media_ref is None
    assert gateway.commands[0].audio_b64 == "UmVhZE9ubHk="
    assert "local audio copy" in caplog.text


@pytest.mark.asyncio
async def test_send_audio_validation(dispatcher, gateway, uow):
    with pytest.raises(ValidationError):
        await dispatcher.send_audio(CID, uow)
    with pytest.raises(ValidationError):
        await dispatcher.send_audio(CID, uow, audio_b64="not-base64!")
    assert gateway.commands == []


@pytest.mark.asyncio
async def test_send_location(dispatcher, uow):
    message = await dispatcher.send_location(CID, -23.55, -46.63, uow, name="Office")
    assert message.kind == MessageKind.LOCATION
    assert message.content == "Office"
    assert message.payload == {"latitude": -23.55, "longitude": -46.63, "name": "Office"}

    with pytest.raises(ValidationError):
        await dispatcher.send_location(CID, 91, 0, uow)


@pytest.mark.asyncio
async def test_send_poll(dispatcher, gateway, uow):
    message = await dispatcher.send_poll(CID, "Lunch?", ["Yes", " No ", ""], uow)
    assert message.payload == {"title": "Lunch?", "options": ["Yes", "No"], "selectable_count": 1}
    assert gateway.commands[0].poll_options == ("Yes", "No")

    with pytest.raises(ValidationError):
        await dispatcher.send_poll(CID, "Lunch?", ["Yes"], uow)
    with pytest.raises(ValidationError):
        await dispatcher.send_poll(CID, "Lunch?", ["Yes", "No"], uow, selectable_count=3)


@pytest.mark.asyncio
async def test_forward_text_into_other_conversation(dispatcher, gateway, uow):
    uow.add_message(make_message(external_id="WA1", content="pass it on"))

    message = await dispatcher.forward(CID, "WA1", "5521888888888", uow)

    assert message.conversation_id == "5521888888888"
    assert message.content == "pass it on"
    assert gateway.commands[0].action == CommandAction.SEND_TEXT


@pytest.mark.asyncio
async def test_forward_media_reuses_reference(dispatcher, gateway, uow):
    uow.add_message(make_message(
        external_id="WA2", kind=MessageKind.IMAGE, content="[image]", media_ref="https://cdn/p.jpg",
    ))

    message = await dispatcher.forward(CID, "WA2", "5521888888888", uow)

    assert message.media_ref == "https://cdn/p.jpg"
    assert gateway.commands[0].text is None


@pytest.mark.asyncio
async def test_forward_errors(dispatcher, uow):
    uow.add_message(make_message(external_id="WA3", status=MessageStatus.DELETED))
    with pytest.raises(NotFoundError):
        await dispatcher.forward(CID, "NOPE", "5521888888888", uow)
    with pytest.raises(ConflictError):
        await dispatcher.forward(CID, "WA3", "5521888888888", uow)


# -- mutations ---------------------------------------------------------------------


@pytest.mark.asyncio
async def test_react_to_inbound_message(dispatcher, gateway, uow):
    uow.add_message(make_message(external_id="WA1"))

    message = await dispatcher.react(CID, "WA1", "👍", uow)

    assert message.reaction == "👍"
    command = gateway.commands[0]
    assert command.action == CommandAction.REACT
    assert command.target_id == "WA1"
    assert command.target_from_me is False


@pytest.mark.asyncio
async def test_edit_own_message(dispatcher, gateway, uow):
    uow.add_message(make_message(external_id="WA1", direction=Direction.OUTBOUND, content="helo"))

    message = await dispatcher.edit(CID, "WA1", "hello", uow)

    assert message.content == "hello"
    assert message.edited is True
    assert message.failed_action is None
    assert gateway.commands[0].text == "hello"


@pytest.mark.asyncio
async def test_mutation_guards(dispatcher, gateway, uow):
    uow.add_message(make_message(external_id="WA1"))
    uow.add_message(make_message(external_id="pending-abc", direction=Direction.OUTBOUND))

    with pytest.raises(ValidationError):
        await dispatcher.edit(CID, "WA1", "not mine", uow)
    with pytest.raises(ValidationError):
        await dispatcher.delete(CID, "WA1", uow)
    with pytest.raises(ConflictError):
        await dispatcher.react(CID, "pending-abc", "👍", uow)
    with pytest.raises(NotFoundError):
        await dispatcher.react(CID, "NOPE", "👍", uow)
    assert gateway.commands == []


@pytest.mark.asyncio
async def test_failed_delete_is_flagged(dispatcher, gateway, uow):
    uow.add_message(make_message(external_id="WA1", direction=Direction.OUTBOUND))
    gateway.fail_with("too old to delete")

    with pytest.raises(GatewayDispatchFailure):
        await dispatcher.delete(CID, "WA1", uow)

    message = await uow.messages.get_by_external_id(CID, "WA1")
    assert message.failed_action == MutationAction.DELETE
    assert message.content == TOMBSTONE_TEXT
