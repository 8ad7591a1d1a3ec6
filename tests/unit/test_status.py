from __future__ import annotations

import pytest

from inbox_service.domain.status import is_terminal, merge_status
from inbox_service.domain.value_objects.enums import MessageStatus as S
from inbox_service.domain.value_objects.ids import (
    conversation_id_from_address,
    is_placeholder,
    new_placeholder_token,
    to_routing_address,
)


@pytest.mark.parametrize(
    "current, incoming, expected",
    [
        (S.PENDING, S.SENT, S.SENT),
        (S.SENT, S.READ, S.READ),
        (S.READ, S.DELIVERED, S.READ),
        (S.DELIVERED, S.SENT, S.DELIVERED),
        (S.SENT, None, S.SENT),
        (S.READ, S.ERROR, S.ERROR),
        (S.ERROR, S.READ, S.ERROR),
        (S.ERROR, S.DELETED, S.DELETED),
        (S.DELETED, S.ERROR, S.DELETED),
        (S.DELETED, S.READ, S.DELETED),
        (S.PENDING, S.DELETED, S.DELETED),
    ],
)
def test_merge_status_is_forward_only(current, incoming, expected):
    assert merge_status(current, incoming) == expected


def test_terminal_states():
    assert is_terminal(S.ERROR)
    assert is_terminal(S.DELETED)
    assert not is_terminal(S.READ)


def test_placeholder_tokens_are_unique_and_recognizable():
    a, b = new_placeholder_token(), new_placeholder_token()
    assert a != b
    assert is_placeholder(a)
    assert not is_placeholder("3EB0C767D26A1D5A")
    assert not is_placeholder(None)


@pytest.mark.parametrize(
    "address, expected",
    [
        ("5511999999999@s.whatsapp.net", "5511999999999"),
        ("5511999999999:12@s.whatsapp.net", "5511999999999"),
        ("120363025246125486@g.us", "120363025246125486"),
        (" 5511999999999 ", "5511999999999"),
    ],
)
def test_conversation_id_from_address(address, expected):
    assert conversation_id_from_address(address) == expected


def test_to_routing_address():
    assert to_routing_address("5511999999999", "@s.whatsapp.net") == "5511999999999@s.whatsapp.net"
    assert to_routing_address("120363@g.us", "@s.whatsapp.net") == "120363@g.us"
