"""Forward-only message status lattice.

``pending < sent < delivered < read``. ``error`` and ``deleted`` are terminal:
they can be entered from any state and are never left by a merge.
``deleted`` also absorbs ``error``.
"""
from __future__ import annotations

from inbox_service.domain.value_objects.enums import MessageStatus

_RANK: dict[MessageStatus, int] = {
    MessageStatus.PENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}


def is_terminal(status: str) -> bool:
    return status in (MessageStatus.ERROR, MessageStatus.DELETED)


def merge_status(current: str, incoming: str | None) -> str:
    """Return the status that results from applying ``incoming`` to ``current``."""
    if incoming is None or incoming == current:
        return current
    if current == MessageStatus.DELETED:
        return current
    if incoming == MessageStatus.DELETED:
        return incoming
    if current == MessageStatus.ERROR:
        return current
    if incoming == MessageStatus.ERROR:
        return incoming
    if _RANK[MessageStatus(incoming)] > _RANK[MessageStatus(current)]:
        return incoming
    return current
