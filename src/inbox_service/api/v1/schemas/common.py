from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

ItemT = TypeVar("ItemT")


class CursorPage(BaseModel, Generic[ItemT]):
    """Keyset page; pass ``next_cursor`` back unchanged to continue."""

    items: list[ItemT]
    next_cursor: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None
