from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class GatewayDispatchFailure(AppError):
    """The gateway rejected a command or could not be reached."""


class GatewayTimeout(GatewayDispatchFailure):
    pass


class MalformedEvent(AppError):
    """Gateway payload lacks the fields needed to build a canonical event."""


class UnknownMessageKind(AppError):
    def __init__(self, detail: str, payload: Any) -> None:
        super().__init__(detail)
        self.payload = payload
