"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from inbox_service.application.dto.principal import Principal
from inbox_service.application.ports.auth import TokenVerifier
from inbox_service.application.ports.bus import GatewayEventQueue, WebhookSink
from inbox_service.application.ports.gateway import GatewayClient
from inbox_service.bootstrap import InboxEngine
from inbox_service.config import settings
from inbox_service.infrastructure.auth.hs256_verifier import HS256Verifier
from inbox_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW
from inbox_service.services.command_dispatcher import CommandDispatcher

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except (jwt.PyJWTError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_engine(request: Request) -> InboxEngine:
    return request.app.state.engine


EngineDep = Annotated[InboxEngine, Depends(get_engine)]


def get_gateway(request: Request) -> GatewayClient:
    return request.app.state.gateway


def get_dispatcher(
    engine: EngineDep,
    gateway: Annotated[GatewayClient, Depends(get_gateway)],
) -> CommandDispatcher:
    return engine.dispatcher(gateway, settings)


DispatcherDep = Annotated[CommandDispatcher, Depends(get_dispatcher)]


def get_webhook_sink(request: Request) -> WebhookSink:
    return request.app.state.webhook_sink


WebhookSinkDep = Annotated[WebhookSink, Depends(get_webhook_sink)]


def get_event_queue(request: Request) -> GatewayEventQueue:
    return request.app.state.event_queue


EventQueueDep = Annotated[GatewayEventQueue, Depends(get_event_queue)]
