from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inbox_service.api.middleware.correlation_id import CorrelationIdMiddleware
from inbox_service.api.middleware.metrics import RequestTimingMiddleware
from inbox_service.api.v1.routers import (
    conversations,
    health,
    messages,
    pending,
    webhook,
    ws,
)
from inbox_service.application.exceptions import (
    ConflictError,
    GatewayDispatchFailure,
    GatewayTimeout,
    NotFoundError,
    ValidationError,
)
from inbox_service.bootstrap import build_engine
from inbox_service.config import settings
from inbox_service.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from inbox_service.infrastructure.bus.redis_streams import RedisStreamProducer
from inbox_service.infrastructure.bus.webhook_sink import RedisWebhookSink
from inbox_service.infrastructure.gateway.evolution_client import EvolutionGatewayClient
from inbox_service.infrastructure.media.local_store import LocalMediaStore

logger = logging.getLogger(__name__)


async def _on_pubsub_event(event_type: str, data: dict[str, Any]) -> None:
    """Dispatch a Redis Pub/Sub event to local WS connections."""
    await ws.get_manager().broadcast(event_type, data)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    app.state.engine = build_engine(
        settings,
        media_store=LocalMediaStore(settings.MEDIA_ROOT, settings.MEDIA_BASE_URL),
    )
    app.state.http = httpx.AsyncClient(timeout=settings.GATEWAY_TIMEOUT_SECONDS)
    app.state.gateway = EvolutionGatewayClient(
        app.state.http,
        settings.GATEWAY_URL,
        settings.GATEWAY_API_KEY,
        settings.GATEWAY_INSTANCE,
    )
    app.state.webhook_sink = RedisWebhookSink(app.state.redis, settings.WEBHOOK_DEBUG_KEY)
    app.state.event_queue = RedisStreamProducer(app.state.redis, settings.GATEWAY_EVENTS_STREAM)

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        _on_pubsub_event,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber
    logger.info(
        "Inbox service ready (gateway=%s instance=%s ingest=%s)",
        settings.GATEWAY_URL, settings.GATEWAY_INSTANCE, settings.WEBHOOK_INGEST_MODE,
    )

    yield

    await subscriber.stop()
    await ws.get_manager().close_all()
    await app.state.http.aclose()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="WhatsApp Inbox Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(webhook.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(pending.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    # Starlette resolves handlers along the MRO, so the subclass wins for timeouts.
    @app.exception_handler(GatewayTimeout)
    async def _gateway_timeout(_req: Request, exc: GatewayTimeout) -> JSONResponse:
        return JSONResponse(status_code=504, content={"detail": exc.detail})

    @app.exception_handler(GatewayDispatchFailure)
    async def _gateway_failure(_req: Request, exc: GatewayDispatchFailure) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.detail})
