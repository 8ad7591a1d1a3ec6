from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "info"

    OUTBOX_POLL_INTERVAL: float = 1.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5

    WS_HEARTBEAT_SECONDS: int = 30
    WS_QUEUE_SIZE: int = 256

    REDIS_PUBSUB_CHANNEL: str = "inbox.fanout"

    GATEWAY_URL: str = "http://localhost:8080"
    GATEWAY_API_KEY: str = ""
    GATEWAY_INSTANCE: str = "inbox"
    GATEWAY_TIMEOUT_SECONDS: float = 15.0
    DEFAULT_ADDRESS_SUFFIX: str = "@s.whatsapp.net"

    WEBHOOK_API_KEY: str | None = None
    WEBHOOK_INGEST_MODE: Literal["inline", "stream"] = "inline"
    WEBHOOK_DEBUG_KEY: str = "inbox:last_webhook"
    GATEWAY_EVENTS_STREAM: str = "gateway.events"
    GATEWAY_EVENTS_GROUP: str = "inbox-service"

    PENDING_MATCH_GRACE_SECONDS: int = 120
    PENDING_STALE_SECONDS: int = 300
    PENDING_SWEEP_INTERVAL: float = 30.0

    MEDIA_ROOT: str = "./media"
    MEDIA_BASE_URL: str = "/media"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
