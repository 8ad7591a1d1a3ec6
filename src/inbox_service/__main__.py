"""Entrypoint: python -m inbox_service"""
from __future__ import annotations

import logging

import uvicorn

from inbox_service.api.middleware.correlation_id import CorrelationIdFilter
from inbox_service.config import settings


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())

    uvicorn.run(
        "inbox_service.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
