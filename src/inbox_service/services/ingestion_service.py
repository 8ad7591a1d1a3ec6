from __future__ import annotations

import logging
from typing import Any

from inbox_service.application.dto.results import ReconciliationResult
from inbox_service.application.uow import UnitOfWork
from inbox_service.services.normalizer import GatewayEventNormalizer
from inbox_service.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


async def ingest_gateway_event(
    raw: Any,
    normalizer: GatewayEventNormalizer,
    reconciler: Reconciler,
    uow: UnitOfWork,
) -> list[ReconciliationResult]:
    """Normalize one raw webhook body and reconcile every event it yields.

    Discarded payloads produce an empty list; nothing here raises on bad input.
    """
    results = []
    for event in normalizer.normalize_all(raw):
        result = await reconciler.apply(event, uow)
        logger.debug("%s -> %s", type(event).__name__, result.outcome)
        results.append(result)
    return results
