from __future__ import annotations

from inbox_service.domain.entities.pending_send import PendingSend
from inbox_service.infrastructure.db.models.pending_send import PendingSendModel


def model_to_entity(model: PendingSendModel) -> PendingSend:
    return PendingSend(
        token=model.token,
        conversation_id=model.conversation_id,
        kind=model.kind,
        content=model.content,
        command=model.command,
        status=model.status,
        created_at_ms=model.created_at_ms,
        external_id=model.external_id,
        surfaced_at_ms=model.surfaced_at_ms,
    )


def entity_to_model(entity: PendingSend) -> PendingSendModel:
    return PendingSendModel(
        token=entity.token,
        conversation_id=entity.conversation_id,
        kind=entity.kind,
        content=entity.content,
        command=entity.command,
        status=entity.status,
        created_at_ms=entity.created_at_ms,
        external_id=entity.external_id,
        surfaced_at_ms=entity.surfaced_at_ms,
    )
