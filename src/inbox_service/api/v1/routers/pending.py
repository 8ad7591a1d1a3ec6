from __future__ import annotations

from fastapi import APIRouter, Query

from inbox_service.api.deps import CurrentPrincipal, EngineDep, UoWDep
from inbox_service.api.v1.schemas.pending import PendingSendResponse

router = APIRouter(prefix="/api/v1/inbox/pending", tags=["pending"])


@router.get("/stale", response_model=list[PendingSendResponse])
async def list_stale(
    _principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
    include_surfaced: bool = Query(True),
) -> list[PendingSendResponse]:
    """Sends the gateway never confirmed within the staleness window."""
    stale = await engine.registry.list_stale(uow, include_surfaced=include_surfaced)
    return [PendingSendResponse.model_validate(p, from_attributes=True) for p in stale]
