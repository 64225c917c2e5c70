from __future__ import annotations

from fastapi import APIRouter, Depends

from mindtheatre.apps.api.core.services import Services
from mindtheatre.apps.api.deps import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    return {
        "status": "ok",
        "agents": len(services.roster.agents),
        "storage": services.settings.storage_backend,
    }


__all__ = ["router"]
