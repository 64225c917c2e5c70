from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from mindtheatre.apps.api.core.services import Services
from mindtheatre.apps.api.deps import get_services
from mindtheatre.libs.logging_utils import colorize
from mindtheatre.libs.schemas.chat import ClearMemoryResponse

router = APIRouter(prefix="/admin", tags=["admin"])
LOGGER = logging.getLogger(__name__)


@router.post("/clear_memory", response_model=ClearMemoryResponse)
async def clear_memory(services: Services = Depends(get_services)) -> ClearMemoryResponse:
    summary = await services.clear_all()
    LOGGER.warning(colorize("Cleared all conversations and memories", "yellow"), extra=dict(summary.as_dict()))
    return ClearMemoryResponse(details=dict(summary.as_dict()))


__all__ = ["router"]
