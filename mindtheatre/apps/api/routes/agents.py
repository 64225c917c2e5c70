from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mindtheatre.apps.api.core.agents import PSYCHE_NAME
from mindtheatre.apps.api.core.services import Services
from mindtheatre.apps.api.deps import get_services
from mindtheatre.libs.persistence import MemorySortField, SortOrder

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("")
async def list_agents(services: Services = Depends(get_services)):
    return [{"name": agent.name, "color": agent.color} for agent in services.roster.agents]


@router.get("/{agent_name}/memories")
async def agent_memories(
    agent_name: str,
    sort_by: MemorySortField = Query("timestamp"),
    sort_order: SortOrder = Query("desc"),
    services: Services = Depends(get_services),
):
    """Episodic memories for one agent; the synthesized voice is addressable as Psyche."""

    known = set(services.roster.names()) | {PSYCHE_NAME}
    if agent_name not in known:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    records = await services.repository.list_memories(agent_name, sort_by=sort_by, order=sort_order)
    return [record.as_dict() for record in records]


__all__ = ["router"]
