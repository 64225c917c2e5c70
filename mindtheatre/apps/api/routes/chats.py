"""Conversation endpoints: start, list, history and the streamed turn."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from mindtheatre.apps.api.core.services import Services
from mindtheatre.apps.api.deps import get_services
from mindtheatre.libs.schemas.chat import StartChatResponse, TurnRequest

router = APIRouter(prefix="/chats", tags=["chats"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("", response_model=StartChatResponse, status_code=status.HTTP_201_CREATED)
async def start_chat(services: Services = Depends(get_services)) -> StartChatResponse:
    conversation = await services.repository.create_conversation()
    logger.info("Started conversation %s", conversation.id)
    return StartChatResponse(chat_id=conversation.id)


@router.get("")
async def list_chats(services: Services = Depends(get_services)):
    conversations = await services.repository.list_conversations()
    return [conversation.as_dict() for conversation in conversations]


@router.get("/{chat_id}/history")
async def chat_history(chat_id: str, services: Services = Depends(get_services)):
    if await services.repository.get_conversation(chat_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    messages = await services.repository.list_messages(chat_id)
    return [message.as_dict() for message in messages]


@router.post("/{chat_id}/turn")
async def chat_turn(chat_id: str, payload: TurnRequest, services: Services = Depends(get_services)):
    frames = services.turns.stream(chat_id, payload.message)
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)


__all__ = ["router"]
