"""Pydantic models, settings and domain records."""

from .chat import ClearMemoryResponse, StartChatResponse, TurnRequest
from .db import create_pool
from .records import (
    Affect,
    AgentIdentity,
    AgentResponse,
    ClearSummary,
    Conversation,
    ConversationTurn,
    EpisodicMemoryRecord,
    GenerationParams,
    StoredMessage,
    SynthesizedResponse,
)
from .settings import AppSettings, get_settings

__all__ = [
    "Affect",
    "AgentIdentity",
    "AgentResponse",
    "AppSettings",
    "ClearMemoryResponse",
    "ClearSummary",
    "Conversation",
    "ConversationTurn",
    "EpisodicMemoryRecord",
    "GenerationParams",
    "StartChatResponse",
    "StoredMessage",
    "SynthesizedResponse",
    "TurnRequest",
    "create_pool",
    "get_settings",
]
