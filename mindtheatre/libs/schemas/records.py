"""Domain records shared by the memory store, persistence and turn services."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class GenerationParams:
    """Completion parameters resolved once at the configuration boundary."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class AgentIdentity:
    """A configured persona. Immutable after the roster is loaded."""

    name: str
    system_prompt: str
    params: GenerationParams
    color: str = "grey"


@dataclass(frozen=True, slots=True)
class Affect:
    """Valence in [-1, 1], arousal in [0, 1]."""

    valence: float
    arousal: float


@dataclass(slots=True)
class Conversation:
    id: str
    created_at: datetime = field(default_factory=utcnow)
    preview: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "created_at": self.created_at.isoformat()}
        if self.preview is not None:
            payload["initial_prompt_preview"] = self.preview
        return payload


@dataclass(slots=True)
class StoredMessage:
    """A persisted conversation message. ``kind`` is user, agent or psyche."""

    id: str
    conversation_id: str
    sender: str
    kind: str
    text: str
    valence: float | None = None
    arousal: float | None = None
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender": self.sender,
            "type": self.kind,
            "text": self.text,
            "valence": self.valence,
            "arousal": self.arousal,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class AgentResponse:
    """One agent's settled reply for a turn."""

    agent_name: str
    text: str
    color: str
    valence: float | None = None
    arousal: float | None = None
    message_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def as_payload(self) -> dict[str, Any]:
        return {
            "name": self.agent_name,
            "reply": self.text,
            "color": self.color,
            "valence": self.valence,
            "arousal": self.arousal,
            "message_id": self.message_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class EpisodicMemoryRecord:
    """A past reply stored with its embedding. Only recall bookkeeping mutates it."""

    agent_name: str
    text: str
    embedding: list[float]
    valence: float | None = None
    arousal: float | None = None
    user_prompt: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    recall_count: int = 0
    last_recalled_at: datetime | None = None

    def as_dict(self, *, include_embedding: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "agent_name": self.agent_name,
            "text": self.text,
            "valence": self.valence,
            "arousal": self.arousal,
            "user_prompt": self.user_prompt,
            "timestamp": self.created_at.isoformat(),
            "recall_count": self.recall_count,
            "last_recalled_at": self.last_recalled_at.isoformat() if self.last_recalled_at else None,
        }
        if include_embedding:
            payload["embedding"] = list(self.embedding)
        return payload


@dataclass(slots=True)
class SynthesizedResponse:
    """The unified first-person reply closing a turn."""

    text: str
    conversation_id: str
    valence: float | None = None
    arousal: float | None = None
    depth: int = 0
    message_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "conversation_id": self.conversation_id,
            "text": self.text,
            "valence": self.valence,
            "arousal": self.arousal,
            "depth": self.depth,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class ConversationTurn:
    """A user utterance with every agent reply and the synthesis it produced."""

    conversation_id: str
    utterance: str
    responses: dict[str, AgentResponse] = field(default_factory=dict)
    synthesized: SynthesizedResponse | None = None
    started_at: datetime = field(default_factory=utcnow)

    def add_response(self, response: AgentResponse) -> None:
        if response.agent_name in self.responses:
            raise ValueError(f"Agent '{response.agent_name}' already replied in this turn")
        self.responses[response.agent_name] = response


@dataclass(frozen=True, slots=True)
class ClearSummary:
    deleted_messages: int
    deleted_conversations: int
    deleted_memories: int

    def as_dict(self) -> Mapping[str, int]:
        return {
            "deleted_messages": self.deleted_messages,
            "deleted_chats": self.deleted_conversations,
            "deleted_memories": self.deleted_memories,
        }


__all__ = [
    "Affect",
    "AgentIdentity",
    "AgentResponse",
    "ClearSummary",
    "Conversation",
    "ConversationTurn",
    "EpisodicMemoryRecord",
    "GenerationParams",
    "StoredMessage",
    "SynthesizedResponse",
    "new_id",
    "utcnow",
]
