"""Persistence contract for conversations, messages and episodic memories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal, Sequence

from mindtheatre.libs.schemas.records import (
    ClearSummary,
    Conversation,
    EpisodicMemoryRecord,
    StoredMessage,
)

MemorySortField = Literal["timestamp", "recall_count"]
SortOrder = Literal["asc", "desc"]


class Repository(ABC):
    """CRUD plus the per-agent nearest-neighbour query the memory store relies on."""

    @abstractmethod
    async def create_conversation(self) -> Conversation: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """Newest first, each carrying a preview of its first user message."""

    @abstractmethod
    async def add_message(
        self,
        conversation_id: str,
        *,
        sender: str,
        kind: str,
        text: str,
        valence: float | None = None,
        arousal: float | None = None,
    ) -> StoredMessage: ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        """Chronological order."""

    @abstractmethod
    async def insert_memory(self, record: EpisodicMemoryRecord) -> None: ...

    @abstractmethod
    async def nearest_memories(
        self,
        agent_name: str,
        vector: Sequence[float],
        k: int,
    ) -> list[tuple[EpisodicMemoryRecord, float]]:
        """Top-k records for ``agent_name`` by ascending cosine distance, ties by earliest timestamp."""

    @abstractmethod
    async def mark_recalled(self, memory_ids: Sequence[str]) -> None: ...

    @abstractmethod
    async def list_memories(
        self,
        agent_name: str,
        *,
        sort_by: MemorySortField = "timestamp",
        order: SortOrder = "desc",
    ) -> list[EpisodicMemoryRecord]: ...

    @abstractmethod
    async def clear_all(self) -> ClearSummary:
        """Delete conversations, messages and memories as one atomic unit."""

    async def close(self) -> None:
        return None


__all__ = ["MemorySortField", "Repository", "SortOrder"]
