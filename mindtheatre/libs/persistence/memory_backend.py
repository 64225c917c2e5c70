"""Process-local repository for development runs and the test suite."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Sequence

from mindtheatre.libs.embeddings import cosine_distance
from mindtheatre.libs.schemas.records import (
    ClearSummary,
    Conversation,
    EpisodicMemoryRecord,
    StoredMessage,
    new_id,
    utcnow,
)

from .base import MemorySortField, Repository, SortOrder


class InMemoryRepository(Repository):
    """
    Dict-backed repository. Similarity search is a linear scan, which is fine
    for local use; production deployments use the pgvector HNSW index.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[StoredMessage]] = {}
        self._memories: dict[str, EpisodicMemoryRecord] = {}
        self._lock = asyncio.Lock()

    async def create_conversation(self) -> Conversation:
        async with self._lock:
            conversation = Conversation(id=new_id())
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
            return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._lock:
            return self._conversations.get(conversation_id)

    async def list_conversations(self) -> list[Conversation]:
        async with self._lock:
            results: list[Conversation] = []
            for conversation in self._conversations.values():
                first_user = next(
                    (m for m in self._messages.get(conversation.id, []) if m.kind == "user"),
                    None,
                )
                preview = first_user.text[:100] if first_user else "(No user messages yet)"
                results.append(
                    Conversation(id=conversation.id, created_at=conversation.created_at, preview=preview)
                )
        results.sort(key=lambda c: c.created_at, reverse=True)
        return results

    async def add_message(
        self,
        conversation_id: str,
        *,
        sender: str,
        kind: str,
        text: str,
        valence: float | None = None,
        arousal: float | None = None,
    ) -> StoredMessage:
        async with self._lock:
            if conversation_id not in self._conversations:
                raise LookupError(f"Conversation {conversation_id} not found")
            message = StoredMessage(
                id=new_id(),
                conversation_id=conversation_id,
                sender=sender,
                kind=kind,
                text=text,
                valence=valence,
                arousal=arousal,
            )
            self._messages[conversation_id].append(message)
            return message

    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        async with self._lock:
            return sorted(self._messages.get(conversation_id, []), key=lambda m: m.created_at)

    async def insert_memory(self, record: EpisodicMemoryRecord) -> None:
        async with self._lock:
            self._memories[record.id] = replace(record)

    async def nearest_memories(
        self,
        agent_name: str,
        vector: Sequence[float],
        k: int,
    ) -> list[tuple[EpisodicMemoryRecord, float]]:
        if k <= 0:
            return []
        async with self._lock:
            scored = [
                (replace(record), cosine_distance(record.embedding, vector))
                for record in self._memories.values()
                if record.agent_name == agent_name
            ]
        scored.sort(key=lambda pair: (pair[1], pair[0].created_at))
        return scored[:k]

    async def mark_recalled(self, memory_ids: Sequence[str]) -> None:
        now = utcnow()
        async with self._lock:
            for memory_id in memory_ids:
                record = self._memories.get(memory_id)
                if record is None:
                    continue
                record.recall_count += 1
                record.last_recalled_at = now

    async def list_memories(
        self,
        agent_name: str,
        *,
        sort_by: MemorySortField = "timestamp",
        order: SortOrder = "desc",
    ) -> list[EpisodicMemoryRecord]:
        async with self._lock:
            records = [replace(r) for r in self._memories.values() if r.agent_name == agent_name]
        if sort_by == "recall_count":
            records.sort(key=lambda r: (r.recall_count, r.created_at), reverse=order == "desc")
        else:
            records.sort(key=lambda r: r.created_at, reverse=order == "desc")
        return records

    async def clear_all(self) -> ClearSummary:
        async with self._lock:
            summary = ClearSummary(
                deleted_messages=sum(len(msgs) for msgs in self._messages.values()),
                deleted_conversations=len(self._conversations),
                deleted_memories=len(self._memories),
            )
            self._messages.clear()
            self._conversations.clear()
            self._memories.clear()
        return summary


__all__ = ["InMemoryRepository"]
