"""asyncpg + pgvector implementation of the persistence contract."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import asyncpg

from mindtheatre.libs.embeddings import parse_pgvector, to_pgvector
from mindtheatre.libs.schemas.records import (
    ClearSummary,
    Conversation,
    EpisodicMemoryRecord,
    StoredMessage,
    new_id,
)

from .base import MemorySortField, Repository, SortOrder

LOGGER = logging.getLogger(__name__)

_MEMORY_COLUMNS = """
    id, agent_name, text, embedding::text AS embedding, valence, arousal,
    user_prompt, created_at, recall_count, last_recalled_at
"""

_SORT_COLUMNS = {"timestamp": "created_at", "recall_count": "recall_count"}


def _row_to_memory(row: asyncpg.Record) -> EpisodicMemoryRecord:
    payload = dict(row)
    return EpisodicMemoryRecord(
        id=str(payload["id"]),
        agent_name=payload["agent_name"],
        text=payload["text"],
        embedding=parse_pgvector(payload.get("embedding")),
        valence=payload.get("valence"),
        arousal=payload.get("arousal"),
        user_prompt=payload.get("user_prompt"),
        created_at=payload["created_at"],
        recall_count=int(payload.get("recall_count") or 0),
        last_recalled_at=payload.get("last_recalled_at"),
    )


def _row_to_message(row: asyncpg.Record) -> StoredMessage:
    payload = dict(row)
    return StoredMessage(
        id=str(payload["id"]),
        conversation_id=str(payload["conversation_id"]),
        sender=payload["sender"],
        kind=payload["kind"],
        text=payload["text"],
        valence=payload.get("valence"),
        arousal=payload.get("arousal"),
        created_at=payload["created_at"],
    )


class PostgresRepository(Repository):
    """Repository over the tables created by ``mindtheatre/infra/migrations``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create_conversation(self) -> Conversation:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                "INSERT INTO conversations (id) VALUES ($1) RETURNING id, created_at",
                new_id(),
            )
        return Conversation(id=str(row["id"]), created_at=row["created_at"])

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._pool.acquire() as connection:
            try:
                row = await connection.fetchrow(
                    "SELECT id, created_at FROM conversations WHERE id = $1::uuid",
                    conversation_id,
                )
            except asyncpg.DataError:
                # Not a UUID, so it cannot name a conversation.
                return None
        if row is None:
            return None
        return Conversation(id=str(row["id"]), created_at=row["created_at"])

    async def list_conversations(self) -> list[Conversation]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(
                """
                SELECT c.id,
                       c.created_at,
                       (
                           SELECT LEFT(m.text, 100)
                           FROM messages m
                           WHERE m.conversation_id = c.id AND m.kind = 'user'
                           ORDER BY m.created_at ASC
                           LIMIT 1
                       ) AS preview
                FROM conversations c
                ORDER BY c.created_at DESC
                """
            )
        return [
            Conversation(
                id=str(row["id"]),
                created_at=row["created_at"],
                preview=row["preview"] or "(No user messages yet)",
            )
            for row in rows
        ]

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
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                """
                INSERT INTO messages (id, conversation_id, sender, kind, text, valence, arousal)
                VALUES ($1, $2::uuid, $3, $4, $5, $6, $7)
                RETURNING id, conversation_id, sender, kind, text, valence, arousal, created_at
                """,
                new_id(),
                conversation_id,
                sender,
                kind,
                text,
                valence,
                arousal,
            )
        return _row_to_message(row)

    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(
                """
                SELECT id, conversation_id, sender, kind, text, valence, arousal, created_at
                FROM messages
                WHERE conversation_id = $1::uuid
                ORDER BY created_at ASC
                """,
                conversation_id,
            )
        return [_row_to_message(row) for row in rows]

    async def insert_memory(self, record: EpisodicMemoryRecord) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(
                """
                INSERT INTO episodic_memories (
                    id, agent_name, text, embedding, valence, arousal,
                    user_prompt, created_at, recall_count, last_recalled_at
                )
                VALUES ($1, $2, $3, $4::vector, $5, $6, $7, $8, $9, $10)
                """,
                record.id,
                record.agent_name,
                record.text,
                to_pgvector(record.embedding),
                record.valence,
                record.arousal,
                record.user_prompt,
                record.created_at,
                record.recall_count,
                record.last_recalled_at,
            )

    async def nearest_memories(
        self,
        agent_name: str,
        vector: Sequence[float],
        k: int,
    ) -> list[tuple[EpisodicMemoryRecord, float]]:
        if k <= 0:
            return []
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(
                f"""
                SELECT {_MEMORY_COLUMNS},
                       embedding <=> $2::vector AS distance
                FROM episodic_memories
                WHERE agent_name = $1
                ORDER BY embedding <=> $2::vector ASC, created_at ASC
                LIMIT $3
                """,
                agent_name,
                to_pgvector(vector),
                k,
            )
        return [(_row_to_memory(row), float(row["distance"])) for row in rows]

    async def mark_recalled(self, memory_ids: Sequence[str]) -> None:
        if not memory_ids:
            return
        async with self._pool.acquire() as connection:
            await connection.execute(
                """
                UPDATE episodic_memories
                SET recall_count = recall_count + 1,
                    last_recalled_at = now()
                WHERE id = ANY($1::uuid[])
                """,
                list(memory_ids),
            )

    async def list_memories(
        self,
        agent_name: str,
        *,
        sort_by: MemorySortField = "timestamp",
        order: SortOrder = "desc",
    ) -> list[EpisodicMemoryRecord]:
        column = _SORT_COLUMNS.get(sort_by, "created_at")
        direction = "ASC" if order == "asc" else "DESC"
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(
                f"""
                SELECT {_MEMORY_COLUMNS}
                FROM episodic_memories
                WHERE agent_name = $1
                ORDER BY {column} {direction} NULLS LAST, created_at {direction}
                """,
                agent_name,
            )
        return [_row_to_memory(row) for row in rows]

    async def clear_all(self) -> ClearSummary:
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                messages = await connection.execute("DELETE FROM messages")
                conversations = await connection.execute("DELETE FROM conversations")
                memories = await connection.execute("DELETE FROM episodic_memories")
        summary = ClearSummary(
            deleted_messages=_affected(messages),
            deleted_conversations=_affected(conversations),
            deleted_memories=_affected(memories),
        )
        LOGGER.info("Cleared all conversation state", extra=dict(summary.as_dict()))
        return summary

    async def close(self) -> None:
        await self._pool.close()


def _affected(status: Any) -> int:
    """Parse asyncpg's ``DELETE <n>`` command status."""

    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except (TypeError, ValueError):
        return 0


__all__ = ["PostgresRepository"]
