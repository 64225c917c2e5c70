"""Per-agent episodic memory: gated writes and vector-similarity recall."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from mindtheatre.libs.embeddings import Embedder
from mindtheatre.libs.persistence import Repository
from mindtheatre.libs.schemas.records import EpisodicMemoryRecord, utcnow

logger = logging.getLogger(__name__)

MIN_MEMORY_TOKENS = 5
ERROR_MARKER = "error:"
NON_SUBSTANTIVE_ROLES = frozenset({"user", "system", "merger", "router"})


class EmbeddingDimensionError(ValueError):
    """A memory vector whose length differs from the configured dimension."""


@dataclass(slots=True)
class RecalledMemory:
    record: EpisodicMemoryRecord
    distance: float

    def as_recollection(self) -> str:
        prompt = self.record.user_prompt or "prior context"
        return f"Recalled memory: {self.record.text} (In response to: {prompt})"


def should_write_memory(text: str, agent_name: str | None = None) -> bool:
    """Decide whether a reply is substantive enough to become an episodic memory."""

    lowered = (text or "").strip().lower()
    if not lowered or lowered == "none":
        return False
    if lowered.startswith(ERROR_MARKER):
        return False
    if len(lowered.split()) < MIN_MEMORY_TOKENS:
        return False
    if agent_name is not None and agent_name.strip().lower() in NON_SUBSTANTIVE_ROLES:
        return False
    return True


class EpisodicMemoryStore:
    """Reads and writes episodic memories for every agent through one repository."""

    def __init__(self, repository: Repository, embedder: Embedder, *, dimension: int) -> None:
        if embedder.dimension != dimension:
            raise EmbeddingDimensionError(
                f"Embedder produces {embedder.dimension}-d vectors but the store expects {dimension}"
            )
        self._repository = repository
        self._embedder = embedder
        self.dimension = dimension

    async def retrieve(self, agent_name: str, query_text: str, k: int = 3) -> List[RecalledMemory]:
        """
        Return up to ``k`` of the agent's memories closest to ``query_text``.
        Any embedding or query failure yields an empty list.
        """

        if k <= 0 or not (query_text or "").strip():
            return []
        try:
            vector = await self._embedder.embed(query_text)
            self._check_dimension(vector)
            rows = await self._repository.nearest_memories(agent_name, vector, k)
        except Exception as exc:
            logger.warning("[Memory] Retrieval failed for %s: %s", agent_name, exc)
            return []

        recalled = [RecalledMemory(record=record, distance=distance) for record, distance in rows[:k]]
        if recalled:
            await self._mark_recalled(agent_name, [item.record for item in recalled])
        logger.debug(
            "[Memory] Retrieved %s memories for %s",
            len(recalled),
            agent_name,
        )
        return recalled

    async def write(
        self,
        agent_name: str,
        text: str,
        *,
        valence: float | None = None,
        arousal: float | None = None,
        user_prompt: str | None = None,
    ) -> EpisodicMemoryRecord | None:
        """
        Embed and persist ``text`` if it passes the write-gate.
        Returns the stored record, or None when gated out or when embedding failed.
        Persistence errors propagate to the caller.
        """

        if not should_write_memory(text, agent_name):
            logger.debug("[Memory] Skipping non-substantive memory for %s", agent_name)
            return None

        try:
            vector = await self._embedder.embed(text)
        except Exception as exc:
            logger.error("[Memory] Embedding failed for %s; memory abandoned: %s", agent_name, exc)
            return None

        record = EpisodicMemoryRecord(
            agent_name=agent_name,
            text=text,
            embedding=list(vector),
            valence=valence,
            arousal=arousal,
            user_prompt=user_prompt,
        )
        await self.insert(record)
        return record

    async def insert(self, record: EpisodicMemoryRecord) -> None:
        """Persist a fully-formed record; vectors of the wrong length are rejected."""

        self._check_dimension(record.embedding)
        await self._repository.insert_memory(record)
        logger.info(
            "[Memory] Stored memory %s for %s",
            record.id,
            record.agent_name,
            extra={"agent": record.agent_name, "valence": record.valence, "arousal": record.arousal},
        )

    async def _mark_recalled(self, agent_name: str, records: Sequence[EpisodicMemoryRecord]) -> None:
        try:
            await self._repository.mark_recalled([record.id for record in records])
        except Exception as exc:
            logger.warning("[Memory] Recall bookkeeping failed for %s: %s", agent_name, exc)
            return
        now = utcnow()
        for record in records:
            record.recall_count += 1
            record.last_recalled_at = now

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise EmbeddingDimensionError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimension}"
            )


__all__ = [
    "EmbeddingDimensionError",
    "EpisodicMemoryStore",
    "RecalledMemory",
    "should_write_memory",
]
