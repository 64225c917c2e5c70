"""Per-agent episodic memory store."""

from .store import EmbeddingDimensionError, EpisodicMemoryStore, RecalledMemory, should_write_memory

__all__ = ["EmbeddingDimensionError", "EpisodicMemoryStore", "RecalledMemory", "should_write_memory"]
