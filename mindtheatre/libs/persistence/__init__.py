"""Persistence collaborators for conversations, messages and episodic memories."""

from .base import MemorySortField, Repository, SortOrder
from .memory_backend import InMemoryRepository
from .postgres import PostgresRepository

__all__ = [
    "InMemoryRepository",
    "MemorySortField",
    "PostgresRepository",
    "Repository",
    "SortOrder",
]
