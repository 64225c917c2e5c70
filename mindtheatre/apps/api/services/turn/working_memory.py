"""Bounded per-(agent, conversation) exchange history."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import List, Tuple

from mindtheatre.libs.persistence import Repository

LOGGER = logging.getLogger(__name__)

Turn = Tuple[str, str]

DEFAULT_MAX_WINDOWS = 1024


class WorkingMemoryWindow:
    """Ordered (role, content) pairs, never longer than ``2 * history_pairs``."""

    def __init__(self, history_pairs: int, entries: List[Turn] | None = None) -> None:
        if history_pairs < 0:
            raise ValueError("history_pairs must be >= 0")
        self.history_pairs = history_pairs
        self._entries: List[Turn] = []
        for role, content in entries or []:
            self._entries.append((role, content))
        self._trim()

    @property
    def limit(self) -> int:
        return 2 * self.history_pairs

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[Turn]:
        return list(self._entries)

    def as_messages(self) -> List[dict[str, str]]:
        return [{"role": role, "content": content} for role, content in self._entries]

    def append_exchange(self, user_text: str, assistant_text: str) -> None:
        self._entries.append(("user", user_text))
        self._entries.append(("assistant", assistant_text))
        self._trim()

    def _trim(self) -> None:
        overflow = len(self._entries) - self.limit
        if overflow > 0:
            del self._entries[:overflow]


class WorkingMemoryStore:
    """
    Process-local windows keyed by (agent, conversation). A window missing from
    the cache is rebuilt from persisted history: the conversation's user
    messages paired with that agent's own replies. At most ``max_windows``
    are cached; the least recently used one is evicted first.
    """

    def __init__(
        self,
        history_pairs: int,
        repository: Repository | None = None,
        *,
        max_windows: int = DEFAULT_MAX_WINDOWS,
    ) -> None:
        if max_windows <= 0:
            raise ValueError("max_windows must be positive")
        self.history_pairs = history_pairs
        self.max_windows = max_windows
        self._repository = repository
        self._windows: OrderedDict[Tuple[str, str], WorkingMemoryWindow] = OrderedDict()

    def __len__(self) -> int:
        return len(self._windows)

    async def window(self, agent_name: str, conversation_id: str) -> WorkingMemoryWindow:
        key = (agent_name, conversation_id)
        window = self._windows.get(key)
        if window is None:
            window = WorkingMemoryWindow(
                self.history_pairs,
                await self._hydrate(agent_name, conversation_id),
            )
            # Another pipeline for the same key may have hydrated meanwhile.
            window = self._windows.setdefault(key, window)
        self._windows.move_to_end(key)
        while len(self._windows) > self.max_windows:
            evicted, _ = self._windows.popitem(last=False)
            LOGGER.debug("Evicted working memory window %s", evicted)
        return window

    def clear(self) -> None:
        self._windows.clear()

    async def _hydrate(self, agent_name: str, conversation_id: str) -> List[Turn]:
        if self._repository is None or self.history_pairs == 0:
            return []
        try:
            messages = await self._repository.list_messages(conversation_id)
        except Exception as exc:
            LOGGER.warning("Working memory hydration failed for %s: %s", agent_name, exc)
            return []

        entries: List[Turn] = []
        pending_user: str | None = None
        for message in messages:
            if message.kind == "user":
                pending_user = message.text
            elif message.kind == "agent" and message.sender == agent_name and pending_user is not None:
                entries.append(("user", pending_user))
                entries.append(("assistant", message.text))
                pending_user = None
        return entries


__all__ = ["WorkingMemoryStore", "WorkingMemoryWindow"]
