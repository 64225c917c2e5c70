"""Detached work joined before a turn is declared complete."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List

LOGGER = logging.getLogger(__name__)


class DetachedTaskGroup:
    """
    Spawn-now, join-later task collection. Every spawned task is awaited exactly
    once by ``join``; individual failures are logged and do not stop the join.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: List[asyncio.Task[Any]] = []
        self._joined = False

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[Any], *, label: str) -> asyncio.Task[Any]:
        if self._joined:
            raise RuntimeError(f"Task group {self.name} already joined")
        task = asyncio.ensure_future(coro)
        task.set_name(f"{self.name}:{label}")
        self._tasks.append(task)
        return task

    async def join(self) -> List[BaseException]:
        """Wait for every task, including ones spawned while waiting."""

        failures: List[BaseException] = []
        awaited = 0
        while awaited < len(self._tasks):
            batch = self._tasks[awaited:]
            awaited = len(self._tasks)
            results = await asyncio.gather(*batch, return_exceptions=True)
            for task, result in zip(batch, results):
                if isinstance(result, BaseException):
                    LOGGER.error("Detached task %s failed: %s", task.get_name(), result)
                    failures.append(result)
        self._joined = True
        return failures


__all__ = ["DetachedTaskGroup"]
