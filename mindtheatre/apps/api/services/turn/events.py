"""Turn event vocabulary, SSE framing, and the serialized output sink."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping

from mindtheatre.libs.json_utils import json_safe

LOGGER = logging.getLogger(__name__)

USER_MESSAGE = "user_message"
AGENT_UPDATE = "agent_update"
AGENT_ERROR = "agent_error"
PSYCHE_RESPONSE = "psyche_response"
ERROR = "error"
DONE = "done"

EVENT_TYPES = frozenset({USER_MESSAGE, AGENT_UPDATE, AGENT_ERROR, PSYCHE_RESPONSE, ERROR, DONE})


@dataclass(frozen=True, slots=True)
class TurnEvent:
    type: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown turn event type: {self.type}")

    def to_sse(self) -> str:
        """``event: <name>`` / ``data: <json>`` frame terminated by a blank line."""

        payload = {**json_safe(dict(self.data)), "type": self.type}
        return f"event: {self.type}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def parse_sse(body: str) -> List[TurnEvent]:
    """Parse a complete event-stream body back into events."""

    events: List[TurnEvent] = []
    for frame in body.split("\n\n"):
        if not frame.strip():
            continue
        name: str | None = None
        data_lines: List[str] = []
        for line in frame.splitlines():
            if line.startswith("event:"):
                name = line[len("event:") :].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:") :].strip())
        data: Dict[str, Any] = json.loads("\n".join(data_lines)) if data_lines else {}
        events.append(TurnEvent(type=name or data.get("type", ""), data=data))
    return events


class EventSink:
    """
    Single output channel for a turn. Writes are serialized one frame at a time;
    once the consumer goes away the sink is closed and later writes are dropped.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._closed = False
        self.history: List[TurnEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event_type: str, data: Mapping[str, Any] | None = None) -> None:
        event = TurnEvent(type=event_type, data=dict(data or {}))
        async with self._lock:
            self.history.append(event)
            if self._closed:
                LOGGER.debug("Sink closed; dropping %s event", event_type)
                return
            await self._write(event)

    def close(self) -> None:
        self._closed = True

    async def _write(self, event: TurnEvent) -> None:
        """Subclasses deliver the event to the consumer."""


class QueueEventSink(EventSink):
    """Sink feeding an asyncio queue drained by the HTTP response generator."""

    def __init__(self) -> None:
        super().__init__()
        self._queue: asyncio.Queue[TurnEvent] = asyncio.Queue()

    async def _write(self, event: TurnEvent) -> None:
        await self._queue.put(event)

    async def frames(self) -> AsyncIterator[str]:
        """Yield SSE frames until ``done`` has been delivered."""

        while True:
            event = await self._queue.get()
            yield event.to_sse()
            if event.type == DONE:
                return


__all__ = [
    "AGENT_ERROR",
    "AGENT_UPDATE",
    "DONE",
    "ERROR",
    "EVENT_TYPES",
    "EventSink",
    "PSYCHE_RESPONSE",
    "QueueEventSink",
    "TurnEvent",
    "USER_MESSAGE",
    "parse_sse",
]
