"""Turn orchestration: agent fan-out, working memory and the event stream."""

from .events import EventSink, QueueEventSink, TurnEvent, parse_sse
from .orchestrator import TurnOrchestrator, build_agent_context
from .stream import STREAM_COMPLETE, TurnService, UnknownConversationError
from .task_group import DetachedTaskGroup
from .working_memory import WorkingMemoryStore, WorkingMemoryWindow

__all__ = [
    "DetachedTaskGroup",
    "EventSink",
    "QueueEventSink",
    "STREAM_COMPLETE",
    "TurnEvent",
    "TurnOrchestrator",
    "TurnService",
    "UnknownConversationError",
    "WorkingMemoryStore",
    "WorkingMemoryWindow",
    "build_agent_context",
    "parse_sse",
]
