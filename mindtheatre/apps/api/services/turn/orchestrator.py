"""Concurrent per-agent reply pipelines for one user utterance."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Sequence

from mindtheatre.apps.api.core.agents import AgentRoster
from mindtheatre.libs.affect import AffectScorer
from mindtheatre.libs.llm_router import CompletionRouter
from mindtheatre.libs.logging_utils import colorize
from mindtheatre.libs.memory import EpisodicMemoryStore, RecalledMemory
from mindtheatre.libs.persistence import Repository
from mindtheatre.libs.schemas.records import AgentIdentity, AgentResponse

from .events import AGENT_ERROR, AGENT_UPDATE, EventSink
from .task_group import DetachedTaskGroup
from .working_memory import WorkingMemoryStore, WorkingMemoryWindow

LOGGER = logging.getLogger(__name__)


def render_recollections(agent_name: str, memories: Sequence[RecalledMemory]) -> str:
    lines = [memory.as_recollection() for memory in memories]
    return f"[Prior relevant thoughts for {agent_name}]:\n" + "\n".join(lines)


def build_agent_context(
    agent: AgentIdentity,
    memories: Sequence[RecalledMemory],
    window: WorkingMemoryWindow,
    utterance: str,
) -> List[Dict[str, str]]:
    """System prompt, recollections, recent exchanges, then the new utterance."""

    messages: List[Dict[str, str]] = [{"role": "system", "content": agent.system_prompt}]
    if memories:
        messages.append({"role": "system", "content": render_recollections(agent.name, memories)})
    messages.extend(window.as_messages())
    messages.append({"role": "user", "content": utterance})
    return messages


class TurnOrchestrator:
    def __init__(
        self,
        *,
        roster: AgentRoster,
        router: CompletionRouter,
        memory: EpisodicMemoryStore,
        affect: AffectScorer,
        working_memory: WorkingMemoryStore,
        repository: Repository,
        memory_top_k: int = 3,
    ) -> None:
        self.roster = roster
        self._router = router
        self._memory = memory
        self._affect = affect
        self._working_memory = working_memory
        self._repository = repository
        self._top_k = memory_top_k

    async def run_agents(
        self,
        conversation_id: str,
        utterance: str,
        sink: EventSink,
        writes: DetachedTaskGroup,
    ) -> List[AgentResponse]:
        """
        Run every agent concurrently and return the surviving replies in roster order.
        Each agent emits exactly one ``agent_update`` or ``agent_error``.
        """

        results = await asyncio.gather(
            *(
                self._run_agent(agent, conversation_id, utterance, sink, writes)
                for agent in self.roster.agents
            )
        )
        survivors = [response for response in results if response is not None]
        LOGGER.info(
            colorize(f"Agents settled: {len(survivors)}/{len(results)} replied", "cyan"),
            extra={"conversation_id": conversation_id},
        )
        return survivors

    async def _run_agent(
        self,
        agent: AgentIdentity,
        conversation_id: str,
        utterance: str,
        sink: EventSink,
        writes: DetachedTaskGroup,
    ) -> AgentResponse | None:
        try:
            response = await self._reply(agent, conversation_id, utterance, writes)
        except Exception as exc:
            LOGGER.error("[Agent] %s failed: %s", agent.name, exc, extra={"agent": agent.name})
            await sink.emit(AGENT_ERROR, {"name": agent.name, "color": agent.color, "error": str(exc)})
            return None
        await sink.emit(AGENT_UPDATE, response.as_payload())
        return response

    async def _reply(
        self,
        agent: AgentIdentity,
        conversation_id: str,
        utterance: str,
        writes: DetachedTaskGroup,
    ) -> AgentResponse:
        memories = await self._memory.retrieve(agent.name, utterance, self._top_k)
        window = await self._working_memory.window(agent.name, conversation_id)
        messages = build_agent_context(agent, memories, window, utterance)

        text = await self._router.complete(
            messages,
            model=agent.params.model,
            temperature=agent.params.temperature,
            max_tokens=agent.params.max_tokens,
        )
        text = text.strip()
        affect = await self._affect.score(text)
        valence = affect.valence if affect else None
        arousal = affect.arousal if affect else None

        stored = await self._repository.add_message(
            conversation_id,
            sender=agent.name,
            kind="agent",
            text=text,
            valence=valence,
            arousal=arousal,
        )
        writes.spawn(
            self._memory.write(agent.name, text, valence=valence, arousal=arousal, user_prompt=utterance),
            label=f"memory:{agent.name}",
        )
        window.append_exchange(utterance, text)

        return AgentResponse(
            agent_name=agent.name,
            text=text,
            color=agent.color,
            valence=valence,
            arousal=arousal,
            message_id=stored.id,
            created_at=stored.created_at,
        )


__all__ = ["TurnOrchestrator", "build_agent_context", "render_recollections"]
