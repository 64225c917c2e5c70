"""Turn Event Stream: one user utterance in, an ordered SSE event sequence out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Set

from mindtheatre.apps.api.core.agents import AGENT_COLORS, PSYCHE_NAME, AgentRoster
from mindtheatre.apps.api.services.synthesis import SynthesisError, Synthesizer
from mindtheatre.libs.logging_utils import colorize
from mindtheatre.libs.memory import EpisodicMemoryStore
from mindtheatre.libs.persistence import Repository
from mindtheatre.libs.schemas.records import ConversationTurn, StoredMessage, new_id, utcnow

from .events import DONE, ERROR, PSYCHE_RESPONSE, USER_MESSAGE, EventSink, QueueEventSink
from .orchestrator import TurnOrchestrator
from .task_group import DetachedTaskGroup

LOGGER = logging.getLogger(__name__)

STREAM_COMPLETE = "Stream complete"


class UnknownConversationError(LookupError):
    """The turn names a conversation that does not exist."""


def _user_payload(message: StoredMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender": message.sender,
        "text": message.text,
        "created_at": message.created_at,
    }


class TurnService:
    """
    Runs a turn end to end against a sink. Delivery order is ``user_message``,
    one agent event per agent, ``psyche_response`` or ``error``, then ``done``
    once every detached memory write has settled.
    """

    def __init__(
        self,
        *,
        repository: Repository,
        orchestrator: TurnOrchestrator,
        synthesizer: Synthesizer,
        memory: EpisodicMemoryStore,
    ) -> None:
        self._repository = repository
        self._orchestrator = orchestrator
        self._synthesizer = synthesizer
        self._memory = memory
        self._background: Set[asyncio.Task[ConversationTurn]] = set()

    @property
    def roster(self) -> AgentRoster:
        return self._orchestrator.roster

    async def run_turn(self, conversation_id: str, utterance: str, sink: EventSink) -> ConversationTurn:
        turn = ConversationTurn(conversation_id=conversation_id, utterance=utterance)
        writes = DetachedTaskGroup(f"turn:{conversation_id}")
        user_emitted = False
        try:
            if await self._repository.get_conversation(conversation_id) is None:
                raise UnknownConversationError(f"Conversation {conversation_id} not found")

            stored = await self._repository.add_message(
                conversation_id, sender="user", kind="user", text=utterance
            )
            await sink.emit(USER_MESSAGE, _user_payload(stored))
            user_emitted = True

            responses = await self._orchestrator.run_agents(conversation_id, utterance, sink, writes)
            for response in responses:
                turn.add_response(response)

            synthesized = await self._synthesizer.synthesize(
                conversation_id,
                utterance,
                responses,
                agent_names=self.roster.names(),
            )
            stored = await self._repository.add_message(
                conversation_id,
                sender=PSYCHE_NAME,
                kind="psyche",
                text=synthesized.text,
                valence=synthesized.valence,
                arousal=synthesized.arousal,
            )
            synthesized.message_id = stored.id
            synthesized.created_at = stored.created_at
            turn.synthesized = synthesized
            await sink.emit(
                PSYCHE_RESPONSE,
                {**synthesized.as_payload(), "name": PSYCHE_NAME, "color": AGENT_COLORS[PSYCHE_NAME]},
            )
            writes.spawn(
                self._memory.write(
                    PSYCHE_NAME,
                    synthesized.text,
                    valence=synthesized.valence,
                    arousal=synthesized.arousal,
                    user_prompt=utterance,
                ),
                label=f"memory:{PSYCHE_NAME}",
            )
        except UnknownConversationError as exc:
            LOGGER.warning("[Turn] %s", exc)
            await self._fail(sink, conversation_id, utterance, user_emitted, str(exc), "unknown_conversation")
        except SynthesisError as exc:
            LOGGER.error("[Turn] Synthesis failed for %s: %s", conversation_id, exc)
            await self._fail(sink, conversation_id, utterance, user_emitted, str(exc), "synthesis_failed")
        except Exception as exc:
            LOGGER.exception("[Turn] Unexpected failure for %s", conversation_id)
            await self._fail(sink, conversation_id, utterance, user_emitted, str(exc), "internal")
        finally:
            failures = await writes.join()
            if failures:
                LOGGER.warning("[Turn] %s memory write(s) failed for %s", len(failures), conversation_id)
            await sink.emit(DONE, {"message": STREAM_COMPLETE, "conversation_id": conversation_id})
            LOGGER.info(colorize(f"Turn complete for {conversation_id}", "green"))
        return turn

    def stream(self, conversation_id: str, utterance: str) -> AsyncIterator[str]:
        """
        Start the turn in the background and return its SSE frames. If the
        consumer stops reading, the sink is closed but the turn keeps running.
        """

        sink = QueueEventSink()
        task = asyncio.create_task(self.run_turn(conversation_id, utterance, sink))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return self._frames(sink)

    async def drain(self) -> None:
        """Wait for turns still running after their consumers left."""

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _frames(self, sink: QueueEventSink) -> AsyncIterator[str]:
        try:
            async for frame in sink.frames():
                yield frame
        finally:
            if not sink.closed:
                sink.close()

    async def _fail(
        self,
        sink: EventSink,
        conversation_id: str,
        utterance: str,
        user_emitted: bool,
        message: str,
        kind: str,
    ) -> None:
        if not user_emitted:
            # Echo only; nothing was persisted for this utterance.
            await sink.emit(
                USER_MESSAGE,
                {
                    "id": new_id(),
                    "conversation_id": conversation_id,
                    "sender": "user",
                    "text": utterance,
                    "created_at": utcnow(),
                },
            )
        await sink.emit(ERROR, {"message": message, "kind": kind})


__all__ = ["STREAM_COMPLETE", "TurnService", "UnknownConversationError"]
