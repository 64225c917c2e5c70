import asyncio
from collections import Counter

import pytest

from conftest import SYNTH_REPLY, TEST_DIM, agent_reply, build_test_services, make_responder
from mindtheatre.apps.api.services.turn import EventSink, QueueEventSink, TurnEvent, parse_sse
from mindtheatre.apps.api.services.turn.events import DONE, USER_MESSAGE
from mindtheatre.libs.embeddings import EmbeddingError, HashingEmbedder
from mindtheatre.libs.persistence import InMemoryRepository

AGENTS = ("Id", "Ego", "Superego")


async def _run(services, text="Should I quit my job to paint?", conversation_id=None):
    if conversation_id is None:
        conversation_id = (await services.repository.create_conversation()).id
    sink = EventSink()
    turn = await services.turns.run_turn(conversation_id, text, sink)
    return conversation_id, turn, sink.history


def _types(events):
    return [event.type for event in events]


@pytest.mark.asyncio
@pytest.mark.parametrize("failing", [(), ("Ego",), ("Id", "Superego")])
async def test_event_counts_and_order_with_failing_agents(failing):
    services = build_test_services(make_responder(failing=failing))
    _, turn, events = await _run(services)
    types = _types(events)
    counts = Counter(types)

    assert types[0] == "user_message"
    assert types[-1] == "done"
    assert counts["user_message"] == 1
    assert counts["agent_error"] == len(failing)
    assert counts["agent_update"] == len(AGENTS) - len(failing)
    assert counts["psyche_response"] == 1
    assert counts["done"] == 1
    assert "error" not in counts
    assert types.index("psyche_response") > max(
        i for i, t in enumerate(types) if t in {"agent_update", "agent_error"}
    )

    agent_events = [event for event in events if event.type in {"agent_update", "agent_error"}]
    names = [event.data["name"] for event in agent_events]
    assert sorted(names) == sorted(AGENTS)
    assert set(turn.responses) == set(AGENTS) - set(failing)
    for event in agent_events:
        if event.type == "agent_error":
            assert event.data["name"] in failing
            assert "exploded" in event.data["error"]


@pytest.mark.asyncio
async def test_successful_turn_persists_messages_and_payloads():
    services = build_test_services()
    conversation_id, turn, events = await _run(services)

    update = next(event for event in events if event.type == "agent_update" and event.data["name"] == "Id")
    assert update.data["reply"] == agent_reply("Id")
    assert update.data["valence"] == pytest.approx(0.4)
    assert update.data["arousal"] == pytest.approx(0.6)

    psyche = next(event for event in events if event.type == "psyche_response")
    assert psyche.data["text"] == SYNTH_REPLY
    assert psyche.data["name"] == "Psyche"
    assert psyche.data["color"] == "magenta"
    assert turn.synthesized is not None and turn.synthesized.message_id == psyche.data["id"]

    done = events[-1]
    assert done.data == {"message": "Stream complete", "conversation_id": conversation_id}

    messages = await services.repository.list_messages(conversation_id)
    assert [m.kind for m in messages][0] == "user"
    assert Counter(m.kind for m in messages) == {"user": 1, "agent": 3, "psyche": 1}
    assert messages[-1].sender == "Psyche"


class _SlowEmbedder(HashingEmbedder):
    async def embed(self, text):
        await asyncio.sleep(0.02)
        return await super().embed(text)


class _SnapshotSink(EventSink):
    def __init__(self, repository):
        super().__init__()
        self._repository = repository
        self.memories_at_done = None

    async def _write(self, event: TurnEvent) -> None:
        if event.type == DONE:
            self.memories_at_done = {
                name: len(await self._repository.list_memories(name)) for name in (*AGENTS, "Psyche")
            }


@pytest.mark.asyncio
async def test_done_is_withheld_until_memory_writes_settle():
    repository = InMemoryRepository()
    services = build_test_services(repository=repository, embedder=_SlowEmbedder(TEST_DIM))
    chat = await repository.create_conversation()
    sink = _SnapshotSink(repository)

    await services.turns.run_turn(chat.id, "What should I do tonight?", sink)

    assert sink.memories_at_done == {"Id": 1, "Ego": 1, "Superego": 1, "Psyche": 1}


@pytest.mark.asyncio
async def test_unknown_conversation_yields_echo_error_done():
    services = build_test_services()
    _, turn, events = await _run(services, conversation_id="does-not-exist")

    assert _types(events) == ["user_message", "error", "done"]
    assert events[0].data["text"] == "Should I quit my job to paint?"
    assert events[1].data["kind"] == "unknown_conversation"
    assert turn.responses == {}


@pytest.mark.asyncio
async def test_synthesis_failure_surfaces_terminal_error():
    def failing_synth(_content):
        raise RuntimeError("synth down")

    services = build_test_services(make_responder(synth=failing_synth))
    conversation_id, _, events = await _run(services)
    types = _types(events)

    assert types[0] == "user_message"
    assert types[-2:] == ["error", "done"]
    assert "psyche_response" not in types
    assert events[-2].data["kind"] == "synthesis_failed"
    messages = await services.repository.list_messages(conversation_id)
    assert all(m.kind != "psyche" for m in messages)


@pytest.mark.asyncio
async def test_all_agents_failing_is_a_synthesis_failure():
    services = build_test_services(make_responder(failing=AGENTS))
    _, _, events = await _run(services)

    assert Counter(_types(events)) == {"user_message": 1, "agent_error": 3, "error": 1, "done": 1}


@pytest.mark.asyncio
async def test_affect_failure_degrades_to_null_affect():
    base = make_responder()

    def responder(messages, model):
        if model == "model-affect":
            return "I would rather not say"
        return base(messages, model)

    services = build_test_services(responder)
    _, _, events = await _run(services)

    updates = [event for event in events if event.type == "agent_update"]
    assert len(updates) == 3
    assert all(event.data["valence"] is None and event.data["arousal"] is None for event in updates)


class _BrokenEmbedder(HashingEmbedder):
    async def embed(self, text):
        raise EmbeddingError("no embeddings today")


@pytest.mark.asyncio
async def test_memory_failures_do_not_affect_delivered_replies():
    services = build_test_services(embedder=_BrokenEmbedder(TEST_DIM))
    _, _, events = await _run(services)

    assert Counter(_types(events)) == {"user_message": 1, "agent_update": 3, "psyche_response": 1, "done": 1}
    assert await services.repository.list_memories("Id") == []


@pytest.mark.asyncio
async def test_second_turn_sees_recollections_and_working_memory():
    services = build_test_services(names=("Id",))
    provider = services.router._providers["scripted"]
    conversation_id, _, _ = await _run(services, text="I keep thinking about painting every day")
    provider.calls.clear()

    await _run(services, text="I keep thinking about painting every day", conversation_id=conversation_id)

    agent_call = next(call for call in provider.calls if call["model"] == "model-Id")
    messages = agent_call["messages"]
    assert messages[0] == {"role": "system", "content": "You are the Id."}
    assert messages[1]["role"] == "system"
    assert messages[1]["content"].startswith("[Prior relevant thoughts for Id]:\nRecalled memory: ")
    assert "(In response to: I keep thinking about painting every day)" in messages[1]["content"]
    assert messages[2:] == [
        {"role": "user", "content": "I keep thinking about painting every day"},
        {"role": "assistant", "content": agent_reply("Id")},
        {"role": "user", "content": "I keep thinking about painting every day"},
    ]


@pytest.mark.asyncio
async def test_disconnected_consumer_does_not_abort_the_turn():
    services = build_test_services(embedder=_SlowEmbedder(TEST_DIM))
    chat = await services.repository.create_conversation()

    frames = services.turns.stream(chat.id, "Are you still there?")
    first = await frames.__anext__()
    await frames.aclose()
    await services.turns.drain()

    assert parse_sse(first)[0].type == USER_MESSAGE
    messages = await services.repository.list_messages(chat.id)
    assert Counter(m.kind for m in messages) == {"user": 1, "agent": 3, "psyche": 1}
    assert len(await services.repository.list_memories("Psyche")) == 1


@pytest.mark.asyncio
async def test_closed_sink_drops_further_events():
    sink = QueueEventSink()
    await sink.emit(USER_MESSAGE, {"text": "hi"})
    sink.close()
    await sink.emit(DONE, {"message": "Stream complete"})

    assert sink._queue.qsize() == 1
    assert [event.type for event in sink.history] == [USER_MESSAGE, DONE]


def test_sse_frame_format():
    frame = TurnEvent(type="done", data={"message": "Stream complete"}).to_sse()

    assert frame == 'event: done\ndata: {"message": "Stream complete", "type": "done"}\n\n'
    assert parse_sse(frame + frame)[1].data["message"] == "Stream complete"
    with pytest.raises(ValueError):
        TurnEvent(type="mystery")


class _RejectingRepository(InMemoryRepository):
    def __init__(self, sender: str) -> None:
        super().__init__()
        self._sender = sender

    async def add_message(self, conversation_id, *, sender, **kwargs):
        if sender == self._sender:
            raise RuntimeError(f"could not store reply from {sender}")
        return await super().add_message(conversation_id, sender=sender, **kwargs)


@pytest.mark.asyncio
async def test_persistence_failure_is_scoped_to_one_agent():
    services = build_test_services(repository=_RejectingRepository("Ego"))
    _, turn, events = await _run(services)

    assert Counter(_types(events)) == {
        "user_message": 1,
        "agent_error": 1,
        "agent_update": len(AGENTS) - 1,
        "psyche_response": 1,
        "done": 1,
    }
    error = next(event for event in events if event.type == "agent_error")
    assert error.data["name"] == "Ego"
    assert "could not store reply" in error.data["error"]
    assert events[-1].type == DONE
    assert set(turn.responses) == {"Id", "Superego"}
    assert await services.repository.list_memories("Ego") == []
    assert len(await services.repository.list_memories("Id")) == 1


@pytest.mark.asyncio
async def test_agent_pipelines_run_concurrently():
    base = make_responder()
    started = set()
    all_started = asyncio.Event()

    async def wait_for_siblings(name, messages, model):
        started.add(name)
        if len(started) == len(AGENTS):
            all_started.set()
        await all_started.wait()
        return base(messages, model)

    def responder(messages, model):
        name = model.removeprefix("model-")
        if name in AGENTS:
            return wait_for_siblings(name, messages, model)
        return base(messages, model)

    services = build_test_services(responder)
    _, _, events = await asyncio.wait_for(_run(services), timeout=5)

    assert started == set(AGENTS)
    assert Counter(_types(events))["agent_update"] == len(AGENTS)
