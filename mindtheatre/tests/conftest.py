from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Sequence

import pytest

from mindtheatre.apps.api.core.agents import AgentRoster, SynthesisConfig
from mindtheatre.apps.api.core.services import Services, assemble_services
from mindtheatre.libs.affect import AFFECT_SYSTEM_PROMPT
from mindtheatre.libs.embeddings import HashingEmbedder
from mindtheatre.libs.llm_router import BaseProvider, CompletionRouter, LLMResponse
from mindtheatre.libs.persistence import InMemoryRepository
from mindtheatre.libs.schemas.records import AgentIdentity, GenerationParams
from mindtheatre.libs.schemas.settings import AppSettings

TEST_DIM = 64
SYNTH_PROMPT = "You are the Psyche. Speak in one first-person voice."
SYNTH_REPLY = "I feel the pull in several directions, yet I think a slow walk will settle me tonight."
AFFECT_REPLY = 'Sure! {"valence": 0.4, "arousal": 0.6}'

Responder = Callable[[Sequence[Mapping[str, Any]], str], Any]


class ScriptedProvider(BaseProvider):
    """Routes each request to ``responder``; raising from it simulates a provider failure."""

    def __init__(self, responder: Responder, name: str = "scripted") -> None:
        super().__init__(name=name)
        self._responder = responder
        self.calls: List[Dict[str, Any]] = []

    async def chat(self, *, messages, model: str, temperature=None, max_tokens=None) -> LLMResponse:
        self.calls.append({"messages": list(messages), "model": model})
        await asyncio.sleep(0)
        result = self._responder(messages, model)
        if asyncio.iscoroutine(result):
            result = await result
        return LLMResponse(model=model, text=result, provider=self.name, usage={"total_tokens": 1})


def agent_reply(name: str) -> str:
    return f"{name} believes this moment deserves a careful and honest answer."


def make_responder(failing: Sequence[str] = (), synth: Callable[[str], str] | None = None) -> Responder:
    """
    Agents are identified by their model (``model-<name>``). Agents listed in
    ``failing`` raise; the synthesizer returns ``synth(user_content)`` or a fixed reply.
    """

    def respond(messages: Sequence[Mapping[str, Any]], model: str) -> str:
        system = messages[0]["content"]
        if system == AFFECT_SYSTEM_PROMPT:
            return AFFECT_REPLY
        if system == SYNTH_PROMPT:
            return synth(messages[-1]["content"]) if synth else SYNTH_REPLY
        name = model.removeprefix("model-")
        if name in failing:
            raise RuntimeError(f"{name} provider exploded")
        return agent_reply(name)

    return respond


def make_roster(names: Sequence[str] = ("Id", "Ego", "Superego")) -> AgentRoster:
    agents = tuple(
        AgentIdentity(
            name=name,
            system_prompt=f"You are the {name}.",
            params=GenerationParams(model=f"model-{name}", temperature=0.5, max_tokens=50),
            color="red",
        )
        for name in names
    )
    return AgentRoster(
        agents=agents,
        synthesis=SynthesisConfig(prompt=SYNTH_PROMPT, params=GenerationParams(model="model-synth")),
    )


def make_settings(**overrides: Any) -> AppSettings:
    values: Dict[str, Any] = {
        "storage_backend": "memory",
        "llm_provider": "stub",
        "embedding_provider": "hashing",
        "embedding_dim": TEST_DIM,
        "history_pairs": 2,
        "affect_model": "model-affect",
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


def build_test_services(
    responder: Responder | None = None,
    *,
    names: Sequence[str] = ("Id", "Ego", "Superego"),
    repository: InMemoryRepository | None = None,
    embedder: Any = None,
    **settings_overrides: Any,
) -> Services:
    router = CompletionRouter(timeout=2.0)
    router.register_provider("scripted", ScriptedProvider(responder or make_responder()))
    router.set_policy(["scripted"])
    return assemble_services(
        make_settings(**settings_overrides),
        roster=make_roster(names),
        repository=repository or InMemoryRepository(),
        router=router,
        embedder=embedder or HashingEmbedder(TEST_DIM),
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder(TEST_DIM)


@pytest.fixture
def services() -> Services:
    return build_test_services()
