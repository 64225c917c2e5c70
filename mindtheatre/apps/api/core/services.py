"""Service handles constructed once at process start and shared by the routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mindtheatre.apps.api.core.agents import AgentRoster, load_roster
from mindtheatre.apps.api.services.synthesis import Synthesizer
from mindtheatre.apps.api.services.turn import TurnOrchestrator, TurnService, WorkingMemoryStore
from mindtheatre.libs.affect import AffectScorer
from mindtheatre.libs.embeddings import Embedder, HashingEmbedder, OpenAIEmbedder
from mindtheatre.libs.llm_router import (
    CompletionRouter,
    OpenAIProvider,
    OpenRouterProvider,
    StubProvider,
)
from mindtheatre.libs.logging_utils import colorize
from mindtheatre.libs.memory import EpisodicMemoryStore
from mindtheatre.libs.persistence import InMemoryRepository, PostgresRepository, Repository
from mindtheatre.libs.schemas.db import create_pool
from mindtheatre.libs.schemas.settings import AppSettings

LOGGER = logging.getLogger(__name__)


@dataclass
class Services:
    settings: AppSettings
    roster: AgentRoster
    repository: Repository
    router: CompletionRouter
    embedder: Embedder
    memory: EpisodicMemoryStore
    working_memory: WorkingMemoryStore
    turns: TurnService

    async def clear_all(self):
        """Bulk clear of persisted state plus the process-local windows."""

        summary = await self.repository.clear_all()
        self.working_memory.clear()
        return summary

    async def close(self) -> None:
        await self.turns.drain()
        await self.router.aclose()
        await self.embedder.aclose()
        await self.repository.close()


def build_router(settings: AppSettings) -> CompletionRouter:
    router = CompletionRouter(timeout=settings.completion_timeout_seconds)
    policy: list[str] = []

    if settings.llm_provider == "stub":
        router.register_provider("stub", StubProvider())
        policy.append("stub")
    else:
        if settings.openai_api_key:
            router.register_provider(
                "openai",
                OpenAIProvider(settings.openai_api_key, base_url=settings.openai_base_url),
            )
        if settings.openrouter_api_key:
            router.register_provider(
                "openrouter",
                OpenRouterProvider(settings.openrouter_api_key, base_url=settings.openrouter_base_url),
            )
        if settings.llm_provider not in router.providers:
            raise RuntimeError(f"No credentials configured for LLM provider '{settings.llm_provider}'")
        # The configured provider first, any other credentialed provider as failover.
        policy.append(settings.llm_provider)
        policy.extend(key for key in router.providers if key != settings.llm_provider)

    router.set_policy(policy)
    LOGGER.info(
        colorize("Router configured", "cyan"),
        extra={"event": "router_config", "providers": router.providers, "policy": router.policy},
    )
    return router


def build_embedder(settings: AppSettings) -> Embedder:
    if settings.embedding_provider == "hashing":
        return HashingEmbedder(settings.embedding_dim)
    return OpenAIEmbedder(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        dimension=settings.embedding_dim,
        base_url=settings.openai_base_url,
    )


async def build_repository(settings: AppSettings) -> Repository:
    if settings.storage_backend == "memory":
        return InMemoryRepository()
    pool = await create_pool(settings)
    return PostgresRepository(pool)


def assemble_services(
    settings: AppSettings,
    *,
    roster: AgentRoster,
    repository: Repository,
    router: CompletionRouter,
    embedder: Embedder,
) -> Services:
    """Wire already-constructed capabilities into the turn pipeline."""

    memory = EpisodicMemoryStore(repository, embedder, dimension=settings.embedding_dim)
    affect = AffectScorer(router, model=settings.default_affect_model())
    working_memory = WorkingMemoryStore(settings.history_pairs, repository)
    orchestrator = TurnOrchestrator(
        roster=roster,
        router=router,
        memory=memory,
        affect=affect,
        working_memory=working_memory,
        repository=repository,
        memory_top_k=settings.memory_top_k,
    )
    synthesizer = Synthesizer(router, affect, roster.synthesis)
    turns = TurnService(
        repository=repository,
        orchestrator=orchestrator,
        synthesizer=synthesizer,
        memory=memory,
    )
    return Services(
        settings=settings,
        roster=roster,
        repository=repository,
        router=router,
        embedder=embedder,
        memory=memory,
        working_memory=working_memory,
        turns=turns,
    )


async def build_services(settings: AppSettings) -> Services:
    roster = load_roster(
        settings.prompts_path,
        default_agent_model=settings.default_agent_model(),
        default_synth_model=settings.default_synth_model(),
    )
    router = build_router(settings)
    embedder = build_embedder(settings)
    repository = await build_repository(settings)
    return assemble_services(
        settings,
        roster=roster,
        repository=repository,
        router=router,
        embedder=embedder,
    )


__all__ = [
    "Services",
    "assemble_services",
    "build_embedder",
    "build_repository",
    "build_router",
    "build_services",
]
