"""Bounded draft/evaluate/refine loop merging agent replies into one voice."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from mindtheatre.apps.api.core.agents import SynthesisConfig
from mindtheatre.libs.affect import AffectScorer
from mindtheatre.libs.llm_router import CompletionRouter
from mindtheatre.libs.schemas.records import AgentResponse, SynthesizedResponse

LOGGER = logging.getLogger(__name__)

MAX_DEPTH = 2
MAX_BULLETS = 1
MAX_NUMBERED = 0
MAX_AGENT_MENTIONS = 1

_BULLET_RE = re.compile(r"^\s*[-*•]\s+")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+")

REFINE_INSTRUCTION = (
    "Rewrite the draft below as a single integrated reply in one first-person voice. "
    "Remove any lists, headings or references to separate voices or speakers, "
    "and answer the user directly."
)


class SynthesisError(RuntimeError):
    """No reply could be synthesized for the turn."""


class SynthesisState(str, enum.Enum):
    DRAFTING = "drafting"
    EVALUATING = "evaluating"
    REFINING = "refining"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class DraftAssessment:
    bullet_count: int
    numbered_count: int
    agent_mentions: int

    @property
    def sufficient(self) -> bool:
        return (
            self.bullet_count <= MAX_BULLETS
            and self.numbered_count <= MAX_NUMBERED
            and self.agent_mentions <= MAX_AGENT_MENTIONS
        )


def assess_draft(text: str, agent_names: Iterable[str]) -> DraftAssessment:
    """
    Syntactic sufficiency check for a draft.

    Counts lines opening with a bullet or a numbered marker and the distinct
    agent names that appear as whole words, case-insensitively. This is only a
    proxy for "reads as one voice": an unmarked list passes, and a legitimate
    single mention of a voice is tolerated but two are not.
    """

    lines = (text or "").splitlines()
    bullets = sum(1 for line in lines if _BULLET_RE.match(line))
    numbered = sum(1 for line in lines if _NUMBERED_RE.match(line))
    mentions = 0
    for name in {n for n in agent_names if n and n.strip()}:
        pattern = re.compile(rf"(?<!\w){re.escape(name.strip())}(?!\w)", re.IGNORECASE)
        if pattern.search(text or ""):
            mentions += 1
    return DraftAssessment(bullet_count=bullets, numbered_count=numbered, agent_mentions=mentions)


def render_agent_lines(responses: Sequence[AgentResponse]) -> str:
    return "\n".join(f"{response.agent_name}: {response.text}" for response in responses)


class Synthesizer:
    def __init__(
        self,
        router: CompletionRouter,
        affect: AffectScorer,
        config: SynthesisConfig,
        *,
        max_depth: int = MAX_DEPTH,
    ) -> None:
        self._router = router
        self._affect = affect
        self._config = config
        self.max_depth = max_depth

    def drafting_messages(self, utterance: str, responses: Sequence[AgentResponse]) -> List[dict[str, str]]:
        context = f"User said: {utterance}\n\nYour inner voices replied:\n{render_agent_lines(responses)}"
        return [
            {"role": "system", "content": self._config.prompt},
            {"role": "user", "content": context},
        ]

    def refining_messages(self, utterance: str, previous_draft: str) -> List[dict[str, str]]:
        context = f"{REFINE_INSTRUCTION}\n\nUser said: {utterance}\n\nDraft:\n{previous_draft}"
        return [
            {"role": "system", "content": self._config.prompt},
            {"role": "user", "content": context},
        ]

    async def draft(self, utterance: str, responses: Sequence[AgentResponse]) -> str:
        return await self._complete(self.drafting_messages(utterance, responses))

    async def refine(self, utterance: str, previous_draft: str) -> str:
        return await self._complete(self.refining_messages(utterance, previous_draft))

    async def synthesize(
        self,
        conversation_id: str,
        utterance: str,
        responses: Sequence[AgentResponse],
        *,
        agent_names: Iterable[str] | None = None,
    ) -> SynthesizedResponse:
        if not responses:
            raise SynthesisError("No agent replies survived; nothing to synthesize")
        names = list(agent_names) if agent_names is not None else [r.agent_name for r in responses]

        state = SynthesisState.DRAFTING
        depth = 0
        current = ""
        while state is not SynthesisState.DONE:
            if state is SynthesisState.DRAFTING:
                current = await self.draft(utterance, responses)
                state = SynthesisState.EVALUATING
            elif state is SynthesisState.EVALUATING:
                assessment = assess_draft(current, names)
                LOGGER.debug(
                    "[Synthesis] depth=%s bullets=%s numbered=%s mentions=%s",
                    depth,
                    assessment.bullet_count,
                    assessment.numbered_count,
                    assessment.agent_mentions,
                )
                if assessment.sufficient or depth >= self.max_depth:
                    state = SynthesisState.DONE
                else:
                    state = SynthesisState.REFINING
            elif state is SynthesisState.REFINING:
                current = await self.refine(utterance, current)
                depth += 1
                state = SynthesisState.EVALUATING

        affect = await self._affect.score(current)
        LOGGER.info("[Synthesis] Accepted draft at depth %s", depth)
        return SynthesizedResponse(
            text=current,
            conversation_id=conversation_id,
            valence=affect.valence if affect else None,
            arousal=affect.arousal if affect else None,
            depth=depth,
        )

    async def _complete(self, messages: List[dict[str, str]]) -> str:
        params = self._config.params
        try:
            text = await self._router.complete(
                messages,
                model=params.model,
                temperature=params.temperature,
                max_tokens=params.max_tokens,
            )
        except Exception as exc:
            raise SynthesisError(f"Synthesis completion failed: {exc}") from exc
        return text.strip()


__all__ = [
    "DraftAssessment",
    "MAX_DEPTH",
    "SynthesisError",
    "SynthesisState",
    "Synthesizer",
    "assess_draft",
    "render_agent_lines",
]
