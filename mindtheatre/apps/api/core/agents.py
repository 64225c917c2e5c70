from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from mindtheatre.libs.schemas.records import AgentIdentity, GenerationParams

LOGGER = logging.getLogger(__name__)

# Palette for the known personas; anything else renders grey.
AGENT_COLORS: dict[str, str] = {
    "Id": "red",
    "Eros (Life Drive)": "deepPink",
    "Thanatos (Death Drive)": "darkSlateBlue",
    "Ego": "green",
    "Defence Manager": "darkGoldenRod",
    "Conscience": "orange",
    "Ego-Ideal": "purple",
    "Imaginary Register": "teal",
    "Symbolic Register": "saddleBrown",
    "Real Register": "gray",
    "objet petit a": "olive",
    "Sinthome": "maroon",
    "Discourse of the Master (S1 → S2)": "navy",
    "Discourse of the University (S2 → a)": "darkCyan",
    "Discourse of the Hysteric ($ → S1)": "crimson",
    "Discourse of the Analyst (a → $)": "darkSlateGray",
    "System": "black",
    "Psyche": "magenta",
}
DEFAULT_COLOR = "grey"
PSYCHE_NAME = "Psyche"


class AgentConfigError(ValueError):
    """Raised when the roster file is missing or malformed."""


@dataclass(frozen=True, slots=True)
class SynthesisConfig:
    prompt: str
    params: GenerationParams


@dataclass(frozen=True, slots=True)
class AgentRoster:
    agents: tuple[AgentIdentity, ...]
    synthesis: SynthesisConfig

    def names(self) -> list[str]:
        return [agent.name for agent in self.agents]

    def get(self, name: str) -> AgentIdentity | None:
        return next((agent for agent in self.agents if agent.name == name), None)


def _coerce_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise AgentConfigError(f"Invalid temperature: {value!r}") from exc


def _coerce_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise AgentConfigError(f"Invalid max_tokens: {value!r}") from exc


def _resolve_params(raw: Mapping[str, Any] | None, default_model: str) -> GenerationParams:
    params = dict(raw or {})
    return GenerationParams(
        model=str(params.get("model") or default_model),
        temperature=_coerce_float(params.get("temperature")),
        max_tokens=_coerce_int(params.get("max_tokens")),
    )


def parse_roster(
    data: Mapping[str, Any],
    *,
    default_agent_model: str,
    default_synth_model: str,
) -> AgentRoster:
    """Resolve a raw prompts document into immutable identities, applying every fallback once."""

    if not isinstance(data, Mapping):
        raise AgentConfigError("Roster document must be a mapping")
    raw_agents = data.get("agents")
    if not isinstance(raw_agents, list):
        raise AgentConfigError('Invalid roster: "agents" list not found')
    synth_prompt = data.get("synthesiser_prompt")
    if not isinstance(synth_prompt, str) or not synth_prompt.strip():
        raise AgentConfigError('Invalid roster: "synthesiser_prompt" missing or not a string')

    agents: list[AgentIdentity] = []
    seen: set[str] = set()
    for entry in raw_agents:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str) or not entry["name"].strip():
            LOGGER.warning("Skipping roster entry without a name: %r", entry)
            continue
        name = entry["name"].strip()
        if name in seen:
            raise AgentConfigError(f"Duplicate agent name in roster: {name}")
        seen.add(name)
        agents.append(
            AgentIdentity(
                name=name,
                system_prompt=str(entry.get("prompt") or ""),
                params=_resolve_params(entry.get("llm_params"), default_agent_model),
                color=str(entry.get("color") or AGENT_COLORS.get(name, DEFAULT_COLOR)),
            )
        )

    synthesis = SynthesisConfig(
        prompt=synth_prompt,
        params=_resolve_params(data.get("llm_params"), default_synth_model),
    )
    return AgentRoster(agents=tuple(agents), synthesis=synthesis)


def load_roster(path: Path, *, default_agent_model: str, default_synth_model: str) -> AgentRoster:
    if not path.exists():
        raise AgentConfigError(f"Roster file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    roster = parse_roster(
        data or {},
        default_agent_model=default_agent_model,
        default_synth_model=default_synth_model,
    )
    LOGGER.info("Loaded %s agents from %s", len(roster.agents), path)
    return roster


__all__ = [
    "AGENT_COLORS",
    "AgentConfigError",
    "AgentRoster",
    "PSYCHE_NAME",
    "SynthesisConfig",
    "load_roster",
    "parse_roster",
]
