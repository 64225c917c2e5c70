"""Deterministic provider for local runs without API keys."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from .base import BaseProvider
from .types import LLMResponse


class StubProvider(BaseProvider):
    """Echo the last user message back, prefixed with the system persona line."""

    def __init__(self) -> None:
        super().__init__(name="stub")

    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        persona = next((m.get("content", "") for m in messages if m.get("role") == "system"), "")
        last_user = next(
            (m.get("content", "") for m in reversed(messages) if m.get("role") == "user"),
            "",
        )
        if "valence" in persona.lower() or "valence" in last_user.lower():
            text = '{"valence": 0.0, "arousal": 0.5}'
        else:
            headline = persona.strip().splitlines()[0][:80] if persona.strip() else "stub"
            text = f"({headline}) I hear you saying: {last_user.strip()[:400]}"
        return LLMResponse(model=model, text=text, provider=self.name, usage={"provider": self.name})


__all__ = ["StubProvider"]
