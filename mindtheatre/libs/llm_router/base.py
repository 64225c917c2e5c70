"""Abstract provider interfaces for the LLM router."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from .types import LLMResponse


class BaseProvider(ABC):
    """Common interface all LLM providers must implement."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Perform a chat completion request."""

    async def aclose(self) -> None:
        """Release any pooled connections held by the provider."""


__all__ = ["BaseProvider"]
