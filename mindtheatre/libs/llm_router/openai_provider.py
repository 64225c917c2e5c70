"""OpenAI provider implementation for the completion router."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import openai
from openai import AsyncOpenAI

from .base import BaseProvider
from .types import LLMResponse

DEFAULT_MAX_TOKENS = 400


class OpenAIProvider(BaseProvider):
    """Provider that talks to OpenAI, or any OpenAI-compatible base URL (e.g. Ollama)."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(name="openai")
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        if not messages:
            raise ValueError("OpenAI provider: 'messages' must be a non-empty sequence.")

        payload: dict[str, Any] = {
            "model": model,
            "messages": [dict(message) for message in messages],
            "max_tokens": _coerce_max_tokens(max_tokens),
        }
        if temperature is not None:
            payload["temperature"] = float(temperature)

        try:
            response = await self._client.chat.completions.create(**payload)
        except openai.AuthenticationError as exc:
            raise RuntimeError("OpenAI connection error: Invalid API key or unauthorized request") from exc
        except openai.RateLimitError as exc:
            raise RuntimeError("OpenAI connection error: Rate limit reached") from exc
        except openai.APIConnectionError as exc:
            raise RuntimeError("OpenAI connection error: Network failure") from exc
        except openai.OpenAIError as exc:
            raise RuntimeError(f"OpenAI chat failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        message = getattr(choice, "message", None)
        text_content = (getattr(message, "content", "") or "") if message is not None else ""

        usage = response.usage
        usage_dict = usage.model_dump() if usage is not None and hasattr(usage, "model_dump") else {}

        return LLMResponse(
            model=getattr(response, "model", model),
            text=text_content,
            provider=self.name,
            usage=usage_dict,
        )

    async def aclose(self) -> None:
        await self._client.close()


def _coerce_max_tokens(value: Any) -> int:
    try:
        max_tokens = int(value) if value is not None else DEFAULT_MAX_TOKENS
    except (TypeError, ValueError):
        return DEFAULT_MAX_TOKENS
    return max_tokens if max_tokens > 0 else DEFAULT_MAX_TOKENS


__all__ = ["OpenAIProvider"]
