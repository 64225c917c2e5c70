"""OpenRouter provider implementation supporting DeepSeek and other hosted models."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx

from .base import BaseProvider
from .types import LLMResponse

OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(BaseProvider):
    """Provider that proxies chat requests through OpenRouter."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        referer: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenRouter API key is required")

        super().__init__(name="openrouter")
        self._base_url = (base_url or OPENROUTER_DEFAULT_BASE_URL).rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": referer or "http://localhost:3000",
            "X-Title": "Mind Theatre",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Execute a chat completion request."""

        payload: dict[str, Any] = {
            "model": model,
            "messages": [dict(message) for message in messages],
        }
        if temperature is not None:
            payload["temperature"] = float(temperature)
        if max_tokens is not None:
            payload["max_tokens"] = int(max_tokens)

        response_json = await self._post("/chat/completions", payload)
        choice = (response_json.get("choices") or [{}])[0]
        message = choice.get("message") or {}

        return LLMResponse(
            model=response_json.get("model") or model,
            text=message.get("content"),
            usage=response_json.get("usage") or {},
            provider=self.name,
            raw=response_json,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.post(url, headers=self._headers, json=payload)
        except httpx.RequestError as exc:
            raise RuntimeError(f"OpenRouter network error: {exc}. Check API key or connectivity.") from exc
        content_type = response.headers.get("content-type", "")
        if not response.is_success:
            raise RuntimeError(f"OpenRouter {response.status_code} on {url}. Body: {response.text[:400]}")
        if "application/json" not in content_type.lower():
            raise RuntimeError(
                f"OpenRouter returned non-JSON (CT={content_type}) on {url}. Body: {response.text[:400]}"
            )
        return response.json()


__all__ = ["OPENROUTER_DEFAULT_BASE_URL", "OpenRouterProvider"]
