"""Provider-agnostic completion router with ordered failover and call timeouts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

from .base import BaseProvider
from .types import CompletionError, LLMResponse

DEFAULT_TIMEOUT_SECONDS = 45.0


class CompletionRouter:
    """Route completion requests across the configured providers."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self._policy: list[str] = []
        self._timeout = timeout
        self._logger = logger or logging.getLogger(__name__)

    @property
    def providers(self) -> list[str]:
        return list(self._providers)

    @property
    def policy(self) -> list[str]:
        return list(self._policy)

    def register_provider(self, key: str, provider: BaseProvider) -> None:
        """Register or replace a provider under ``key``."""

        self._providers[key] = provider

    def set_policy(self, providers: Sequence[str]) -> None:
        """Assign the ordered list of providers tried for each completion."""

        if not providers:
            raise ValueError("Provider policy requires at least one provider key")
        self._policy = list(dict.fromkeys(providers))

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return the completion text, failing over between providers in policy order."""

        message_payload = [_serialise_message(message) for message in messages]
        if not message_payload:
            raise ValueError("Completion requires at least one message")

        errors: list[str] = []
        for candidate in self._resolve_candidates():
            provider = self._providers[candidate]
            try:
                response = await asyncio.wait_for(
                    provider.chat(
                        messages=message_payload,
                        model=model,
                        temperature=temperature,
                        max_tokens=max_tokens,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                self._logger.warning("Provider %s timed out after %.1fs", candidate, self._timeout)
                errors.append(f"{candidate}: timeout after {self._timeout:.1f}s")
                continue
            except Exception as exc:
                self._logger.warning("Provider %s failed: %s", candidate, exc, exc_info=True)
                errors.append(f"{candidate}: {exc}")
                continue

            text = (response.text or "").strip()
            if not text:
                errors.append(f"{candidate}: empty completion")
                continue
            if response.provider is None:
                response.provider = candidate
            self._log_usage(candidate, response)
            return text

        raise CompletionError(f"All providers failed: {'; '.join(errors) or 'no providers configured'}")

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()

    def _resolve_candidates(self) -> list[str]:
        resolved = [candidate for candidate in self._policy if candidate in self._providers]
        if not resolved:
            raise CompletionError("No registered providers available for completion")
        return resolved

    def _log_usage(self, provider_key: str, response: LLMResponse) -> None:
        usage = response.usage or {}
        self._logger.info(
            "llm provider=%s model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
            provider_key,
            response.model,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
            usage.get("total_tokens"),
        )


def _serialise_message(message: Mapping[str, Any]) -> dict[str, Any]:
    if hasattr(message, "model_dump"):
        data = message.model_dump()
    else:
        data = dict(message)

    role = data.get("role")
    content = data.get("content")
    if role is None or content is None:
        raise ValueError("Chat messages must include 'role' and 'content'")
    return {"role": role, "content": content}


__all__ = ["CompletionRouter", "DEFAULT_TIMEOUT_SECONDS"]
